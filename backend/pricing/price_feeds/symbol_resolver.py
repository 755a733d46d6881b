"""
Symbol Resolver

Maps a CoinGecko asset id (plus an optional caller-supplied symbol) to the
base ticker symbol used by the exchange feeds.
"""

import re
from typing import Optional

TICKER_SYMBOL_PATTERN = re.compile(r"^[A-Z0-9]+$")

# Curated CoinGecko id -> exchange symbol for high-usage assets.
# Many CoinGecko tokens share a symbol, so for these ids the curated
# entry always wins over whatever symbol the caller passes.
CURATED_SYMBOLS = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "tether": "USDT",
    "usd-coin": "USDC",
    "binancecoin": "BNB",
    "solana": "SOL",
    "ripple": "XRP",
    "cardano": "ADA",
    "dogecoin": "DOGE",
    "tron": "TRX",
    "chainlink": "LINK",
    "avalanche-2": "AVAX",
    "shiba-inu": "SHIB",
    "litecoin": "LTC",
    "bitcoin-cash": "BCH",
    "polkadot": "DOT",
    "uniswap": "UNI",
    "near": "NEAR",
    "aptos": "APT",
    "internet-computer": "ICP",
    "filecoin": "FIL",
    "aave": "AAVE",
    "maker": "MKR",
    "injective-protocol": "INJ",
    "the-open-network": "TON",
    "stellar": "XLM",
    "cosmos": "ATOM",
    "pepe": "PEPE",
    "arbitrum": "ARB",
    "optimism": "OP",
    "sui": "SUI",
    "render-token": "RENDER",
    "immutable-x": "IMX",
    "sei-network": "SEI",
    "ethena": "ENA",
    "worldcoin-wld": "WLD",
    "the-graph": "GRT",
    "curve-dao-token": "CRV",
    "theta-token": "THETA",
}


def normalize_asset_id(asset_id: Optional[str]) -> str:
    return (asset_id or "").strip().lower()


def normalize_symbol(symbol: Optional[str]) -> Optional[str]:
    """Trim and uppercase a ticker symbol; None if it is not plain alphanumeric"""
    if not symbol:
        return None
    normalized = symbol.strip().upper()
    if not TICKER_SYMBOL_PATTERN.match(normalized):
        return None
    return normalized


def resolve_ticker_symbol(asset_id: Optional[str], hint_symbol: Optional[str] = None) -> Optional[str]:
    """
    Return the safest exchange symbol for an asset.

    Priority:
    1) Curated symbol for the asset id (collision-safe for top assets)
    2) Sanitized hint symbol (long-tail assets)

    None means no fast-path symbol is available; callers go straight to the
    cache and the CoinGecko fallback.
    """
    mapped = CURATED_SYMBOLS.get(normalize_asset_id(asset_id))
    if mapped:
        return mapped
    return normalize_symbol(hint_symbol)


def is_fast_path_eligible(asset_id: Optional[str]) -> bool:
    """True if the asset is priced by the exchange feeds by curated mapping alone"""
    return normalize_asset_id(asset_id) in CURATED_SYMBOLS
