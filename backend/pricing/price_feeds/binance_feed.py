"""
Binance Price Feed

Primary fast-path feed. Uses the public 24h ticker endpoint:
  GET https://api.binance.com/api/v3/ticker/24hr              (whole market)
  GET https://api.binance.com/api/v3/ticker/24hr?symbol=BTCUSDT (one pair)
"""

import logging
from typing import Any, Dict, Optional

import httpx

from pricing.config import settings
from pricing.exceptions import ProviderUnavailableError
from pricing.price_feeds.base import (
    SOURCE_PRIMARY,
    PriceFeed,
    TickerQuote,
    parse_number,
    parse_positive,
    percent_change,
)
from pricing.price_feeds.symbol_resolver import normalize_symbol

logger = logging.getLogger(__name__)

BINANCE_TICKER_URL = "https://api.binance.com/api/v3/ticker/24hr"
QUOTE_ASSET = "USDT"


def parse_binance_ticker(ticker: Dict[str, Any]) -> Optional[TickerQuote]:
    """Normalize one 24hr ticker object into a TickerQuote for its base symbol"""
    pair = str(ticker.get("symbol") or "").strip().upper()
    if not pair.endswith(QUOTE_ASSET):
        return None
    symbol = normalize_symbol(pair[: -len(QUOTE_ASSET)])
    last = parse_positive(ticker.get("lastPrice"))
    if not symbol or last is None:
        return None

    change = parse_number(ticker.get("priceChangePercent"))
    if change is None:
        change = percent_change(last, parse_positive(ticker.get("openPrice")))

    return TickerQuote(
        symbol=symbol,
        price_usd=last,
        change_24h=change if change is not None else 0.0,
        source=SOURCE_PRIMARY,
    )


class BinancePriceFeed(PriceFeed):
    """Price feed for Binance spot USDT pairs."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        super().__init__(name=SOURCE_PRIMARY, client=client)

    async def get_price(self, symbol: str) -> Optional[TickerQuote]:
        """
        Fetch the USDT pair for one symbol (e.g. "BTC" -> BTCUSDT).

        Uses a short timeout so the rest of the waterfall isn't delayed much.
        """
        normalized = normalize_symbol(symbol)
        if not normalized:
            return None
        pair = f"{normalized}{QUOTE_ASSET}"

        try:
            data = await self._get_json(
                BINANCE_TICKER_URL,
                params={"symbol": pair},
                timeout=settings.primary_single_timeout_seconds,
            )
        except ProviderUnavailableError as e:
            logger.warning(f"Binance price unavailable for {pair}: {e}")
            return None

        if not isinstance(data, dict):
            return None
        quote = parse_binance_ticker(data)
        if quote is None or quote.symbol != normalized:
            logger.debug(f"Binance returned no usable price for {pair}")
            return None
        return quote

    async def get_all_prices(self) -> Dict[str, TickerQuote]:
        """
        Fetch all USDT-pair tickers in a single call.

        On any error returns {} so the secondary exchanges and CoinGecko
        fallback kick in.
        """
        try:
            tickers = await self._get_json(
                BINANCE_TICKER_URL, timeout=settings.primary_all_timeout_seconds
            )
        except ProviderUnavailableError as e:
            logger.warning(f"Binance whole-market fetch failed: {e}")
            return {}

        if not isinstance(tickers, list):
            logger.warning("Binance whole-market payload was not a list")
            return {}

        result: Dict[str, TickerQuote] = {}
        for ticker in tickers:
            if not isinstance(ticker, dict):
                continue
            quote = parse_binance_ticker(ticker)
            if quote:
                result[quote.symbol] = quote

        # USDT itself has no USDT pair
        result[QUOTE_ASSET] = TickerQuote(
            symbol=QUOTE_ASSET, price_usd=1.0, change_24h=0.0, source=SOURCE_PRIMARY
        )
        return result
