"""
Secondary Exchange Feeds

Public ticker endpoints of the exchanges tried after Binance. Every exchange
answers with a different schema, so each feed only knows how to pull raw
tickers out of its payload and read its own field names; the conversion to
a TickerQuote is shared:

  OKX    GET /api/v5/market/tickers?instType=SPOT   instId "SOL-USDT", last, open24h
  Bybit  GET /v5/market/tickers?category=spot       symbol "SOLUSDT", lastPrice, prevPrice24h
  MEXC   GET /api/v3/ticker/24hr                    symbol "SOLUSDT", lastPrice, openPrice
  Gate   GET /api/v4/spot/tickers                   currency_pair "SOL_USDT", last, change_percentage
"""

import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import httpx

from pricing.config import settings
from pricing.exceptions import ProviderUnavailableError
from pricing.price_feeds.base import (
    PriceFeed,
    SecondaryExchangeTicker,
    TickerQuote,
    parse_number,
    parse_positive,
    percent_change,
)
from pricing.price_feeds.symbol_resolver import normalize_symbol

logger = logging.getLogger(__name__)

OKX_BASE_URL = "https://www.okx.com"
BYBIT_BASE_URL = "https://api.bybit.com"
MEXC_BASE_URL = "https://api.mexc.com"
GATE_BASE_URL = "https://api.gateio.ws/api/v4"

QUOTE_ASSET = "USDT"

# Request = (url, query params)
Request = Tuple[str, Optional[Dict[str, str]]]


def _strip_suffix(pair: str, suffix: str) -> Optional[str]:
    upper = pair.strip().upper()
    if not upper.endswith(suffix):
        return None
    return normalize_symbol(upper[: -len(suffix)])


def _split_pair(pair: str, separator: str) -> Optional[str]:
    parts = pair.strip().upper().split(separator)
    if len(parts) != 2 or parts[1] != QUOTE_ASSET:
        return None
    return normalize_symbol(parts[0])


class SecondaryExchangeFeed(PriceFeed):
    """
    Shared request/normalize logic for the secondary exchanges.

    Subclasses describe their endpoints, how raw tickers are extracted from
    a payload, how a raw ticker maps to SecondaryExchangeTicker, and how a
    raw pair name maps to a base symbol.
    """

    def __init__(self, name: str, client: Optional[httpx.AsyncClient] = None):
        super().__init__(name=name, client=client)

    @abstractmethod
    def all_tickers_request(self) -> Request:
        pass

    @abstractmethod
    def single_ticker_request(self, symbol: str) -> Request:
        pass

    @abstractmethod
    def extract_tickers(self, payload: Any) -> List[Dict[str, Any]]:
        """Pull the raw ticker dicts out of a payload ([] when the payload is an error)"""
        pass

    @abstractmethod
    def parse_ticker(self, raw: Dict[str, Any]) -> SecondaryExchangeTicker:
        pass

    @abstractmethod
    def base_symbol(self, raw_symbol: str) -> Optional[str]:
        """Base symbol of a USDT pair name, None for other quote assets"""
        pass

    def to_quote(self, ticker: SecondaryExchangeTicker) -> Optional[TickerQuote]:
        symbol = self.base_symbol(ticker.raw_symbol)
        if not symbol or ticker.last_price is None or ticker.last_price <= 0:
            return None

        change = percent_change(ticker.last_price, ticker.reference_price_24h)
        if change is None:
            change = ticker.change_percent if ticker.change_percent is not None else 0.0

        return TickerQuote(
            symbol=symbol, price_usd=ticker.last_price, change_24h=change, source=self.name
        )

    def normalize(self, raw: Dict[str, Any]) -> Optional[TickerQuote]:
        if not isinstance(raw, dict):
            return None
        return self.to_quote(self.parse_ticker(raw))

    async def get_all_prices(self) -> Dict[str, TickerQuote]:
        url, params = self.all_tickers_request()
        try:
            payload = await self._get_json(url, params=params, timeout=settings.secondary_timeout_seconds)
        except ProviderUnavailableError as e:
            logger.warning(f"Secondary exchange {self.name} whole-market fetch failed: {e}")
            return {}

        result: Dict[str, TickerQuote] = {}
        for raw in self.extract_tickers(payload):
            quote = self.normalize(raw)
            if quote:
                result[quote.symbol] = quote

        if not result:
            return {}

        result[QUOTE_ASSET] = TickerQuote(
            symbol=QUOTE_ASSET, price_usd=1.0, change_24h=0.0, source=self.name
        )
        return result

    async def get_price(self, symbol: str) -> Optional[TickerQuote]:
        normalized = normalize_symbol(symbol)
        if not normalized:
            return None

        url, params = self.single_ticker_request(normalized)
        try:
            payload = await self._get_json(url, params=params, timeout=settings.secondary_timeout_seconds)
        except ProviderUnavailableError as e:
            logger.debug(f"Secondary exchange {self.name} has no price for {normalized}: {e}")
            return None

        tickers = self.extract_tickers(payload)
        if not tickers:
            return None
        quote = self.normalize(tickers[0])
        if quote is None or quote.symbol != normalized:
            return None
        return quote


class OkxPriceFeed(SecondaryExchangeFeed):
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        super().__init__(name="okx", client=client)

    def all_tickers_request(self) -> Request:
        return f"{OKX_BASE_URL}/api/v5/market/tickers", {"instType": "SPOT"}

    def single_ticker_request(self, symbol: str) -> Request:
        return f"{OKX_BASE_URL}/api/v5/market/ticker", {"instId": f"{symbol}-{QUOTE_ASSET}"}

    def extract_tickers(self, payload: Any) -> List[Dict[str, Any]]:
        if not isinstance(payload, dict) or str(payload.get("code")) != "0":
            return []
        data = payload.get("data")
        return data if isinstance(data, list) else []

    def parse_ticker(self, raw: Dict[str, Any]) -> SecondaryExchangeTicker:
        return SecondaryExchangeTicker(
            exchange=self.name,
            raw_symbol=str(raw.get("instId") or ""),
            last_price=parse_positive(raw.get("last")),
            reference_price_24h=parse_positive(raw.get("open24h")),
        )

    def base_symbol(self, raw_symbol: str) -> Optional[str]:
        return _split_pair(raw_symbol, "-")


class BybitPriceFeed(SecondaryExchangeFeed):
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        super().__init__(name="bybit", client=client)

    def all_tickers_request(self) -> Request:
        return f"{BYBIT_BASE_URL}/v5/market/tickers", {"category": "spot"}

    def single_ticker_request(self, symbol: str) -> Request:
        return f"{BYBIT_BASE_URL}/v5/market/tickers", {"category": "spot", "symbol": f"{symbol}{QUOTE_ASSET}"}

    def extract_tickers(self, payload: Any) -> List[Dict[str, Any]]:
        if not isinstance(payload, dict) or payload.get("retCode") != 0:
            return []
        tickers = (payload.get("result") or {}).get("list")
        return tickers if isinstance(tickers, list) else []

    def parse_ticker(self, raw: Dict[str, Any]) -> SecondaryExchangeTicker:
        # price24hPcnt is a ratio ("0.0123" == 1.23%)
        ratio = parse_number(raw.get("price24hPcnt"))
        return SecondaryExchangeTicker(
            exchange=self.name,
            raw_symbol=str(raw.get("symbol") or ""),
            last_price=parse_positive(raw.get("lastPrice")),
            reference_price_24h=parse_positive(raw.get("prevPrice24h")),
            change_percent=ratio * 100 if ratio is not None else None,
        )

    def base_symbol(self, raw_symbol: str) -> Optional[str]:
        return _strip_suffix(raw_symbol, QUOTE_ASSET)


class MexcPriceFeed(SecondaryExchangeFeed):
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        super().__init__(name="mexc", client=client)

    def all_tickers_request(self) -> Request:
        return f"{MEXC_BASE_URL}/api/v3/ticker/24hr", None

    def single_ticker_request(self, symbol: str) -> Request:
        return f"{MEXC_BASE_URL}/api/v3/ticker/24hr", {"symbol": f"{symbol}{QUOTE_ASSET}"}

    def extract_tickers(self, payload: Any) -> List[Dict[str, Any]]:
        # Whole market is a list, a single symbol query is one object
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and "symbol" in payload:
            return [payload]
        return []

    def parse_ticker(self, raw: Dict[str, Any]) -> SecondaryExchangeTicker:
        reference = parse_positive(raw.get("openPrice")) or parse_positive(raw.get("prevClosePrice"))
        ratio = parse_number(raw.get("priceChangePercent"))
        return SecondaryExchangeTicker(
            exchange=self.name,
            raw_symbol=str(raw.get("symbol") or ""),
            last_price=parse_positive(raw.get("lastPrice")),
            reference_price_24h=reference,
            change_percent=ratio * 100 if ratio is not None else None,
        )

    def base_symbol(self, raw_symbol: str) -> Optional[str]:
        return _strip_suffix(raw_symbol, QUOTE_ASSET)


class GatePriceFeed(SecondaryExchangeFeed):
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        super().__init__(name="gate", client=client)

    def all_tickers_request(self) -> Request:
        return f"{GATE_BASE_URL}/spot/tickers", None

    def single_ticker_request(self, symbol: str) -> Request:
        return f"{GATE_BASE_URL}/spot/tickers", {"currency_pair": f"{symbol}_{QUOTE_ASSET}"}

    def extract_tickers(self, payload: Any) -> List[Dict[str, Any]]:
        return payload if isinstance(payload, list) else []

    def parse_ticker(self, raw: Dict[str, Any]) -> SecondaryExchangeTicker:
        # Gate only reports the percentage, already in percent units
        return SecondaryExchangeTicker(
            exchange=self.name,
            raw_symbol=str(raw.get("currency_pair") or ""),
            last_price=parse_positive(raw.get("last")),
            change_percent=parse_number(raw.get("change_percentage")),
        )

    def base_symbol(self, raw_symbol: str) -> Optional[str]:
        return _split_pair(raw_symbol, "_")


def create_secondary_feeds(client: Optional[httpx.AsyncClient] = None) -> List[SecondaryExchangeFeed]:
    """Secondary feeds in fixed priority order: OKX -> Bybit -> MEXC -> Gate."""
    return [
        OkxPriceFeed(client),
        BybitPriceFeed(client),
        MexcPriceFeed(client),
        GatePriceFeed(client),
    ]
