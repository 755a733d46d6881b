"""
Base Price Feed Interface

Defines the quote types and the abstract interface that every exchange feed
implements, plus the small parsing helpers shared by the per-exchange
normalizers. Feeds never raise to their callers: any transport, status or
payload problem is logged and reported as "no quote".
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from pricing.exceptions import ProviderUnavailableError

logger = logging.getLogger(__name__)

SOURCE_PRIMARY = "binance"
SOURCE_CACHE = "cache"
SOURCE_FALLBACK = "coingecko"

USER_AGENT = "PortfolioPricing/1.0"

# Shared httpx client (lazy-initialized, reused across feeds)
_shared_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """Get or create the shared httpx client used by all feeds."""
    global _shared_client
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(headers={"User-Agent": USER_AGENT})
    return _shared_client


async def close_http_client() -> None:
    global _shared_client
    if _shared_client is not None and not _shared_client.is_closed:
        await _shared_client.aclose()
    _shared_client = None


@dataclass(frozen=True)
class TickerQuote:
    """Normalized price for one ticker symbol from one feed"""
    symbol: str
    price_usd: float
    change_24h: float
    source: str


@dataclass(frozen=True)
class SecondaryExchangeTicker:
    """Raw ticker fields extracted from one exchange response (not persisted)"""
    exchange: str
    raw_symbol: str
    last_price: Optional[float]
    reference_price_24h: Optional[float] = None
    change_percent: Optional[float] = None


@dataclass
class PriceQuote:
    """Current price of a tracked asset as held by the price cache"""
    asset_id: str
    symbol: str
    price_usd: float
    change_24h: Optional[float]
    updated_at: datetime
    source: str = SOURCE_CACHE

    @property
    def has_price(self) -> bool:
        return self.price_usd is not None and self.price_usd > 0


def parse_number(value: Any) -> Optional[float]:
    """Parse an exchange numeric field (number or numeric string)"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def parse_positive(value: Any) -> Optional[float]:
    parsed = parse_number(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def percent_change(last: float, reference: Optional[float]) -> Optional[float]:
    """(last - reference) / reference * 100, or None without a usable reference"""
    if reference is None or reference <= 0:
        return None
    return (last - reference) / reference * 100


class PriceFeed(ABC):
    """
    Abstract base class for exchange price feeds.

    Each feed represents a single exchange and returns USDT-quoted prices
    keyed by base ticker symbol.
    """

    def __init__(self, name: str, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize price feed.

        Args:
            name: Exchange name (e.g., "binance", "okx")
            client: Optional httpx client; the shared client is used when omitted
        """
        self.name = name
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    @abstractmethod
    async def get_price(self, symbol: str) -> Optional[TickerQuote]:
        """
        Get the current USD price for one base symbol.

        Returns:
            TickerQuote, or None if the exchange cannot serve the symbol
        """
        pass

    @abstractmethod
    async def get_all_prices(self) -> Dict[str, TickerQuote]:
        """
        Get prices for every USDT pair listed on the exchange.

        Returns:
            Map of base symbol -> TickerQuote (empty on failure)
        """
        pass

    async def _get_json(
        self, url: str, params: Optional[Dict[str, str]] = None, timeout: float = 10.0
    ) -> Any:
        """
        GET a JSON document from the exchange.

        Raises:
            ProviderUnavailableError: on transport error, non-2xx status or invalid JSON
        """
        try:
            resp = await self.client.get(url, params=params, timeout=timeout)
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(self.name, f"request failed: {e!r}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            raise ProviderUnavailableError(self.name, f"HTTP {resp.status_code}")

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderUnavailableError(self.name, "invalid JSON payload") from e
