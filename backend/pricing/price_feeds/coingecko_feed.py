"""
CoinGecko Fallback Feed

Universal (slow) price source keyed by CoinGecko id:
  GET https://api.coingecko.com/api/v3/simple/price
      ?ids=bitcoin,ethereum&vs_currencies=usd&include_24hr_change=true

The free tier is heavily rate-limited, so callers must gate requests through
the fallback cooldown (see services/cooldown_service.py).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from pricing.config import settings
from pricing.exceptions import ProviderUnavailableError
from pricing.price_feeds.base import SOURCE_FALLBACK, get_http_client, parse_number
from pricing.price_feeds.symbol_resolver import normalize_asset_id

logger = logging.getLogger(__name__)

COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
MAX_IDS_PER_REQUEST = 50


@dataclass(frozen=True)
class FallbackPrice:
    asset_id: str
    price_usd: float
    change_24h: float
    source: str = SOURCE_FALLBACK


class CoinGeckoClient:
    """Client for the CoinGecko simple price endpoint."""

    name = SOURCE_FALLBACK

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None):
        self._client = client
        self.timeout = timeout if timeout is not None else settings.coingecko_timeout_seconds

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or get_http_client()

    async def _request(self, ids: List[str]) -> Dict:
        """
        GET simple/price for a batch of ids.

        Retries once on 429 (rate-limited) after a 1-second backoff.
        """
        params = {
            "ids": ",".join(ids),
            "vs_currencies": "usd",
            "include_24hr_change": "true",
        }
        url = f"{COINGECKO_BASE_URL}/simple/price"

        for attempt in range(2):
            try:
                resp = await self.client.get(url, params=params, timeout=self.timeout)
            except httpx.HTTPError as e:
                raise ProviderUnavailableError(self.name, f"request failed: {e!r}") from e

            if resp.status_code == 429 and attempt == 0:
                logger.warning("CoinGecko rate-limited (429), backing off 1s")
                await asyncio.sleep(1.0)
                continue

            if resp.status_code < 200 or resp.status_code >= 300:
                raise ProviderUnavailableError(self.name, f"HTTP {resp.status_code}")

            try:
                data = resp.json()
            except ValueError as e:
                raise ProviderUnavailableError(self.name, "invalid JSON payload") from e
            if not isinstance(data, dict):
                raise ProviderUnavailableError(self.name, "unexpected payload shape")
            return data

        raise ProviderUnavailableError(self.name, "rate-limited after retry")

    async def get_prices(self, asset_ids: List[str]) -> Dict[str, FallbackPrice]:
        """
        Fetch USD prices for up to MAX_IDS_PER_REQUEST ids.

        Ids missing from the response or priced at zero are left out.

        Raises:
            ProviderUnavailableError: if the request itself fails
        """
        ids = [i for i in dict.fromkeys(normalize_asset_id(a) for a in asset_ids) if i]
        if not ids:
            return {}

        data = await self._request(ids)

        result: Dict[str, FallbackPrice] = {}
        for asset_id in ids:
            entry = data.get(asset_id)
            if not isinstance(entry, dict):
                logger.warning(f"CoinGecko response missing requested id '{asset_id}'")
                continue
            price = parse_number(entry.get("usd"))
            if price is None or price <= 0:
                continue
            change = parse_number(entry.get("usd_24h_change"))
            result[asset_id] = FallbackPrice(
                asset_id=asset_id,
                price_usd=price,
                change_24h=change if change is not None else 0.0,
            )
        return result

    async def get_price(self, asset_id: str) -> Optional[FallbackPrice]:
        """Single-asset lookup; None when CoinGecko fails or doesn't know the id."""
        normalized = normalize_asset_id(asset_id)
        if not normalized:
            return None
        try:
            prices = await self.get_prices([normalized])
        except ProviderUnavailableError as e:
            logger.warning(f"CoinGecko fallback failed for {normalized}: {e}")
            return None
        return prices.get(normalized)

    async def get_prices_batched(self, asset_ids: List[str]) -> Dict[str, FallbackPrice]:
        """
        Fetch any number of ids in batches of MAX_IDS_PER_REQUEST.

        A failed batch is logged and skipped; the other batches still count.
        """
        ids = [i for i in dict.fromkeys(normalize_asset_id(a) for a in asset_ids) if i]
        result: Dict[str, FallbackPrice] = {}
        for start in range(0, len(ids), MAX_IDS_PER_REQUEST):
            batch = ids[start:start + MAX_IDS_PER_REQUEST]
            try:
                result.update(await self.get_prices(batch))
            except ProviderUnavailableError as e:
                logger.warning(f"CoinGecko batch of {len(batch)} ids failed: {e}")
        return result
