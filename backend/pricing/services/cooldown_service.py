"""
Cooldown Controller

Rate limiting and debounce primitives over the shared store:
- rate_limit: fixed-window attempt counter per key (login/IP/action caps)
- debounce: at most one caller proceeds per cooldown window
- FallbackCooldown: dedicated debounce guarding the CoinGecko fallback
"""

import logging
from typing import Iterable, List, Optional, Tuple

from pricing.config import settings
from pricing.shared_store import SharedStore

logger = logging.getLogger(__name__)

REFRESH_DEBOUNCE_KEY = "prices:refresh"
FALLBACK_KEY_PREFIX = "prices:coingecko:fallback"


async def rate_limit(store: SharedStore, key: str, max_attempts: int, window_seconds: int) -> bool:
    """
    Count one attempt for key; True if still within max_attempts.

    The window starts with the first attempt: only the increment that
    creates the counter attaches the expiry.
    """
    count = await store.incr(key)
    if count == 1:
        await store.expire(key, window_seconds)
    return count <= max_attempts


async def debounce(store: SharedStore, key: str, cooldown_seconds: int) -> bool:
    """
    True if this caller should proceed (it created the cooldown flag).

    Every other caller within cooldown_seconds gets False.
    """
    return await store.set_if_absent(key, "1", cooldown_seconds)


async def retry_after(store: SharedStore, key: str) -> Optional[int]:
    """Seconds until a rate-limit window or cooldown flag expires"""
    return await store.ttl(key)


class FallbackCooldown:
    """
    Cooldown in front of the CoinGecko fallback.

    Each allowed attempt (successful or not) blocks further attempts for the
    same scope until the cooldown elapses. Scope is per asset by default so
    one unavailable asset does not block the others.
    """

    def __init__(
        self,
        store: SharedStore,
        cooldown_seconds: Optional[int] = None,
        scope: Optional[str] = None,
    ):
        self.store = store
        self.cooldown_seconds = (
            cooldown_seconds if cooldown_seconds is not None else settings.fallback_cooldown_seconds
        )
        self.scope = scope or settings.fallback_cooldown_scope

    def key_for(self, asset_id: str) -> str:
        if self.scope == "global":
            return FALLBACK_KEY_PREFIX
        return f"{FALLBACK_KEY_PREFIX}:{asset_id.strip().lower()}"

    async def try_acquire(self, asset_id: str) -> bool:
        """True if the fallback may be queried for asset_id now"""
        normalized = asset_id.strip().lower()
        if not normalized:
            return False
        return await debounce(self.store, self.key_for(normalized), self.cooldown_seconds)

    async def remaining(self, asset_id: str) -> Optional[int]:
        return await retry_after(self.store, self.key_for(asset_id))

    async def split(self, asset_ids: Iterable[str]) -> Tuple[List[str], List[str]]:
        """
        Partition ids into (allowed, blocked), normalizing and deduplicating.

        With global scope the whole batch shares one acquisition.
        """
        ids = list(dict.fromkeys(
            asset_id for asset_id in ((raw or "").strip().lower() for raw in asset_ids) if asset_id
        ))
        if self.scope == "global":
            if ids and await debounce(self.store, FALLBACK_KEY_PREFIX, self.cooldown_seconds):
                return ids, []
            return [], ids

        allowed: List[str] = []
        blocked: List[str] = []
        for asset_id in ids:
            if await self.try_acquire(asset_id):
                allowed.append(asset_id)
            else:
                blocked.append(asset_id)

        return allowed, blocked
