"""
Shared key-value store

Process-wide rate-limit and cooldown state lives in an external store so
that every service instance sees the same counters and flags. Only atomic
primitives are used (INCR, EXPIRE, SET NX EX), so no in-process locking is
needed.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from pricing.config import settings
from pricing.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


class SharedStore(ABC):
    """Atomic key-value primitives the cooldown controller relies on."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Atomically increment a counter, creating it at 1 if absent"""
        pass

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> None:
        pass

    @abstractmethod
    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Create key with a TTL only if it does not exist; True if this call created it"""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def ttl(self, key: str) -> Optional[int]:
        """Remaining lifetime in seconds, None if the key is missing or has no expiry"""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        pass

    async def close(self) -> None:
        pass


class RedisSharedStore(SharedStore):
    """SharedStore backed by redis.asyncio. Connection errors become StoreUnavailableError."""

    def __init__(self, client: Optional[redis.Redis] = None, url: Optional[str] = None):
        self._redis = client or redis.from_url(url or settings.redis_url, decode_responses=True)

    async def incr(self, key: str) -> int:
        try:
            return int(await self._redis.incr(key))
        except RedisError as e:
            raise StoreUnavailableError(f"Shared store INCR failed: {e}") from e

    async def expire(self, key: str, seconds: int) -> None:
        try:
            await self._redis.expire(key, seconds)
        except RedisError as e:
            raise StoreUnavailableError(f"Shared store EXPIRE failed: {e}") from e

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        try:
            result = await self._redis.set(key, value, ex=ttl_seconds, nx=True)
        except RedisError as e:
            raise StoreUnavailableError(f"Shared store SET NX failed: {e}") from e
        return bool(result)

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as e:
            raise StoreUnavailableError(f"Shared store GET failed: {e}") from e

    async def ttl(self, key: str) -> Optional[int]:
        try:
            remaining = await self._redis.ttl(key)
        except RedisError as e:
            raise StoreUnavailableError(f"Shared store TTL failed: {e}") from e
        # -2 missing key, -1 no expiry
        return remaining if remaining is not None and remaining >= 0 else None

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.warning(f"Shared store ping failed: {e}")
            return False

    async def close(self) -> None:
        await self._redis.aclose()


_shared_store: Optional[SharedStore] = None


def get_shared_store() -> SharedStore:
    """Get or create the process-wide Redis-backed store (FastAPI dependency)."""
    global _shared_store
    if _shared_store is None:
        _shared_store = RedisSharedStore()
    return _shared_store


async def close_shared_store() -> None:
    global _shared_store
    if _shared_store is not None:
        await _shared_store.close()
    _shared_store = None
