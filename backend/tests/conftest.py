"""
Shared test fixtures for the pricing backend tests.

Provides reusable fixtures for:
- Async database sessions (in-memory SQLite)
- In-memory SharedStore double (Redis stand-in)
- httpx clients backed by MockTransport
- Mock price feeds
"""

import time
from typing import Dict, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from pricing.price_feeds.aggregator import SecondaryFeedAggregator
from pricing.price_feeds.base import PriceFeed
from pricing.price_feeds.coingecko_feed import CoinGeckoClient
from pricing.shared_store import SharedStore

# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine():
    """Create an in-memory async SQLite engine for testing."""
    from pricing.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Provide an async database session for tests.

    Each test gets its own session that rolls back after the test.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Shared store double
# ---------------------------------------------------------------------------


class InMemorySharedStore(SharedStore):
    """Single-process SharedStore with Redis-like TTL semantics.

    `clock` can be replaced to simulate time passing.
    """

    def __init__(self):
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self.clock = time.monotonic
        self.available = True

    def _live(self, key: str):
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self._data[key]
            return None
        return entry

    async def incr(self, key: str) -> int:
        entry = self._live(key)
        count = int(entry[0]) + 1 if entry else 1
        self._data[key] = (str(count), entry[1] if entry else None)
        return count

    async def expire(self, key: str, seconds: int) -> None:
        entry = self._live(key)
        if entry:
            self._data[key] = (entry[0], self.clock() + seconds)

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        if self._live(key):
            return False
        self._data[key] = (value, self.clock() + ttl_seconds)
        return True

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return entry[0] if entry else None

    async def ttl(self, key: str) -> Optional[int]:
        entry = self._live(key)
        if not entry or entry[1] is None:
            return None
        return int(entry[1] - self.clock())

    async def ping(self) -> bool:
        return self.available


@pytest.fixture
def shared_store():
    return InMemorySharedStore()


# ---------------------------------------------------------------------------
# HTTP mocking
# ---------------------------------------------------------------------------


@pytest.fixture
async def make_http_client():
    """Build an httpx.AsyncClient whose requests are answered by handler(request)."""
    clients = []

    def _make(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.aclose()


# ---------------------------------------------------------------------------
# Mock feeds
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_primary():
    """Primary feed that prices nothing unless a test says otherwise."""
    feed = MagicMock(spec=PriceFeed)
    feed.name = "binance"
    feed.get_price = AsyncMock(return_value=None)
    feed.get_all_prices = AsyncMock(return_value={})
    return feed


@pytest.fixture
def mock_secondary():
    aggregator = MagicMock(spec=SecondaryFeedAggregator)
    aggregator.fetch_one = AsyncMock(return_value=None)
    aggregator.fetch_all = AsyncMock(return_value={})
    return aggregator


@pytest.fixture
def mock_fallback():
    client = MagicMock(spec=CoinGeckoClient)
    client.get_price = AsyncMock(return_value=None)
    client.get_prices_batched = AsyncMock(return_value={})
    return client
