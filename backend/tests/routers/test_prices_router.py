"""
Tests for backend/pricing/routers/prices_router.py and health_router.py

Covers:
- GET /api/prices listing (camelCase body, sorted by symbol)
- POST /api/prices/refresh debounce flag
- GET /api/prices/history and /api/prices/volatility query handling
- POST /api/prices/ensure
- GET /api/tokens/{asset_id}: waterfall, not-found vs. cooldown, per-IP rate limit
- GET /api/health healthy / degraded
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx
import pytest

from pricing.config import settings
from pricing.database import get_db
from pricing.main import app
from pricing.price_feeds.base import TickerQuote
from pricing.routers.prices_router import get_price_service
from pricing.services.cooldown_service import FallbackCooldown
from pricing.services.price_service import PriceService
from pricing.services.price_store import PriceStore
from pricing.shared_store import get_shared_store


@pytest.fixture
async def client(db_session, shared_store, session_factory, mock_primary, mock_secondary, mock_fallback):
    """AsyncClient against the app with database, store and feeds overridden."""

    async def _override_db():
        yield db_session

    def _override_service():
        return PriceService(
            db_session,
            shared_store,
            primary=mock_primary,
            secondary=mock_secondary,
            fallback=mock_fallback,
            cooldown=FallbackCooldown(shared_store, cooldown_seconds=21600, scope="asset"),
            session_factory=session_factory,
        )

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_shared_store] = lambda: shared_store
    app.dependency_overrides[get_price_service] = _override_service

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Listing / refresh
# ---------------------------------------------------------------------------


class TestListPrices:
    @pytest.mark.asyncio
    async def test_sorted_camel_case(self, client, db_session):
        store = PriceStore(db_session)
        await store.persist_quote("ethereum", "ETH", 3000.0, 1.0)
        await store.persist_quote("bitcoin", "BTC", 50000.0, 2.0)

        response = await client.get("/api/prices")

        assert response.status_code == 200
        body = response.json()
        assert [p["symbol"] for p in body["prices"]] == ["BTC", "ETH"]
        assert body["prices"][0]["assetId"] == "bitcoin"
        assert body["prices"][0]["priceUsd"] == 50000.0
        assert body["prices"][0]["change24h"] == 2.0
        assert body["updatedAt"] is not None

    @pytest.mark.asyncio
    async def test_empty(self, client):
        response = await client.get("/api/prices")
        assert response.json() == {"prices": [], "updatedAt": None}


class TestRefreshPrices:
    @pytest.mark.asyncio
    async def test_second_refresh_is_debounced(self, client, db_session, mock_primary):
        await PriceStore(db_session).insert_placeholder("bitcoin", "BTC")
        mock_primary.get_all_prices.return_value = {
            "BTC": TickerQuote(symbol="BTC", price_usd=50000.0, change_24h=1.0, source="binance"),
        }

        first = await client.post("/api/prices/refresh")
        second = await client.post("/api/prices/refresh")

        assert first.status_code == 200
        assert first.json()["refreshed"] is True
        assert second.json()["refreshed"] is False
        assert len(second.json()["prices"]) == 1
        mock_primary.get_all_prices.assert_awaited_once()


# ---------------------------------------------------------------------------
# History / volatility
# ---------------------------------------------------------------------------


class TestHistory:
    @pytest.mark.asyncio
    async def test_ascending_history(self, client, db_session):
        store = PriceStore(db_session)
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        for i, price in enumerate([1.0, 2.0, 3.0]):
            await store.persist_quote("bitcoin", "BTC", price, 0.0, now=start + timedelta(hours=i))

        response = await client.get("/api/prices/history", params={"assetId": "Bitcoin"})

        assert response.status_code == 200
        body = response.json()
        assert body["assetId"] == "bitcoin"
        assert [p["priceUsd"] for p in body["history"]] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_missing_asset_id(self, client):
        response = await client.get("/api/prices/history")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_blank_asset_id(self, client):
        response = await client.get("/api/prices/history", params={"assetId": "  "})
        assert response.status_code == 400
        assert response.json()["detail"] == "assetId is required"


class TestVolatility:
    @pytest.mark.asyncio
    async def test_clamps_lookback_and_filters_ids(self, client, db_session):
        store = PriceStore(db_session)
        now = datetime.now(timezone.utc)
        for asset_id in ("bitcoin", "ethereum"):
            for i, price in enumerate([100.0, 110.0, 99.0]):
                await store.persist_quote(asset_id, asset_id.upper(), price, 0.0, now=now - timedelta(days=3 - i))

        response = await client.get("/api/prices/volatility", params={"lookbackDays": 1, "ids": "bitcoin, bitcoin,"})

        assert response.status_code == 200
        body = response.json()
        assert body["lookbackDays"] == 7
        assert list(body["volatility"]) == ["bitcoin"]
        assert body["volatility"]["bitcoin"]["volatility"] == pytest.approx(0.1)
        assert body["volatility"]["bitcoin"]["dataPoints"] == 3

    @pytest.mark.asyncio
    async def test_default_lookback(self, client):
        response = await client.get("/api/prices/volatility")
        assert response.json() == {"lookbackDays": 30, "volatility": {}}

    @pytest.mark.asyncio
    async def test_non_integer_lookback_uses_default(self, client):
        response = await client.get("/api/prices/volatility", params={"lookbackDays": "abc"})
        assert response.status_code == 200
        assert response.json()["lookbackDays"] == 30


# ---------------------------------------------------------------------------
# Ensure
# ---------------------------------------------------------------------------


class TestEnsurePrices:
    @pytest.mark.asyncio
    async def test_creates_placeholders(self, client, db_session):
        response = await client.post("/api/prices/ensure", json={
            "tokens": [{"assetId": "obscure-coin", "symbol": "obs"}, {"symbol": "NOID"}],
        })

        assert response.status_code == 200
        assert response.json() == {"priced": [], "placeholders": ["obscure-coin"]}
        assert (await PriceStore(db_session).get_quote("obscure-coin")).price_usd == 0.0


# ---------------------------------------------------------------------------
# Token lookup
# ---------------------------------------------------------------------------


class TestTokenLookup:
    @pytest.mark.asyncio
    async def test_primary_quote(self, client, mock_primary):
        mock_primary.get_price.return_value = TickerQuote(
            symbol="BTC", price_usd=50000.0, change_24h=1.0, source="binance"
        )

        response = await client.get("/api/tokens/bitcoin", params={"symbol": "XBT"})

        assert response.status_code == 200
        assert response.json() == {
            "assetId": "bitcoin",
            "symbol": "BTC",
            "priceUsd": 50000.0,
            "change24h": 1.0,
            "source": "binance",
        }

    @pytest.mark.asyncio
    async def test_not_found_then_cooldown(self, client):
        """Failure: 'no price' (404) and 'retry later' (429) are distinguishable."""
        first = await client.get("/api/tokens/ghost-coin")
        second = await client.get("/api/tokens/ghost-coin")

        assert first.status_code == 404
        assert second.status_code == 429
        assert int(second.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_rate_limited_per_ip(self, client, db_session):
        await PriceStore(db_session).persist_quote("obscure-coin", "OBS", 1.0, 0.0)

        with patch.object(settings, "token_lookup_rate_limit", 2):
            codes = [(await client.get("/api/tokens/obscure-coin")).status_code for _ in range(3)]

        assert codes == [200, 200, 429]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_degraded_when_store_down(self, client, shared_store):
        shared_store.available = False
        response = await client.get("/api/health")
        assert response.status_code == 503
        assert response.json()["checks"] == {"database": "ok", "redis": "error"}
