"""
Tests for backend/pricing/services/freshness.py

Covers:
- Fast-path eligible assets define the as-of timestamp
- Fallback to all tracked assets when none is eligible
- Normalization, deduplication and missing quotes
"""

from datetime import datetime, timedelta, timezone

from pricing.price_feeds.base import PriceQuote
from pricing.services.freshness import oldest_relevant_update
from pricing.services.price_store import TrackedAsset

T = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _quote(asset_id, hours, symbol="X"):
    return PriceQuote(
        asset_id=asset_id, symbol=symbol, price_usd=1.0, change_24h=0.0, updated_at=T + timedelta(hours=hours)
    )


class TestOldestRelevantUpdate:
    def test_ineligible_assets_do_not_drag_minimum(self):
        """Happy path: bitcoin at T10 wins over an older fallback-only coin at T08."""
        quotes = {"bitcoin": _quote("bitcoin", 10), "obscure-coin": _quote("obscure-coin", 8)}
        tracked = [TrackedAsset("bitcoin", "BTC"), TrackedAsset("obscure-coin", "OBS")]

        assert oldest_relevant_update(quotes, tracked) == T + timedelta(hours=10)

    def test_minimum_over_eligible(self):
        quotes = {"bitcoin": _quote("bitcoin", 10), "ethereum": _quote("ethereum", 9)}
        tracked = [TrackedAsset("bitcoin"), TrackedAsset("ethereum")]

        assert oldest_relevant_update(quotes, tracked) == T + timedelta(hours=9)

    def test_no_eligible_uses_true_minimum(self):
        quotes = {"coin-a": _quote("coin-a", 5), "coin-b": _quote("coin-b", 3)}
        tracked = [TrackedAsset("coin-a", "A"), TrackedAsset("coin-b", "B")]

        assert oldest_relevant_update(quotes, tracked) == T + timedelta(hours=3)

    def test_normalizes_and_dedupes_ids(self):
        quotes = {"bitcoin": _quote("bitcoin", 4)}
        tracked = [TrackedAsset(" Bitcoin "), TrackedAsset("BITCOIN"), TrackedAsset("")]

        assert oldest_relevant_update(quotes, tracked) == T + timedelta(hours=4)

    def test_missing_quotes_ignored(self):
        quotes = {"ethereum": _quote("ethereum", 6)}
        tracked = [TrackedAsset("bitcoin"), TrackedAsset("ethereum")]

        assert oldest_relevant_update(quotes, tracked) == T + timedelta(hours=6)

    def test_nothing_tracked(self):
        assert oldest_relevant_update({"bitcoin": _quote("bitcoin", 1)}, []) is None
