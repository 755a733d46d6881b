"""
Freshness Evaluator

Computes the single "as of" timestamp shown next to a price listing.
Assets priced only through the slow fallback are inherently staler, so
the minimum is taken over fast-path assets whenever any are tracked.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pricing.price_feeds.base import PriceQuote
from pricing.price_feeds.symbol_resolver import is_fast_path_eligible, normalize_asset_id
from pricing.services.price_store import TrackedAsset


def _min_updated_at(quotes: Dict[str, PriceQuote], asset_ids: List[str]) -> Optional[datetime]:
    oldest: Optional[datetime] = None
    for asset_id in asset_ids:
        quote = quotes.get(asset_id)
        if quote is None or quote.updated_at is None:
            continue
        if oldest is None or quote.updated_at < oldest:
            oldest = quote.updated_at
    return oldest


def oldest_relevant_update(
    quotes: Dict[str, PriceQuote], tracked: Iterable[TrackedAsset]
) -> Optional[datetime]:
    """
    Oldest updated_at among the fast-path eligible tracked assets.

    Falls back to the minimum over every tracked asset when none is
    eligible. Returns None when no tracked asset has a quote.
    """
    normalized_quotes = {normalize_asset_id(k): v for k, v in quotes.items()}

    asset_ids = list(dict.fromkeys(
        asset_id for asset_id in (normalize_asset_id(t.asset_id) for t in tracked) if asset_id
    ))
    eligible = [asset_id for asset_id in asset_ids if is_fast_path_eligible(asset_id)]

    if eligible:
        return _min_updated_at(normalized_quotes, eligible)
    return _min_updated_at(normalized_quotes, asset_ids)
