"""
Volatility Evaluator

Historical volatility per asset from the price_history log.

The statistic is the population standard deviation (ddof=0) of simple
returns between consecutive history points inside the lookback window.
It is not annualized; use annualize() for that.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from itertools import groupby
from typing import Dict, Iterable, List, Optional

import numpy as np
from sqlalchemy.ext.asyncio import AsyncSession

from pricing.exceptions import ValidationError
from pricing.price_feeds.symbol_resolver import normalize_asset_id
from pricing.services.price_store import PriceHistoryPoint, PriceStore

logger = logging.getLogger(__name__)

MIN_LOOKBACK_DAYS = 7
MAX_LOOKBACK_DAYS = 365
DEFAULT_LOOKBACK_DAYS = 30
PERIODS_PER_YEAR = 365

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class VolatilityResult:
    asset_id: str
    volatility: float
    annualized: float
    data_points: int


def simple_returns(prices: List[float]) -> List[float]:
    """(p[i] - p[i-1]) / p[i-1]; pairs with a non-positive previous price are skipped"""
    returns = []
    for prev, curr in zip(prices, prices[1:]):
        if prev <= 0:
            continue
        returns.append((curr - prev) / prev)
    return returns


def population_std(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return float(np.std(np.array(values, dtype=float)))


def annualize(std: float, periods_per_year: int = PERIODS_PER_YEAR) -> float:
    return std * math.sqrt(periods_per_year)


def validate_lookback(lookback_days: int) -> int:
    if lookback_days < MIN_LOOKBACK_DAYS or lookback_days > MAX_LOOKBACK_DAYS:
        raise ValidationError(
            f"lookback_days must be between {MIN_LOOKBACK_DAYS} and {MAX_LOOKBACK_DAYS}"
        )
    return lookback_days


def clamp_lookback(lookback_days: Optional[int]) -> int:
    """Query-string friendly variant: missing -> default, out of range -> nearest bound"""
    if lookback_days is None:
        return DEFAULT_LOOKBACK_DAYS
    return max(MIN_LOOKBACK_DAYS, min(MAX_LOOKBACK_DAYS, lookback_days))


def parse_lookback(raw: Optional[str]) -> int:
    """Parse a raw lookbackDays query value; unparseable values fall back to the default"""
    match = _LEADING_INT.match(raw or "")
    if not match:
        return DEFAULT_LOOKBACK_DAYS
    return clamp_lookback(int(match.group(1)))


def volatility_from_points(points: List[PriceHistoryPoint]) -> Optional[float]:
    """None when there is not enough data (fewer than 2 points or no usable return)"""
    if len(points) < 2:
        return None
    return population_std(simple_returns([p.price_usd for p in points]))


async def compute_volatility_details(
    db: AsyncSession,
    lookback_days: int,
    asset_ids: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, VolatilityResult]:
    """
    Volatility for each requested asset (all assets with history if none given).

    Assets with insufficient history get no entry at all, which keeps
    "unknown" distinct from a genuine zero.
    """
    validate_lookback(lookback_days)
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=lookback_days)

    ids = None
    if asset_ids is not None:
        ids = list(dict.fromkeys(i for i in (normalize_asset_id(a) for a in asset_ids) if i))
        if not ids:
            return {}

    points = await PriceStore(db).get_history_since(cutoff, ids)

    results: Dict[str, VolatilityResult] = {}
    for asset_id, group in groupby(points, key=lambda p: p.asset_id):
        asset_points = list(group)
        std = volatility_from_points(asset_points)
        if std is None:
            continue
        results[asset_id] = VolatilityResult(
            asset_id=asset_id,
            volatility=std,
            annualized=annualize(std),
            data_points=len(asset_points),
        )

    logger.debug(f"Computed volatility for {len(results)} assets over {lookback_days}d")
    return results


async def compute_volatility(
    db: AsyncSession,
    lookback_days: int,
    asset_ids: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, float]:
    details = await compute_volatility_details(db, lookback_days, asset_ids, now=now)
    return {asset_id: result.volatility for asset_id, result in details.items()}
