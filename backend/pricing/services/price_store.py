"""
Price Cache & History Store

Durable current-price table (one row per asset) plus the append-only price
history. Every persisted quote writes its history point in the same
transaction as the upsert, so history can never drift from the current
price.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pricing.exceptions import StoreUnavailableError, ValidationError
from pricing.models import Price, PriceHistory
from pricing.price_feeds.base import SOURCE_CACHE, PriceQuote

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 500


@dataclass(frozen=True)
class PriceHistoryPoint:
    asset_id: str
    price_usd: float
    recorded_at: datetime


@dataclass(frozen=True)
class TrackedAsset:
    asset_id: str
    symbol: Optional[str] = None


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_quote(row: Price) -> PriceQuote:
    return PriceQuote(
        asset_id=row.asset_id,
        symbol=row.symbol,
        price_usd=row.price_usd,
        change_24h=row.change_24h,
        updated_at=as_utc(row.updated_at),
        source=SOURCE_CACHE,
    )


class PriceStore:
    """Read/write access to the prices and price_history tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(Price)
        return sqlite_insert(Price)

    async def persist_quote(
        self,
        asset_id: str,
        symbol: str,
        price_usd: float,
        change_24h: Optional[float],
        now: Optional[datetime] = None,
    ) -> PriceQuote:
        """
        Upsert the current quote and append one history point, atomically.

        symbol, price, change and updated_at are all overwritten on conflict.
        """
        if price_usd is None or price_usd < 0:
            raise ValidationError(f"Invalid price for {asset_id}: {price_usd}")
        now = now or datetime.now(timezone.utc)

        values = {
            "asset_id": asset_id,
            "symbol": symbol,
            "price_usd": price_usd,
            "change_24h": change_24h,
            "updated_at": now,
        }
        stmt = self._insert().values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Price.asset_id],
            set_={k: v for k, v in values.items() if k != "asset_id"},
        )

        try:
            await self.db.execute(stmt)
            self.db.add(PriceHistory(asset_id=asset_id, price_usd=price_usd, recorded_at=now))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to persist price for {asset_id}: {e}")
            raise StoreUnavailableError("Failed to persist price") from e

        return PriceQuote(
            asset_id=asset_id,
            symbol=symbol,
            price_usd=price_usd,
            change_24h=change_24h,
            updated_at=as_utc(now),
        )

    async def insert_placeholder(self, asset_id: str, symbol: str, now: Optional[datetime] = None) -> None:
        """
        Insert a zero-price row if the asset has none yet.

        No history point is written; the next refresh fills in the price.
        """
        now = now or datetime.now(timezone.utc)
        stmt = self._insert().values(
            asset_id=asset_id, symbol=symbol, price_usd=0.0, change_24h=None, updated_at=now
        ).on_conflict_do_nothing(index_elements=[Price.asset_id])

        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreUnavailableError("Failed to insert placeholder price") from e

    async def get_quote(self, asset_id: str) -> Optional[PriceQuote]:
        query = (
            select(Price)
            .where(Price.asset_id == asset_id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise StoreUnavailableError("Failed to read price") from e
        row = result.scalars().first()
        return _to_quote(row) if row else None

    async def get_all_quotes(self) -> Dict[str, PriceQuote]:
        query = select(Price).execution_options(populate_existing=True)
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise StoreUnavailableError("Failed to read prices") from e
        return {row.asset_id: _to_quote(row) for row in result.scalars().all()}

    async def get_tracked_assets(self) -> List[TrackedAsset]:
        try:
            result = await self.db.execute(select(Price.asset_id, Price.symbol))
        except SQLAlchemyError as e:
            raise StoreUnavailableError("Failed to read tracked assets") from e
        return [TrackedAsset(asset_id=row.asset_id, symbol=row.symbol) for row in result.all()]

    async def get_existing_asset_ids(self, asset_ids: Iterable[str]) -> Set[str]:
        ids = list(asset_ids)
        if not ids:
            return set()
        try:
            result = await self.db.execute(select(Price.asset_id).where(Price.asset_id.in_(ids)))
        except SQLAlchemyError as e:
            raise StoreUnavailableError("Failed to read prices") from e
        return set(result.scalars().all())

    async def get_history(
        self, asset_id: str, limit: int = DEFAULT_HISTORY_LIMIT, order: str = "asc"
    ) -> List[PriceHistoryPoint]:
        """
        Most recent `limit` history points for an asset.

        Rows are fetched newest first; order="asc" returns them in
        chronological order for charting.
        """
        if order not in ("asc", "desc"):
            raise ValidationError("order must be 'asc' or 'desc'")
        if limit <= 0:
            return []

        query = (
            select(PriceHistory)
            .where(PriceHistory.asset_id == asset_id)
            .order_by(PriceHistory.recorded_at.desc(), PriceHistory.id.desc())
            .limit(limit)
        )
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise StoreUnavailableError("Failed to read price history") from e

        points = [
            PriceHistoryPoint(asset_id=row.asset_id, price_usd=row.price_usd, recorded_at=as_utc(row.recorded_at))
            for row in result.scalars().all()
        ]
        if order == "asc":
            points.reverse()
        return points

    async def get_history_since(
        self, cutoff: datetime, asset_ids: Optional[Iterable[str]] = None
    ) -> List[PriceHistoryPoint]:
        """History points recorded at or after cutoff, ordered by asset then time"""
        query = select(PriceHistory).where(PriceHistory.recorded_at >= cutoff)
        ids = list(asset_ids) if asset_ids else []
        if ids:
            query = query.where(PriceHistory.asset_id.in_(ids))
        query = query.order_by(PriceHistory.asset_id, PriceHistory.recorded_at, PriceHistory.id)

        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise StoreUnavailableError("Failed to read price history") from e

        return [
            PriceHistoryPoint(asset_id=row.asset_id, price_usd=row.price_usd, recorded_at=as_utc(row.recorded_at))
            for row in result.scalars().all()
        ]
