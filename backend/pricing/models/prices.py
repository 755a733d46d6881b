"""Price models: current quote per asset and the append-only history log."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Index, Integer, String

from pricing.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Price(Base):
    """
    Current price for one tracked asset.

    One row per asset id, overwritten on every successful fetch. A row with
    price_usd == 0 is a placeholder waiting for the next refresh.
    """
    __tablename__ = "prices"

    asset_id = Column(String, primary_key=True)
    symbol = Column(String, nullable=False, index=True)
    price_usd = Column(Float, nullable=False)
    change_24h = Column(Float, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class PriceHistory(Base):
    """Append-only log of every persisted price. Rows are never updated."""
    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    asset_id = Column(String, nullable=False)
    price_usd = Column(Float, nullable=False)
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("idx_price_history_asset_recorded", "asset_id", "recorded_at"),
    )
