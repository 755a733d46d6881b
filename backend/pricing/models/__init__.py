"""
Database Models

All model classes are re-exported here:
    from pricing.models import Price, PriceHistory
"""

from pricing.database import Base  # noqa: F401
from pricing.models.prices import Price, PriceHistory

__all__ = [
    "Base",
    "Price",
    "PriceHistory",
]
