"""Centralized Pydantic schemas for API requests/responses"""

from .prices import (
    EnsurePricesRequest,
    EnsurePricesResponse,
    EnsureTokenRequest,
    PriceHistoryPointResponse,
    PriceHistoryResponse,
    PriceListResponse,
    PriceQuoteResponse,
    PriceRefreshResponse,
    TokenQuoteResponse,
    VolatilityEntry,
    VolatilityResponse,
)

__all__ = [
    # Listing schemas
    "PriceQuoteResponse",
    "PriceListResponse",
    "PriceRefreshResponse",
    # History / analytics schemas
    "PriceHistoryPointResponse",
    "PriceHistoryResponse",
    "VolatilityEntry",
    "VolatilityResponse",
    # Token schemas
    "EnsureTokenRequest",
    "EnsurePricesRequest",
    "EnsurePricesResponse",
    "TokenQuoteResponse",
]
