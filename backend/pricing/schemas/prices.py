"""Price listing, history and volatility Pydantic schemas (camelCase on the wire)"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # to_camel turns change_24h into change24H; digit fields declare their alias
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class PriceQuoteResponse(CamelModel):
    asset_id: str
    symbol: Optional[str]
    price_usd: float
    change_24h: Optional[float] = Field(alias="change24h")
    updated_at: Optional[datetime]


class PriceListResponse(CamelModel):
    prices: List[PriceQuoteResponse]
    updated_at: Optional[datetime]


class PriceRefreshResponse(PriceListResponse):
    refreshed: bool


class PriceHistoryPointResponse(CamelModel):
    price_usd: float
    recorded_at: datetime


class PriceHistoryResponse(CamelModel):
    asset_id: str
    history: List[PriceHistoryPointResponse]


class VolatilityEntry(CamelModel):
    volatility: float
    annualized: float
    data_points: int


class VolatilityResponse(CamelModel):
    lookback_days: int
    volatility: Dict[str, VolatilityEntry]


class EnsureTokenRequest(CamelModel):
    asset_id: Optional[str] = None
    symbol: Optional[str] = None


class EnsurePricesRequest(CamelModel):
    tokens: List[EnsureTokenRequest]


class EnsurePricesResponse(CamelModel):
    priced: List[str]
    placeholders: List[str]


class TokenQuoteResponse(CamelModel):
    asset_id: str
    symbol: Optional[str]
    price_usd: float
    change_24h: Optional[float] = Field(alias="change24h")
    source: str
