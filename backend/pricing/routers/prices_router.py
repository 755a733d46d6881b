"""
Price API routes

Thin HTTP layer over PriceService:
- Cached price listing with an as-of timestamp
- Debounced refresh of every tracked asset
- Price history (charting) and volatility
- Placeholder rows for newly added tokens
- Single token lookup through the full waterfall (rate-limited per IP)
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pricing.config import settings
from pricing.database import get_db
from pricing.exceptions import RateLimitError
from pricing.schemas import (
    EnsurePricesRequest,
    EnsurePricesResponse,
    PriceHistoryPointResponse,
    PriceHistoryResponse,
    PriceListResponse,
    PriceQuoteResponse,
    PriceRefreshResponse,
    TokenQuoteResponse,
    VolatilityEntry,
    VolatilityResponse,
)
from pricing.services.cooldown_service import rate_limit, retry_after
from pricing.services.price_service import PriceListing, PriceService
from pricing.services.price_store import DEFAULT_HISTORY_LIMIT, TrackedAsset
from pricing.services.volatility import compute_volatility_details, parse_lookback
from pricing.shared_store import SharedStore, get_shared_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["prices"])


def get_price_service(
    db: AsyncSession = Depends(get_db),
    store: SharedStore = Depends(get_shared_store),
) -> PriceService:
    return PriceService(db, store)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _listing_response(listing: PriceListing) -> PriceListResponse:
    return PriceListResponse(
        prices=[PriceQuoteResponse.model_validate(q) for q in listing.quotes],
        updated_at=listing.updated_at,
    )


@router.get("/prices", response_model=PriceListResponse)
async def list_prices(service: PriceService = Depends(get_price_service)):
    """All cached prices sorted by symbol"""
    return _listing_response(await service.list_current_quotes())


@router.post("/prices/refresh", response_model=PriceRefreshResponse)
async def refresh_prices(service: PriceService = Depends(get_price_service)):
    """
    Refresh every tracked price.

    Concurrent triggers collapse into one refresh; everybody gets the
    cached prices afterwards, with refreshed telling whether this call ran it.
    """
    outcome = await service.refresh_all()
    listing = _listing_response(await service.list_current_quotes())
    return PriceRefreshResponse(
        prices=listing.prices,
        updated_at=listing.updated_at,
        refreshed=outcome.refreshed,
    )


@router.get("/prices/history", response_model=PriceHistoryResponse)
async def get_price_history(
    asset_id: str = Query(..., alias="assetId"),
    service: PriceService = Depends(get_price_service),
):
    """Last 500 history points for one asset, oldest first"""
    points = await service.get_history(asset_id, limit=DEFAULT_HISTORY_LIMIT)
    return PriceHistoryResponse(
        asset_id=asset_id.strip().lower(),
        history=[PriceHistoryPointResponse.model_validate(p) for p in points],
    )


@router.get("/prices/volatility", response_model=VolatilityResponse)
async def get_volatility(
    lookback_days: Optional[str] = Query(None, alias="lookbackDays"),
    ids: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Volatility of simple returns per asset; out-of-range lookbacks are clamped"""
    lookback = parse_lookback(lookback_days)
    asset_ids: Optional[List[str]] = None
    if ids:
        asset_ids = [i for i in dict.fromkeys(part.strip().lower() for part in ids.split(",")) if i]

    details = await compute_volatility_details(db, lookback, asset_ids)
    return VolatilityResponse(
        lookback_days=lookback,
        volatility={
            asset_id: VolatilityEntry(
                volatility=result.volatility,
                annualized=result.annualized,
                data_points=result.data_points,
            )
            for asset_id, result in details.items()
        },
    )


@router.post("/prices/ensure", response_model=EnsurePricesResponse)
async def ensure_prices(
    request: EnsurePricesRequest,
    service: PriceService = Depends(get_price_service),
):
    """Create price rows for tokens that are not tracked yet"""
    tokens = [TrackedAsset(asset_id=t.asset_id or "", symbol=t.symbol) for t in request.tokens]
    outcome = await service.ensure_prices_exist(tokens)
    return EnsurePricesResponse(priced=outcome.priced, placeholders=outcome.placeholders)


@router.get("/tokens/{asset_id}", response_model=TokenQuoteResponse)
async def get_token_price(
    asset_id: str,
    http_request: Request,
    symbol: Optional[str] = Query(None),
    service: PriceService = Depends(get_price_service),
    store: SharedStore = Depends(get_shared_store),
):
    """Current price for one token via the full provider waterfall"""
    key = f"prices:token-lookup:{_client_ip(http_request)}"
    allowed = await rate_limit(
        store, key, settings.token_lookup_rate_limit, settings.token_lookup_rate_window_seconds
    )
    if not allowed:
        raise RateLimitError("Too many price lookups, try again later", retry_after=await retry_after(store, key))

    result = await service.get_current_quote(asset_id, symbol)
    return TokenQuoteResponse(
        asset_id=result.asset_id,
        symbol=result.symbol,
        price_usd=result.price_usd,
        change_24h=result.change_24h,
        source=result.source,
    )
