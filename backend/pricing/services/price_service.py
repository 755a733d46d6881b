"""
Price Service

Waterfall resolution for a single asset and batch refresh of every tracked
asset:

    Binance (fast path) -> secondary exchanges -> cached price -> CoinGecko

Provider failures are absorbed and logged here; only store failures and
bad input reach the caller. Cooldown and not-found are distinct outcomes
so the HTTP layer can tell "retry later" apart from "no price".
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from pricing.config import settings
from pricing.database import async_session_maker
from pricing.exceptions import CooldownActiveError, NotFoundError, ValidationError
from pricing.price_feeds.aggregator import SecondaryFeedAggregator
from pricing.price_feeds.base import SOURCE_CACHE, PriceFeed, PriceQuote, TickerQuote
from pricing.price_feeds.binance_feed import BinancePriceFeed
from pricing.price_feeds.coingecko_feed import CoinGeckoClient
from pricing.price_feeds.symbol_resolver import (
    normalize_asset_id,
    normalize_symbol,
    resolve_ticker_symbol,
)
from pricing.services.cooldown_service import REFRESH_DEBOUNCE_KEY, FallbackCooldown, debounce
from pricing.services.freshness import oldest_relevant_update
from pricing.services.price_store import PriceHistoryPoint, PriceStore, TrackedAsset
from pricing.shared_store import SharedStore

logger = logging.getLogger(__name__)

# Strong references to in-flight refreshes so they outlive a cancelled caller
_background_refreshes: Set[asyncio.Task] = set()


@dataclass(frozen=True)
class QuoteResult:
    asset_id: str
    price_usd: float
    change_24h: Optional[float]
    source: str
    symbol: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class RefreshOutcome:
    refreshed: bool
    updated: int = 0


@dataclass
class EnsureOutcome:
    priced: List[str] = field(default_factory=list)
    placeholders: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PriceListing:
    quotes: List[PriceQuote]
    updated_at: Optional[datetime]


def _from_cache(quote: PriceQuote) -> QuoteResult:
    return QuoteResult(
        asset_id=quote.asset_id,
        price_usd=quote.price_usd,
        change_24h=quote.change_24h,
        source=SOURCE_CACHE,
        symbol=quote.symbol,
        updated_at=quote.updated_at,
    )


def _on_refresh_done(task: asyncio.Task) -> None:
    _background_refreshes.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background price refresh failed: {exc}")


class PriceService:
    """
    Resolves and refreshes prices for one request.

    The session is request-scoped; refresh_all() runs its expensive path on
    a session of its own so it can finish after the caller goes away.
    """

    def __init__(
        self,
        db: AsyncSession,
        store: SharedStore,
        primary: Optional[PriceFeed] = None,
        secondary: Optional[SecondaryFeedAggregator] = None,
        fallback: Optional[CoinGeckoClient] = None,
        cooldown: Optional[FallbackCooldown] = None,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.db = db
        self.store = store
        self.price_store = PriceStore(db)
        self.primary = primary or BinancePriceFeed()
        self.secondary = secondary or SecondaryFeedAggregator()
        self.fallback = fallback or CoinGeckoClient()
        self.cooldown = cooldown or FallbackCooldown(store)
        self.session_factory = session_factory or async_session_maker

    # =========================================================================
    # Single asset waterfall
    # =========================================================================

    async def get_current_quote(self, asset_id: str, hint_symbol: Optional[str] = None) -> QuoteResult:
        """
        Current price for one asset.

        Raises:
            ValidationError: empty asset id
            CooldownActiveError: nothing cached and the fallback is cooling down
            NotFoundError: nothing cached and the fallback had no price
            StoreUnavailableError: database or shared store unreachable
        """
        normalized = normalize_asset_id(asset_id)
        if not normalized:
            raise ValidationError("asset_id is required")

        symbol = resolve_ticker_symbol(normalized, hint_symbol)
        if symbol:
            quote = await self.primary.get_price(symbol)
            if quote is None:
                quote = await self.secondary.fetch_one(symbol)
            if quote is not None:
                return await self._persist_ticker(normalized, symbol, quote)
        else:
            logger.debug(f"No fast-path symbol for {normalized}, skipping exchanges")

        cached = await self.price_store.get_quote(normalized)
        if cached is not None and cached.has_price:
            return _from_cache(cached)

        if not await self.cooldown.try_acquire(normalized):
            if cached is not None:
                return _from_cache(cached)
            retry_after = await self.cooldown.remaining(normalized)
            logger.info(f"CoinGecko fallback cooling down for {normalized}")
            raise CooldownActiveError(retry_after=retry_after)

        fallback = await self.fallback.get_price(normalized)
        if fallback is not None:
            best_symbol = (
                symbol
                or normalize_symbol(hint_symbol)
                or (cached.symbol if cached is not None else None)
                or normalized
            )
            persisted = await self.price_store.persist_quote(
                normalized, best_symbol, fallback.price_usd, fallback.change_24h
            )
            return QuoteResult(
                asset_id=normalized,
                price_usd=fallback.price_usd,
                change_24h=fallback.change_24h,
                source=fallback.source,
                symbol=best_symbol,
                updated_at=persisted.updated_at,
            )

        if cached is not None:
            return _from_cache(cached)
        raise NotFoundError(f"No price available for {normalized}")

    async def _persist_ticker(self, asset_id: str, symbol: str, quote: TickerQuote) -> QuoteResult:
        persisted = await self.price_store.persist_quote(asset_id, symbol, quote.price_usd, quote.change_24h)
        return QuoteResult(
            asset_id=asset_id,
            price_usd=quote.price_usd,
            change_24h=quote.change_24h,
            source=quote.source,
            symbol=symbol,
            updated_at=persisted.updated_at,
        )

    # =========================================================================
    # Batch refresh
    # =========================================================================

    async def refresh_all(self, detached: bool = True) -> RefreshOutcome:
        """
        Refresh every tracked asset, at most once per debounce window.

        Callers that lose the debounce return immediately with
        refreshed=False and read whatever is cached. A detached winner
        awaits a shielded task on its own session, so cancelling the winner
        does not stop the refresh. With detached=False the refresh runs
        inline on this service's session, for callers that own their task.
        """
        if not await debounce(self.store, REFRESH_DEBOUNCE_KEY, settings.refresh_debounce_seconds):
            logger.info("Price refresh triggered recently, serving cached prices")
            return RefreshOutcome(refreshed=False)

        if not detached:
            updated = await self.refresh_all_prices()
            return RefreshOutcome(refreshed=True, updated=updated)

        task = asyncio.create_task(self._refresh_in_own_session())
        _background_refreshes.add(task)
        task.add_done_callback(_on_refresh_done)

        updated = await asyncio.shield(task)
        return RefreshOutcome(refreshed=True, updated=updated)

    async def _refresh_in_own_session(self) -> int:
        async with self.session_factory() as db:
            return await self.refresh_all_prices(PriceStore(db))

    async def refresh_all_prices(self, price_store: Optional[PriceStore] = None) -> int:
        """
        Refresh every tracked asset; returns how many prices were persisted.

        Each asset is persisted on its own, there is no cross-asset
        transaction.
        """
        price_store = price_store or self.price_store
        tracked = await price_store.get_tracked_assets()
        if not tracked:
            return 0

        start = asyncio.get_running_loop().time()

        if settings.price_source == "coingecko":
            updated = await self._refresh_from_coingecko(price_store, tracked)
        else:
            updated, remaining = await self._price_from_exchanges(price_store, tracked)
            updated += await self._price_from_fallback(price_store, remaining)

        elapsed = asyncio.get_running_loop().time() - start
        logger.info(f"Refreshed {updated}/{len(tracked)} prices in {elapsed:.1f}s")
        return updated

    async def _price_from_exchanges(
        self, price_store: PriceStore, assets: List[TrackedAsset]
    ) -> Tuple[int, List[TrackedAsset]]:
        """Whole-market Binance, then whole-market secondaries for the misses"""
        symbols = {a.asset_id: resolve_ticker_symbol(a.asset_id, a.symbol) for a in assets}
        if not any(symbols.values()):
            return 0, list(assets)

        updated = 0
        pending = list(assets)
        for fetch_all in (self.primary.get_all_prices, self.secondary.fetch_all):
            if not any(symbols[a.asset_id] for a in pending):
                break
            market = await fetch_all()
            still_pending = []
            for asset in pending:
                symbol = symbols[asset.asset_id]
                quote = market.get(symbol) if symbol else None
                if quote is None:
                    still_pending.append(asset)
                    continue
                await price_store.persist_quote(asset.asset_id, symbol, quote.price_usd, quote.change_24h)
                updated += 1
            pending = still_pending

        return updated, pending

    async def _price_from_fallback(self, price_store: PriceStore, assets: List[TrackedAsset]) -> int:
        """CoinGecko for whatever the exchanges could not price, gated by the cooldown"""
        if not assets:
            return 0

        allowed, blocked = await self.cooldown.split(a.asset_id for a in assets)
        if blocked:
            logger.info(f"Skipping CoinGecko fallback for {len(blocked)} assets in cooldown")
        if not allowed:
            return 0

        by_id = {a.asset_id: a for a in assets}
        prices = await self.fallback.get_prices_batched(allowed)

        updated = 0
        for asset_id, price in prices.items():
            asset = by_id.get(asset_id)
            symbol = self._best_symbol(asset) if asset else asset_id
            await price_store.persist_quote(asset_id, symbol, price.price_usd, price.change_24h)
            updated += 1
        return updated

    async def _refresh_from_coingecko(self, price_store: PriceStore, assets: List[TrackedAsset]) -> int:
        prices = await self.fallback.get_prices_batched([a.asset_id for a in assets])
        updated = 0
        for asset in assets:
            price = prices.get(asset.asset_id)
            if price is None:
                continue
            await price_store.persist_quote(
                asset.asset_id, self._best_symbol(asset), price.price_usd, price.change_24h
            )
            updated += 1
        return updated

    @staticmethod
    def _best_symbol(asset: TrackedAsset) -> str:
        return resolve_ticker_symbol(asset.asset_id, asset.symbol) or asset.symbol or asset.asset_id

    # =========================================================================
    # Newly added tokens
    # =========================================================================

    async def ensure_prices_exist(self, tokens: Iterable[TrackedAsset]) -> EnsureOutcome:
        """
        Make sure every token has a prices row.

        Tokens already tracked are left alone. New ones are priced through the
        whole-market feeds and the fallback; whatever is still unpriced gets a
        zero-price placeholder so the next refresh picks it up.
        """
        wanted: Dict[str, TrackedAsset] = {}
        for token in tokens:
            asset_id = normalize_asset_id(token.asset_id)
            symbol = (token.symbol or "").strip().upper()
            if not asset_id or not symbol:
                continue
            wanted.setdefault(asset_id, TrackedAsset(asset_id=asset_id, symbol=symbol))

        outcome = EnsureOutcome()
        if not wanted:
            return outcome

        existing = await self.price_store.get_existing_asset_ids(wanted.keys())
        missing = [asset for asset_id, asset in wanted.items() if asset_id not in existing]
        if not missing:
            return outcome

        remaining = missing
        if settings.price_source != "coingecko":
            _, remaining = await self._price_from_exchanges(self.price_store, missing)
        await self._price_from_fallback(self.price_store, remaining)

        for asset in missing:
            if await self.price_store.get_quote(asset.asset_id) is not None:
                outcome.priced.append(asset.asset_id)
                continue
            await self.price_store.insert_placeholder(asset.asset_id, asset.symbol)
            outcome.placeholders.append(asset.asset_id)

        if outcome.placeholders:
            logger.info(f"Inserted {len(outcome.placeholders)} placeholder prices: {outcome.placeholders}")
        return outcome

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_current_quotes(self) -> PriceListing:
        """All cached quotes ordered by symbol, with the freshness as-of timestamp"""
        quotes = await self.price_store.get_all_quotes()
        ordered = sorted(quotes.values(), key=lambda q: ((q.symbol or "").upper(), q.asset_id))
        tracked = [TrackedAsset(asset_id=q.asset_id, symbol=q.symbol) for q in ordered]
        return PriceListing(quotes=ordered, updated_at=oldest_relevant_update(quotes, tracked))

    async def get_history(self, asset_id: str, limit: int = 500) -> List[PriceHistoryPoint]:
        normalized = normalize_asset_id(asset_id)
        if not normalized:
            raise ValidationError("assetId is required")
        return await self.price_store.get_history(normalized, limit=limit, order="asc")
