"""
Background service for refreshing tracked asset prices.

Runs in the background and periodically calls PriceService.refresh_all(),
so it shares the refresh debounce with manual refresh requests. API
callers always read prices straight from the database.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from pricing.config import settings
from pricing.database import async_session_maker
from pricing.services.price_service import PriceService
from pricing.shared_store import get_shared_store

logger = logging.getLogger(__name__)

INITIAL_DELAY = 10  # Wait 10 seconds after startup


class PriceRefreshService:
    """Background service that periodically refreshes every tracked price."""

    def __init__(self, interval_minutes: Optional[int] = None, initial_delay: float = INITIAL_DELAY):
        self.interval_minutes = interval_minutes or settings.background_refresh_minutes
        self.initial_delay = initial_delay
        self._task = None
        self._running = False
        self._in_flight = False
        self._last_refresh: Optional[datetime] = None
        self._last_updated = 0

    async def start(self):
        """Start the background refresh task."""
        if self._running:
            logger.warning("Price refresh service already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._refresh_loop())
        logger.info(f"Price refresh service started (every {self.interval_minutes} min)")

    async def stop(self):
        """Stop the background refresh task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Price refresh service stopped")

    async def _refresh_loop(self):
        await asyncio.sleep(self.initial_delay)

        while self._running:
            await self.run_once()
            await asyncio.sleep(self.interval_minutes * 60)

    async def run_once(self) -> bool:
        """
        Run one refresh tick. Returns False if the tick was skipped because
        the previous one is still running.
        """
        if self._in_flight:
            logger.info("Price refresh: previous run still in flight, skipping tick")
            return False

        self._in_flight = True
        try:
            async with async_session_maker() as db:
                service = PriceService(db, get_shared_store())
                outcome = await service.refresh_all(detached=False)
            if outcome.refreshed:
                self._last_refresh = datetime.now(timezone.utc)
                self._last_updated = outcome.updated
                logger.info(f"Price refresh: updated {outcome.updated} prices")
            else:
                logger.info("Price refresh: debounced, another instance refreshed recently")
        except Exception as e:
            logger.error(f"Price refresh: failed to refresh prices: {e}")
        finally:
            self._in_flight = False
        return True

    @property
    def status(self) -> dict:
        """Get current status of the refresh service."""
        return {
            "running": self._running,
            "in_flight": self._in_flight,
            "last_refresh": self._last_refresh.isoformat() if self._last_refresh else None,
            "last_updated": self._last_updated,
            "interval_minutes": self.interval_minutes,
        }


# Global instance
price_refresh_service = PriceRefreshService()
