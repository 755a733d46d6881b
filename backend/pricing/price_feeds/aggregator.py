"""
Secondary Feed Aggregator

Combines the secondary exchange feeds into one symbol -> quote view.
Feeds are consulted in a fixed priority order (OKX, Bybit, MEXC, Gate) and
the first feed that prices a symbol wins; later feeds only fill gaps.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from pricing.config import settings
from pricing.price_feeds.base import PriceFeed, TickerQuote
from pricing.price_feeds.secondary_exchanges import create_secondary_feeds
from pricing.price_feeds.symbol_resolver import normalize_symbol

logger = logging.getLogger(__name__)


def merge_by_priority(price_maps: Iterable[Dict[str, TickerQuote]]) -> Dict[str, TickerQuote]:
    """
    Reduce per-feed price maps (highest priority first) into one map.

    A symbol keeps the quote of the first map that contains it. This is
    neither an average nor a most-recent rule.
    """
    merged: Dict[str, TickerQuote] = {}
    for price_map in price_maps:
        for symbol, quote in price_map.items():
            if symbol not in merged:
                merged[symbol] = quote
    return merged


class SecondaryFeedAggregator:
    """
    Aggregates the secondary exchange feeds.

    Usage:
        aggregator = SecondaryFeedAggregator()
        prices = await aggregator.fetch_all()
        quote = await aggregator.fetch_one("SOL")
    """

    def __init__(
        self,
        feeds: Optional[List[PriceFeed]] = None,
        timeout: Optional[float] = None,
        round_timeout: Optional[float] = None,
    ):
        """
        Initialize aggregator with price feeds.

        Args:
            feeds: Feeds in priority order (defaults to OKX, Bybit, MEXC, Gate)
            timeout: Per-feed timeout in seconds
            round_timeout: Upper bound for a whole-market round in seconds
        """
        self.feeds = feeds if feeds is not None else create_secondary_feeds()
        self.timeout = timeout if timeout is not None else settings.secondary_timeout_seconds
        self.round_timeout = (
            round_timeout if round_timeout is not None else settings.secondary_round_timeout_seconds
        )

    async def _fetch_all_from(self, feed: PriceFeed) -> Dict[str, TickerQuote]:
        try:
            return await asyncio.wait_for(feed.get_all_prices(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timeout fetching whole market from {feed.name}")
            return {}
        except Exception as e:
            logger.error(f"Error fetching whole market from {feed.name}: {e}")
            return {}

    async def fetch_all(self) -> Dict[str, TickerQuote]:
        """
        Fetch every feed's whole market concurrently and merge by priority.

        Feeds still running when the round timeout expires are cancelled
        and contribute nothing; completed feeds are still merged.
        """
        if not self.feeds:
            return {}

        tasks = [asyncio.create_task(self._fetch_all_from(feed)) for feed in self.feeds]
        done, pending = await asyncio.wait(tasks, timeout=self.round_timeout)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            names = [feed.name for feed, task in zip(self.feeds, tasks) if task in pending]
            logger.warning(f"Secondary round timed out, skipping: {', '.join(names)}")

        # Keep priority order, not completion order
        price_maps = [task.result() if task in done else {} for task in tasks]
        return merge_by_priority(price_maps)

    async def fetch_one(self, symbol: str) -> Optional[TickerQuote]:
        """
        Fetch one symbol, walking feeds in priority order.

        Stops at the first feed that returns a valid quote, so lower
        priority feeds are not called when a higher one answers.
        """
        normalized = normalize_symbol(symbol)
        if not normalized:
            return None

        for feed in self.feeds:
            try:
                quote = await asyncio.wait_for(feed.get_price(normalized), timeout=self.timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Timeout fetching {normalized} from {feed.name}")
                continue
            except Exception as e:
                logger.error(f"Error fetching {normalized} from {feed.name}: {e}")
                continue

            if quote is not None and quote.price_usd > 0:
                return quote

        return None
