"""
Price Feeds Module

Upstream price sources used by the pricing waterfall.

Components:
- PriceFeed: Abstract base class for exchange feeds
- BinancePriceFeed: Primary fast-path exchange feed
- OkxPriceFeed / BybitPriceFeed / MexcPriceFeed / GatePriceFeed: Secondary exchanges
- SecondaryFeedAggregator: Priority merge over the secondary exchanges
- CoinGeckoClient: Slow universal fallback keyed by CoinGecko id
- resolve_ticker_symbol: CoinGecko id -> exchange symbol
"""

from pricing.price_feeds.base import PriceFeed, PriceQuote, TickerQuote
from pricing.price_feeds.aggregator import SecondaryFeedAggregator, merge_by_priority
from pricing.price_feeds.binance_feed import BinancePriceFeed
from pricing.price_feeds.coingecko_feed import CoinGeckoClient, FallbackPrice
from pricing.price_feeds.secondary_exchanges import (
    BybitPriceFeed,
    GatePriceFeed,
    MexcPriceFeed,
    OkxPriceFeed,
    create_secondary_feeds,
)
from pricing.price_feeds.symbol_resolver import resolve_ticker_symbol

__all__ = [
    "PriceFeed",
    "PriceQuote",
    "TickerQuote",
    "SecondaryFeedAggregator",
    "merge_by_priority",
    "BinancePriceFeed",
    "CoinGeckoClient",
    "FallbackPrice",
    "OkxPriceFeed",
    "BybitPriceFeed",
    "MexcPriceFeed",
    "GatePriceFeed",
    "create_secondary_feeds",
    "resolve_ticker_symbol",
]
