from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./prices.db"
    database_echo: bool = False

    # Shared key-value store (rate limits, cooldowns, debounce flags)
    redis_url: str = "redis://localhost:6379/0"

    # Feed timeouts (seconds)
    primary_single_timeout_seconds: float = 5.0
    primary_all_timeout_seconds: float = 15.0
    secondary_timeout_seconds: float = 8.0
    secondary_round_timeout_seconds: float = 12.0
    coingecko_timeout_seconds: float = 10.0

    # CoinGecko fallback protection
    coingecko_fallback_fetches_per_day: int = 4
    fallback_cooldown_scope: str = "asset"  # asset or global

    # Refresh pipeline: "binance" runs the exchange waterfall, "coingecko" skips it
    price_source: str = "binance"
    refresh_debounce_seconds: int = 60

    # Background refresh scheduler
    background_refresh_enabled: bool = True
    background_refresh_minutes: int = 15

    # Per-IP limit for single token lookups
    token_lookup_rate_limit: int = 30
    token_lookup_rate_window_seconds: int = 60

    # Security
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    @field_validator("fallback_cooldown_scope")
    @classmethod
    def check_cooldown_scope(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("asset", "global"):
            raise ValueError("fallback_cooldown_scope must be 'asset' or 'global'")
        return v

    @field_validator("price_source")
    @classmethod
    def check_price_source(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("binance", "coingecko"):
            raise ValueError("price_source must be 'binance' or 'coingecko'")
        return v

    @field_validator("background_refresh_minutes")
    @classmethod
    def clamp_refresh_minutes(cls, v: int) -> int:
        """Keep the scheduler between once a minute and once a day"""
        if v < 1:
            return 15
        return min(v, 24 * 60)

    @property
    def fallback_cooldown_seconds(self) -> int:
        fetches = max(1, self.coingecko_fallback_fetches_per_day)
        return (24 * 60 * 60) // fetches

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
