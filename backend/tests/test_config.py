"""
Tests for backend/pricing/config.py

Covers:
- Defaults
- Validation of enumerated settings
- Refresh interval clamping and derived fallback cooldown
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from pricing.config import Settings


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.price_source == "binance"
        assert s.fallback_cooldown_scope == "asset"
        assert s.refresh_debounce_seconds == 60
        assert s.fallback_cooldown_seconds == 21600

    def test_cooldown_follows_fetches_per_day(self):
        assert Settings(_env_file=None, coingecko_fallback_fetches_per_day=24).fallback_cooldown_seconds == 3600

    @pytest.mark.parametrize("field", ["price_source", "fallback_cooldown_scope"])
    def test_rejects_unknown_values(self, field):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, **{field: "nope"})

    def test_values_normalized(self):
        s = Settings(_env_file=None, price_source=" CoinGecko ", fallback_cooldown_scope="GLOBAL")
        assert s.price_source == "coingecko"
        assert s.fallback_cooldown_scope == "global"

    @pytest.mark.parametrize("minutes,expected", [(0, 15), (-5, 15), (5, 5), (5000, 1440)])
    def test_refresh_minutes_clamped(self, minutes, expected):
        assert Settings(_env_file=None, background_refresh_minutes=minutes).background_refresh_minutes == expected
