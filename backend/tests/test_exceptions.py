"""
Tests for backend/pricing/exceptions.py

Covers:
- Status codes for every domain exception
- CooldownActiveError is a RateLimitError carrying retry_after
"""

import pytest

from pricing.exceptions import (
    AppError,
    CooldownActiveError,
    NotFoundError,
    ProviderUnavailableError,
    RateLimitError,
    StoreUnavailableError,
    ValidationError,
)


@pytest.mark.parametrize("exc,status", [
    (ValidationError("bad"), 400),
    (NotFoundError(), 404),
    (RateLimitError("slow down"), 429),
    (CooldownActiveError(), 429),
    (StoreUnavailableError(), 503),
    (ProviderUnavailableError("okx"), 503),
])
def test_status_codes(exc, status):
    assert isinstance(exc, AppError)
    assert exc.status_code == status


def test_cooldown_is_rate_limit_with_retry_after():
    exc = CooldownActiveError(retry_after=120)
    assert isinstance(exc, RateLimitError)
    assert exc.retry_after == 120
    assert "cooling down" in exc.message


def test_provider_name_in_message():
    exc = ProviderUnavailableError("bybit", "HTTP 502")
    assert exc.provider == "bybit"
    assert exc.message == "bybit: HTTP 502"
