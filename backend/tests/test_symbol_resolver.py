"""
Tests for backend/pricing/price_feeds/symbol_resolver.py

Covers:
- Curated ids always win over the hint symbol
- Hint sanitization for long-tail assets
- None for unusable hints
- Fast-path eligibility (curated table only)
"""

import pytest

from pricing.price_feeds.symbol_resolver import (
    CURATED_SYMBOLS,
    is_fast_path_eligible,
    normalize_asset_id,
    normalize_symbol,
    resolve_ticker_symbol,
)


class TestResolveTickerSymbol:
    """Tests for resolve_ticker_symbol()"""

    @pytest.mark.parametrize("asset_id,expected", sorted(CURATED_SYMBOLS.items()))
    def test_curated_symbol_ignores_hint(self, asset_id, expected):
        """Happy path: every curated id resolves to its curated symbol whatever the hint."""
        assert resolve_ticker_symbol(asset_id, "WRONG") == expected
        assert resolve_ticker_symbol(asset_id, "eth/usdt") == expected
        assert resolve_ticker_symbol(asset_id, None) == expected

    def test_curated_lookup_normalizes_asset_id(self):
        """Edge case: ids are trimmed and lowercased before lookup."""
        assert resolve_ticker_symbol("  Bitcoin ", "XYZ") == "BTC"

    def test_curated_table_size(self):
        assert len(CURATED_SYMBOLS) == 39

    def test_hint_trimmed_and_uppercased(self):
        """Happy path: unknown id falls back to the sanitized hint."""
        assert resolve_ticker_symbol("1inch", "  1inch  ") == "1INCH"

    def test_hint_with_separator_rejected(self):
        """Failure: pair notation is not a base symbol."""
        assert resolve_ticker_symbol("some-token", "eth/usdt") is None

    def test_empty_hint_returns_none(self):
        assert resolve_ticker_symbol("some-token", "") is None
        assert resolve_ticker_symbol("some-token", None) is None

    def test_empty_asset_id_with_valid_hint(self):
        """Edge case: no asset id but a clean hint still yields the hint."""
        assert resolve_ticker_symbol("", "pepe") == "PEPE"

    def test_empty_asset_id_and_hint(self):
        assert resolve_ticker_symbol(None, None) is None


class TestNormalization:
    """Tests for normalize_asset_id() and normalize_symbol()"""

    def test_normalize_asset_id(self):
        assert normalize_asset_id("  ETHEREUM ") == "ethereum"
        assert normalize_asset_id(None) == ""

    @pytest.mark.parametrize("raw", ["btc-usd", "BTC USD", "", "   ", "eth_usdt", "ü"])
    def test_normalize_symbol_rejects(self, raw):
        assert normalize_symbol(raw) is None

    def test_normalize_symbol_accepts_digits(self):
        assert normalize_symbol("1000sats") == "1000SATS"


class TestFastPathEligibility:
    """Tests for is_fast_path_eligible()"""

    def test_curated_id_eligible(self):
        assert is_fast_path_eligible("bitcoin") is True
        assert is_fast_path_eligible(" Solana ") is True

    def test_unknown_id_not_eligible(self):
        """Edge case: a usable hint does not make an unknown id eligible."""
        assert is_fast_path_eligible("obscure-coin") is False
        assert is_fast_path_eligible("") is False
