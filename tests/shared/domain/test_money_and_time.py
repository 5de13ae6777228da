"""Tests for the money and time helpers."""

from datetime import UTC, datetime
from decimal import Decimal

from shared.database import as_utc, to_money


class TestToMoney:
    def test_rounds_half_up_to_cents(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money("10.004") == Decimal("10.00")

    def test_accepts_floats_without_binary_noise(self):
        assert to_money(0.1 + 0.2) == Decimal("0.30")

    def test_integers(self):
        assert to_money(200) == Decimal("200.00")


class TestAsUtc:
    def test_naive_values_are_treated_as_utc(self):
        assert as_utc(datetime(2026, 1, 1, 12)) == datetime(2026, 1, 1, 12, tzinfo=UTC)

    def test_aware_values_are_untouched(self):
        value = datetime(2026, 1, 1, 12, tzinfo=UTC)
        assert as_utc(value) is value

    def test_none(self):
        assert as_utc(None) is None
