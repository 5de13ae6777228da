"""Tests for the daily document number counters."""

from datetime import date

from shared.database import unit_of_work
from shared.numbering import format_number, next_number


class TestFormatNumber:
    def test_format(self):
        assert format_number("PFM", date(2026, 3, 7), 12) == "PFM20260307-0012"

    def test_sequence_wider_than_four_digits(self):
        assert format_number("BKG", date(2026, 3, 7), 12345) == "BKG20260307-12345"


class TestNextNumber:
    def test_first_number_of_the_day(self):
        with unit_of_work() as session:
            assert next_number(session, "order", "PFM", date(2026, 3, 7)) == "PFM20260307-0001"

    def test_numbers_increase_within_a_day(self):
        day = date(2026, 3, 7)
        with unit_of_work() as session:
            first = next_number(session, "order", "PFM", day)
        with unit_of_work() as session:
            second = next_number(session, "order", "PFM", day)
            third = next_number(session, "order", "PFM", day)

        assert [first, second, third] == ["PFM20260307-0001", "PFM20260307-0002", "PFM20260307-0003"]

    def test_sequence_restarts_each_day(self):
        with unit_of_work() as session:
            next_number(session, "order", "PFM", date(2026, 3, 7))
            assert next_number(session, "order", "PFM", date(2026, 3, 8)) == "PFM20260308-0001"

    def test_scopes_are_independent(self):
        day = date(2026, 3, 7)
        with unit_of_work() as session:
            next_number(session, "order", "PFM", day)
            assert next_number(session, "booking", "BKG", day) == "BKG20260307-0001"

    def test_rolled_back_numbers_are_reissued(self):
        day = date(2026, 3, 7)
        try:
            with unit_of_work() as session:
                next_number(session, "order", "PFM", day)
                raise RuntimeError("checkout failed")
        except RuntimeError:
            pass

        with unit_of_work() as session:
            assert next_number(session, "order", "PFM", day) == "PFM20260307-0001"
