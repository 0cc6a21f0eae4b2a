"""
Tests for the pure helpers: amount shorthand, periods, fuzzy matching and
Indonesian formatting.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from kantong.exceptions import InvalidPeriodError
from kantong.utils.amounts import parse_amount
from kantong.utils.formatting import format_currency, month_label, short_month_label
from kantong.utils.matching import best_match, tokenize
from kantong.utils.periods import local_day_start, previous_year_month, resolve_period


class TestParseAmount:

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("50rb", "50000"),
            ("50 ribu", "50000"),
            ("1.5jt", "1500000"),
            ("1,5 juta", "1500000"),
            ("1jt 500", "1500000"),
            ("2jt 250rb", "2250000"),
            ("2500", "2500"),
            ("25k", "25000"),
            ("Rp 25.000", "25000"),
            ("Rp1.250.000", "1250000"),
            ("2m", "2000000"),
            ("beli makan 25rb", "25000"),
        ],
    )
    def test_shorthand(self, text, expected):
        assert parse_amount(text) == Decimal(expected)

    def test_numbers_pass_through(self):
        assert parse_amount(15000) == Decimal("15000")
        assert parse_amount(12.5) == Decimal("12.5")
        assert parse_amount(Decimal("7")) == Decimal("7")

    def test_numbers_are_rounded_to_cents(self):
        assert parse_amount(0.004) == Decimal("0")
        assert parse_amount(12.346) == Decimal("12.35")
        assert parse_amount(Decimal("1.999")) == Decimal("2.00")

    @pytest.mark.parametrize("value", ["gratis", "", None, True, [1]])
    def test_no_amount(self, value):
        with pytest.raises(ValueError):
            parse_amount(value)


class TestPeriods:

    NOW = datetime(2025, 3, 15, 10, 30, tzinfo=timezone.utc)

    def test_today(self):
        start, end = resolve_period("today", now=self.NOW)
        assert start == datetime(2025, 3, 15, tzinfo=timezone.utc)
        assert end == datetime(2025, 3, 16, tzinfo=timezone.utc)

    def test_this_month(self):
        start, end = resolve_period("this_month", now=self.NOW)
        assert start == datetime(2025, 3, 1, tzinfo=timezone.utc)
        assert end == datetime(2025, 4, 1, tzinfo=timezone.utc)

    def test_last_month_across_year(self):
        january = datetime(2025, 1, 10, tzinfo=timezone.utc)
        start, end = resolve_period("last_month", now=january)
        assert start == datetime(2024, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert previous_year_month(january) == "2024-12"

    def test_specific_month_december(self):
        start, end = resolve_period("specific_month", "2024-12", now=self.NOW)
        assert start == datetime(2024, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_unfiltered_periods(self):
        assert resolve_period("all_time", now=self.NOW) is None
        assert resolve_period("specific_month", None, now=self.NOW) is None

    @pytest.mark.parametrize("period, month", [("weekly", None), ("specific_month", "2025-1"), ("specific_month", "2025-00")])
    def test_invalid(self, period, month):
        with pytest.raises(InvalidPeriodError):
            resolve_period(period, month, now=self.NOW)

    def test_local_timezone(self, monkeypatch):
        from kantong.config import settings

        monkeypatch.setattr(settings, "TIMEZONE", "Asia/Jakarta")
        # Midnight in Jakarta (UTC+7) is 17:00 UTC the day before
        assert local_day_start(date(2025, 1, 15)) == datetime(2025, 1, 14, 17, tzinfo=timezone.utc)


class TestBestMatch:

    def test_exact_match_wins(self):
        names = ["mawar merah import", "Mawar Merah"]
        assert best_match("mawar merah", names) == "Mawar Merah"

    def test_highest_overlap(self):
        names = ["pita satin", "kertas cellophane", "kertas buket korea"]
        assert best_match("kertas korea", names) == "kertas buket korea"

    def test_tie_goes_to_first(self):
        names = ["mawar putih", "mawar pink"]
        assert best_match("mawar", names) == "mawar putih"

    def test_no_shared_tokens(self):
        assert best_match("lily", ["mawar putih", "pita"]) is None

    def test_key_function(self):
        items = [{"name": "Pita Satin"}, {"name": "Pita Organza"}]
        assert best_match("organza", items, key=lambda item: item["name"]) == items[1]

    def test_tokenize(self):
        assert tokenize("Mawar-Merah 10pcs!") == ["mawar", "merah", "10pcs"]


class TestFormatting:

    @pytest.mark.parametrize(
        "amount, expected",
        [
            (Decimal("1500000"), "Rp 1.500.000"),
            (Decimal("0"), "Rp 0"),
            (Decimal("999"), "Rp 999"),
            (Decimal("-25000"), "-Rp 25.000"),
            (Decimal("1234.50"), "Rp 1.234,5"),
        ],
    )
    def test_currency(self, amount, expected):
        assert format_currency(amount) == expected

    def test_month_labels(self):
        assert month_label("2025-01") == "Januari 2025"
        assert short_month_label("2025-08") == "Agu 2025"
