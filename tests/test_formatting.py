"""Tests for formatting — currency and date display."""

from datetime import timezone

from dailybudget.formatting import format_amount, format_currency, format_date

NBSP = "\u00a0"


class TestFormatCurrency:
    def test_small_amount(self):
        assert format_currency(12.5) == f"12,50{NBSP}€"

    def test_grouping(self):
        assert format_currency(1234.5) == f"1{NBSP}234,50{NBSP}€"

    def test_millions(self):
        assert format_amount(1234567.891) == f"1{NBSP}234{NBSP}567,89"

    def test_negative_shows_magnitude(self):
        assert format_currency(-42) == f"42,00{NBSP}€"

    def test_other_currency(self):
        assert format_currency(10, "SEK") == f"10,00{NBSP}kr"
        assert format_currency(10, "usd") == f"10,00{NBSP}$"

    def test_unknown_currency_uses_code(self):
        assert format_currency(10, "XYZ") == f"10,00{NBSP}XYZ"


class TestFormatDate:
    def test_iso(self):
        assert format_date("2026-10-05T14:07:00.000Z", timezone.utc) == "5.10. 14.07"

    def test_epoch(self):
        assert format_date(1760000000000, timezone.utc) == "9.10. 08.53"

    def test_invalid(self):
        assert format_date("nope") == "Unknown date"
        assert format_date(None) == "Unknown date"
