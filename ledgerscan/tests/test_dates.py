"""Tests for date normalization."""

import pytest

from ledgerscan.parsers.dates import UnrecognizedDateError, normalize_date


class TestNormalizeDate:
    """Test conversion of model date strings to YYYY-MM-DD."""

    def test_month_year(self):
        """MM/YY should become the first day of the month."""
        assert normalize_date("03/24") == "2024-03-01"

    def test_day_month_short_year(self):
        """DD/MM/YY should expand the year into the 2000s."""
        assert normalize_date("15/03/24") == "2024-03-15"

    def test_day_month_full_year(self):
        """DD/MM/YYYY should be read day-first by default."""
        assert normalize_date("15/03/2024") == "2024-03-15"

    def test_month_first_hint(self):
        """With day_first=False, NN/NN/YYYY should be read month-first."""
        assert normalize_date("03/15/2024", day_first=False) == "2024-03-15"

    def test_short_forms_ignore_day_first(self):
        """The hint only applies to the four-digit year shape."""
        assert normalize_date("15/03/24", day_first=False) == "2024-03-15"
        assert normalize_date("03/24", day_first=False) == "2024-03-01"

    def test_strips_surrounding_whitespace(self):
        """Whitespace around a recognized shape should not block matching."""
        assert normalize_date("  15/03/2024\n") == "2024-03-15"

    def test_passes_through_unrecognized(self):
        """Unrecognized strings should be returned unchanged."""
        assert normalize_date("March 15, 2024") == "March 15, 2024"
        assert normalize_date("2024-03-15") == "2024-03-15"

    def test_single_digit_parts_not_matched(self):
        """Shapes require two-digit day and month."""
        assert normalize_date("1/3/2024") == "1/3/2024"

    def test_does_not_validate_calendar(self):
        """Matching is structural; impossible dates still normalize."""
        assert normalize_date("31/02/2024") == "2024-02-31"

    def test_strict_raises_on_unrecognized(self):
        """Strict mode should raise instead of passing through."""
        with pytest.raises(UnrecognizedDateError, match="Unrecognized date"):
            normalize_date("yesterday", strict=True)

    def test_strict_accepts_recognized(self):
        """Strict mode should still normalize recognized shapes."""
        assert normalize_date("15/03/24", strict=True) == "2024-03-15"

    def test_idempotent_on_normalized_output(self):
        """Normalizing an already normalized date should not change it."""
        once = normalize_date("15/03/2024")
        assert normalize_date(once) == once
