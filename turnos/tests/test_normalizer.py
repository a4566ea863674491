"""
Tests for input normalization and the flexible date/time tokenizers.
"""

from datetime import date

import pytest

from ..normalizer import (
    add_minutes, fold_for_match, is_valid_date, is_valid_time,
    normalize_text, parse_flexible_date, parse_flexible_time,
)

TODAY = date(2026, 1, 10)


class TestTextNormalization:
    """Test whitespace and diacritic folding"""

    def test_normalize_collapses_whitespace(self):
        assert normalize_text("  Agendá \n Sol\t 25/2  ") == "Agendá Sol 25/2"

    def test_normalize_never_fails(self):
        assert normalize_text(None) == ""
        assert normalize_text("") == ""

    def test_fold_removes_accents_and_uppercases(self):
        assert fold_for_match("Agendá  José Núñez") == "AGENDA JOSE NUNEZ"

    def test_fold_matches_across_spellings(self):
        assert fold_for_match("maría") == fold_for_match("MARIA")


class TestDateParsing:
    """Test the accepted date shapes"""

    def test_iso_date(self):
        assert parse_flexible_date("2026-02-25") == "2026-02-25"

    def test_day_month_assumes_current_year(self):
        assert parse_flexible_date("25/2", TODAY) == "2026-02-25"
        assert parse_flexible_date("25/2") == f"{date.today().year}-02-25"

    @pytest.mark.parametrize("token,expected", [
        ("25-2", "2026-02-25"),
        ("5/3/2027", "2027-03-05"),
        ("05-03-2027", "2027-03-05"),
        ("1/12", "2026-12-01"),
    ])
    def test_day_first_variants(self, token, expected):
        assert parse_flexible_date(token, TODAY) == expected

    @pytest.mark.parametrize("token", ["31/02", "2023-02-30", "31/4", "0/1", "12/13"])
    def test_impossible_dates(self, token):
        assert parse_flexible_date(token, TODAY) is None

    @pytest.mark.parametrize("token", ["", None, "mañana", "16:00", "25/2/26", "5/3-2026", "2026/02/25"])
    def test_not_a_date(self, token):
        assert parse_flexible_date(token, TODAY) is None

    def test_is_valid_date(self):
        assert is_valid_date("2024-02-29")
        assert not is_valid_date("2023-02-29")
        assert not is_valid_date("2026-2-5")
        assert not is_valid_date(None)


class TestTimeParsing:
    """Test the accepted time shapes"""

    def test_bare_hour(self):
        assert parse_flexible_time("16") == "16:00"
        assert parse_flexible_time("9") == "09:00"

    def test_hour_minutes(self):
        assert parse_flexible_time("9:30") == "09:30"
        assert parse_flexible_time("23:59") == "23:59"

    @pytest.mark.parametrize("token", ["24:00", "12:60", "7:5", "25/2", "16hs", "", None])
    def test_rejected_times(self, token):
        assert parse_flexible_time(token) is None

    def test_is_valid_time(self):
        assert is_valid_time("00:00")
        assert not is_valid_time("9:30")
        assert not is_valid_time("24:00")


class TestAddMinutes:
    """Test wall-clock minute arithmetic"""

    def test_simple_addition(self):
        assert add_minutes("16:00", 50) == "16:50"
        assert add_minutes("09:45", 50) == "10:35"

    def test_wraps_past_midnight(self):
        assert add_minutes("23:30", 50) == "00:20"

    def test_negative_minutes(self):
        assert add_minutes("00:10", -20) == "23:50"
