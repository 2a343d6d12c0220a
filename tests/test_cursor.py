"""Tests for feedline.ingestion.cursor — snowflake id comparison."""

from __future__ import annotations

from feedline.ingestion.cursor import compare_ids, snowflake_max


class TestCompareIds:
    def test_numeric_beyond_float_precision(self):
        # Differ only past 2**53
        assert compare_ids("1800000000000000001", "1800000000000000000") == 1

    def test_numeric_shorter_is_smaller(self):
        assert compare_ids("99", "100") == -1

    def test_equal(self):
        assert compare_ids("42", "42") == 0

    def test_non_numeric_falls_back_to_length(self):
        assert compare_ids("abc", "zz") == 1

    def test_non_numeric_same_length_lexicographic(self):
        assert compare_ids("abd", "abc") == 1


class TestSnowflakeMax:
    def test_none_cursor(self):
        assert snowflake_max(None, "5") == "5"
        assert snowflake_max("5", None) == "5"
        assert snowflake_max(None, None) is None

    def test_picks_greater(self):
        assert snowflake_max("1800000000000000000", "1800000000000000001") == "1800000000000000001"

    def test_keeps_current_when_equal(self):
        assert snowflake_max("7", "7") == "7"
