import unittest
from datetime import date, datetime

import pandas as pd

from facility_dashboard.periods import find_period, month_distance, normalize_period, shift_period


class TestNormalizePeriod(unittest.TestCase):
    def test_canonical_form_unchanged(self):
        self.assertEqual(normalize_period("2024-03"), "2024-03")

    def test_month_slash_year(self):
        self.assertEqual(normalize_period("3/2024"), "2024-03")
        self.assertEqual(normalize_period("11/2023"), "2023-11")

    def test_month_name_and_year(self):
        self.assertEqual(normalize_period("March 2024"), "2024-03")
        self.assertEqual(normalize_period("Jan 2025"), "2025-01")

    def test_full_dates(self):
        self.assertEqual(normalize_period("2024-03-15"), "2024-03")
        self.assertEqual(normalize_period(datetime(2024, 7, 31)), "2024-07")
        self.assertEqual(normalize_period(date(2023, 12, 1)), "2023-12")
        self.assertEqual(normalize_period(pd.Timestamp("2024-02-29")), "2024-02")

    def test_surrounding_whitespace(self):
        self.assertEqual(normalize_period("  2024-05 "), "2024-05")

    def test_unparseable_returns_none(self):
        self.assertIsNone(normalize_period("not a date"))
        self.assertIsNone(normalize_period("Total"))
        self.assertIsNone(normalize_period(""))
        self.assertIsNone(normalize_period(None))
        self.assertIsNone(normalize_period(float("nan")))
        self.assertIsNone(normalize_period(pd.NaT))

    def test_ambiguous_without_year_fails_closed(self):
        self.assertIsNone(normalize_period("01/02"))
        self.assertIsNone(normalize_period("today"))
        self.assertIsNone(normalize_period("now"))


class TestFindPeriod(unittest.TestCase):
    def test_whole_text(self):
        self.assertEqual(find_period("2024-01"), "2024-01")
        self.assertEqual(find_period(datetime(2024, 2, 1)), "2024-02")

    def test_embedded_tokens(self):
        self.assertEqual(find_period("2024-01 Actual"), "2024-01")
        self.assertEqual(find_period("Actual 11/2023"), "2023-11")
        self.assertEqual(find_period("Sept 2024 Actual"), "2024-09")
        self.assertEqual(find_period("YTD through March 2024"), "2024-03")

    def test_plain_labels(self):
        self.assertIsNone(find_period("Month"))
        self.assertIsNone(find_period("Period"))
        self.assertIsNone(find_period("FY2024 Budget"))
        self.assertIsNone(find_period(None))


class TestPeriodArithmetic(unittest.TestCase):
    def test_month_distance(self):
        self.assertEqual(month_distance("2024-01", "2024-02"), 1)
        self.assertEqual(month_distance("2024-01", "2024-03"), 2)
        self.assertEqual(month_distance("2023-11", "2024-02"), 3)
        self.assertEqual(month_distance("2024-05", "2024-05"), 0)

    def test_shift_period(self):
        self.assertEqual(shift_period("2024-01", 1), "2024-02")
        self.assertEqual(shift_period("2024-01", -1), "2023-12")
        self.assertEqual(shift_period("2023-11", 14), "2025-01")


if __name__ == "__main__":
    unittest.main()
