import unittest

from facility_dashboard.mapping import (
    DETECTION_RULES,
    MappingError,
    apply_mapping,
    auto_detect,
    detect_with_evidence,
    find_actual_column,
    find_header_row,
    find_period_column,
    missing_required_fields,
    validate,
)
from facility_dashboard.schema import ColumnMapping, FacilityPeriod, PeriodValues


def _period(key, revenue=1000.0, labor=400.0, non_labor=200.0, rent=150.0):
    return FacilityPeriod(
        id=f"Test-{key}", facility_name="Test", period=key,
        values=PeriodValues(revenue_total=revenue, labor_expense=labor, non_labor_expense=non_labor, rent=rent),
    )


STATEMENT = [
    ["Line Item", "Budget", "Actual"],
    ["Total Operating Revenue", 950000, 1000000],
    ["Salaries & Wages", 380000, 400000],
    ["Supplies", 190000, 200000],
    ["Rent Expense", 150000, 150000],
    ["Depreciation", 80000, 80000],
    ["Interest Expense", 30000, "n/a"],
]

COLUMNAR_HEADERS = ["Month", "Total Revenue", "Salaries", "Supplies", "Rent"]
COLUMNAR = [
    COLUMNAR_HEADERS,
    ["Jan 2024", 1000000, 400000, 200000, 150000],
    ["", "", "", "", ""],
    ["2024-02", "$1,100,000", "-410,000", 205000, "n/a"],
    ["Total", 2100000, 810000, 405000, 150000],
    ["3/2024", 0, 0, 0, 150000],
]
COLUMNAR_MAPPING = {
    "period": "Month",
    "revenue_total": "Total Revenue",
    "labor_expense": "Salaries",
    "non_labor_expense": "Supplies",
    "rent": "Rent",
}


class TestColumnDetection(unittest.TestCase):
    def test_actual_column_first_header_containing_actual(self):
        self.assertEqual(find_actual_column(["Line Item", "Budget", "Actual"]), 2)
        self.assertEqual(find_actual_column(["Line Item", "Actual YTD", "Actual"]), 1)

    def test_actual_column_fallback_keywords(self):
        self.assertEqual(find_actual_column(["Account", "Amount", "Total"]), 1)
        self.assertEqual(find_actual_column(["Account", "Grand Total"]), 1)
        self.assertEqual(find_actual_column(["Account", "Budget"]), -1)

    def test_period_column(self):
        self.assertEqual(find_period_column(["Facility", "Month", "Revenue"]), 1)
        self.assertEqual(find_period_column(["Fiscal Period", "Month"]), 0)
        self.assertEqual(find_period_column(["Date Posted", "Date"]), 1)
        self.assertEqual(find_period_column(["Account", "Amount"]), -1)

    def test_header_row_is_first_non_empty_row(self):
        rows = [[], ["", None], ["Month", "Revenue"], ["2024-01", 5]]
        self.assertEqual(find_header_row(rows), 2)
        self.assertEqual(find_header_row([]), -1)


class TestAutoDetect(unittest.TestCase):
    def test_detects_line_items_from_row_labels(self):
        mapping = auto_detect(STATEMENT[0], STATEMENT)
        self.assertEqual(mapping["revenue_total"], "total operating revenue")
        self.assertEqual(mapping["labor_expense"], "salaries & wages")
        self.assertEqual(mapping["non_labor_expense"], "supplies")
        self.assertEqual(mapping["rent"], "rent expense")
        self.assertEqual(mapping["depreciation"], "depreciation")
        self.assertEqual(mapping["interest"], "interest expense")
        self.assertNotIn("period", mapping)

    def test_period_header_recorded(self):
        headers = ["Month", "Total Revenue"]
        mapping = auto_detect(headers, [headers, ["2024-01", 10]])
        self.assertEqual(mapping["period"], "Month")

    def test_first_matching_row_wins(self):
        rows = [
            ["Account", "Actual"],
            ["Resident Revenue", 900000],
            ["Total Revenue", 1000000],
        ]
        self.assertEqual(auto_detect(rows[0], rows)["revenue_total"], "resident revenue")

    def test_evidence_reads_actual_column(self):
        report = detect_with_evidence(STATEMENT[0], STATEMENT)
        self.assertEqual(report.actual_column, 2)
        self.assertEqual(report.samples["revenue_total"], 1000000)
        self.assertEqual(report.samples["interest"], 0.0)

    def test_scan_limited_to_first_rows(self):
        rows = [["Account", "Actual"]] + [[f"Line {i}", i] for i in range(60)] + [["Total Revenue", 1]]
        self.assertNotIn("revenue_total", auto_detect(rows[0], rows))
        self.assertIn("revenue_total", auto_detect(rows[0], rows, scan_rows=100))

    def test_rules_are_ordered_data(self):
        fields = [f for f, _ in DETECTION_RULES]
        self.assertEqual(
            fields[:6],
            ["revenue_total", "labor_expense", "non_labor_expense", "rent", "depreciation", "interest"],
        )
        revenue_patterns = [p.pattern for p in DETECTION_RULES[0][1]]
        self.assertEqual(revenue_patterns[-1], "revenue")


class TestApplyMapping(unittest.TestCase):
    def test_statement_round_trip(self):
        rows = [
            ["Line Item", "Budget", "2024-01"],
            ["Total Revenue", "", "1000000"],
        ]
        mapping = {"period": "2024-01", "revenue_total": "total revenue"}
        periods = apply_mapping(rows, rows[0], mapping)
        self.assertEqual(len(periods), 1)
        self.assertEqual(periods[0].period, "2024-01")
        self.assertEqual(periods[0].values.revenue_total, 1000000)
        self.assertEqual(periods[0].id, "Alpine Vista-2024-01")

    def test_statement_header_with_embedded_period(self):
        for header, expected in [
            ("2024-01 Actual", "2024-01"),
            ("Actual 2024-01", "2024-01"),
            ("Jan 2024 Actual", "2024-01"),
            ("Actual 3/2024", "2024-03"),
        ]:
            with self.subTest(header=header):
                rows = [
                    ["Line Item", "Budget", header],
                    ["Total Revenue", "", "1000000"],
                ]
                mapping = {"period": header, "revenue_total": "total revenue"}
                periods = apply_mapping(rows, rows[0], mapping)
                self.assertEqual([(p.period, p.values.revenue_total) for p in periods], [(expected, 1000000)])

    def test_statement_layout_reads_all_row_fields(self):
        headers = ["Line Item", "Budget", "March 2024"]
        rows = [headers] + STATEMENT[1:]
        mapping = ColumnMapping(
            period="March 2024",
            revenue_total="Total Operating Revenue",
            labor_expense="salaries & wages",
            non_labor_expense="supplies",
            rent="rent expense",
            depreciation="depreciation",
        )
        [p] = apply_mapping(rows, headers, mapping, facility_name="Alpine Vista")
        self.assertEqual(p.period, "2024-03")
        self.assertEqual(p.values.labor_expense, 400000)
        self.assertEqual(p.values.non_labor_expense, 200000)
        self.assertEqual(p.values.rent, 150000)
        self.assertEqual(p.values.depreciation, 80000)
        self.assertIsNone(p.values.interest)

    def test_columnar_layout(self):
        periods = apply_mapping(COLUMNAR, COLUMNAR_HEADERS, COLUMNAR_MAPPING, facility_name="Test")
        self.assertEqual([p.period for p in periods], ["2024-01", "2024-02"])
        self.assertEqual([p.id for p in periods], ["Test-2024-01", "Test-2024-02"])

        feb = periods[1].values
        self.assertEqual(feb.revenue_total, 1100000)
        # magnitudes only
        self.assertEqual(feb.labor_expense, 410000)
        # unparseable cells read as 0
        self.assertEqual(feb.rent, 0)

    def test_output_follows_input_order(self):
        rows = [
            COLUMNAR_HEADERS,
            ["2024-03", 3, 1, 1, 0],
            ["2024-01", 1, 1, 1, 0],
        ]
        periods = apply_mapping(rows, COLUMNAR_HEADERS, COLUMNAR_MAPPING)
        self.assertEqual([p.period for p in periods], ["2024-03", "2024-01"])

    def test_cell_issues_collected(self):
        issues = []
        apply_mapping(COLUMNAR, COLUMNAR_HEADERS, COLUMNAR_MAPPING, issues=issues)
        self.assertEqual(len(issues), 1)
        self.assertIn("n/a", issues[0])
        self.assertIn("rent", issues[0])

    def test_missing_period_column_raises(self):
        mapping = dict(COLUMNAR_MAPPING, period="Fiscal Month")
        with self.assertRaises(MappingError):
            apply_mapping(COLUMNAR, COLUMNAR_HEADERS, mapping)
        with self.assertRaises(MappingError):
            apply_mapping(COLUMNAR, COLUMNAR_HEADERS, {"revenue_total": "Total Revenue"})

    def test_unknown_targets_default_to_zero(self):
        mapping = dict(COLUMNAR_MAPPING, non_labor_expense="Not A Column")
        periods = apply_mapping(COLUMNAR, COLUMNAR_HEADERS, mapping)
        self.assertEqual(periods[0].values.non_labor_expense, 0)

    def test_header_row_below_blank_rows(self):
        rows = [["", ""], [], COLUMNAR_HEADERS, ["2024-04", 10, 4, 2, 1]]
        periods = apply_mapping(rows, COLUMNAR_HEADERS, COLUMNAR_MAPPING)
        self.assertEqual([p.period for p in periods], ["2024-04"])

    def test_missing_required_fields(self):
        self.assertEqual(missing_required_fields(COLUMNAR_MAPPING), [])
        self.assertEqual(
            missing_required_fields({"period": "Month", "revenue_total": "Total Revenue", "rent": ""}),
            ["labor_expense", "non_labor_expense", "rent"],
        )


class TestValidate(unittest.TestCase):
    def test_empty_is_an_error(self):
        result = validate([])
        self.assertFalse(result.is_valid)
        self.assertEqual(result.errors, ["No valid data found in the Excel file"])

    def test_gap_detected(self):
        result = validate([_period("2024-01"), _period("2024-03")])
        self.assertTrue(result.is_valid)
        gaps = [w for w in result.warnings if "Gap detected" in w]
        self.assertEqual(gaps, ["Gap detected between 2024-01 and 2024-03"])

    def test_consecutive_months_have_no_gap(self):
        result = validate([_period("2024-02"), _period("2024-01")])
        self.assertEqual(result.warnings, [])

    def test_gap_across_year_boundary(self):
        self.assertEqual(validate([_period("2023-12"), _period("2024-01")]).warnings, [])
        self.assertEqual(len(validate([_period("2023-11"), _period("2024-01")]).warnings), 1)

    def test_revenue_below_rent_warns_but_stays_valid(self):
        result = validate([_period("2024-01", revenue=100.0, rent=150.0), _period("2024-02")])
        self.assertTrue(result.is_valid)
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("2024-01", result.warnings[0])
        self.assertIn("less than rent", result.warnings[0])

    def test_duplicate_periods_warn(self):
        result = validate([_period("2024-01"), _period("2024-01")])
        self.assertTrue(result.is_valid)
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("Duplicate period 2024-01", result.warnings[0])


if __name__ == "__main__":
    unittest.main()
