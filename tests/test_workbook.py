import io
import unittest
from datetime import datetime

from openpyxl import Workbook

from facility_dashboard.mapping import apply_mapping, auto_detect
from facility_dashboard.workbook import WorkbookDecodeError, load_workbook


def _xlsx_bytes():
    wb = Workbook()
    ws = wb.active
    ws.title = "Monthly"
    ws.append(["Month", "Total Revenue", "Salaries", "Supplies", "Rent"])
    ws.append([datetime(2024, 1, 1), 1000000, 400000, 200000, 150000])
    ws.append(["Feb 2024", 1100000, 410000, 205000, 150000])

    statement = wb.create_sheet("Statement")
    statement.append(["Line Item", "Budget", "Actual"])
    statement.append(["Total Operating Revenue", 950000, 1000000])
    statement.append(["Salaries & Wages", None, 400000])

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


class TestLoadWorkbook(unittest.TestCase):
    def setUp(self):
        self.workbook = load_workbook(io.BytesIO(_xlsx_bytes()))

    def test_sheets_in_workbook_order(self):
        self.assertEqual(self.workbook.sheet_names, ["Monthly", "Statement"])
        self.assertEqual(
            self.workbook.header_rows["Monthly"],
            ["Month", "Total Revenue", "Salaries", "Supplies", "Rent"],
        )
        self.assertEqual(self.workbook.header_rows["Statement"], ["Line Item", "Budget", "Actual"])

    def test_empty_cells_become_blank(self):
        grid = self.workbook.cell_grids["Statement"]
        self.assertEqual(grid[2][1], "")

    def test_decoded_sheet_imports(self):
        grid = self.workbook.cell_grids["Monthly"]
        headers = self.workbook.header_rows["Monthly"]
        mapping = auto_detect(headers, grid)
        self.assertEqual(mapping["period"], "Month")

        mapping.update({
            "revenue_total": "Total Revenue",
            "labor_expense": "Salaries",
            "non_labor_expense": "Supplies",
            "rent": "Rent",
        })
        periods = apply_mapping(grid, headers, mapping)
        self.assertEqual([p.period for p in periods], ["2024-01", "2024-02"])
        self.assertEqual(periods[1].values.labor_expense, 410000)

    def test_garbage_bytes_raise(self):
        with self.assertRaises(WorkbookDecodeError):
            load_workbook(io.BytesIO(b"this is not a spreadsheet"))


if __name__ == "__main__":
    unittest.main()
