from typing import Any, List

import pandas as pd
from loguru import logger

from .mapping import find_header_row
from .schema import DecodedWorkbook


class WorkbookDecodeError(ValueError):
    """The uploaded file could not be read as an Excel workbook."""


def _clean(x: Any) -> Any:
    if x is None:
        return ""
    try:
        if pd.isna(x):
            return ""
    except (TypeError, ValueError):
        pass
    return x


def _header_text(x: Any) -> str:
    x = _clean(x)
    if isinstance(x, float) and x.is_integer():
        return str(int(x))
    return str(x).strip() if x != "" else ""


def sheet_to_grid(df: pd.DataFrame) -> List[List[Any]]:
    """DataFrame read with ``header=None`` -> rows of primitive cells ("" for empty)."""
    return [[_clean(x) for x in row] for row in df.itertuples(index=False, name=None)]


def load_workbook(file_source) -> DecodedWorkbook:
    """
    Reads every sheet of an Excel file into a cell grid.

    Returns:
        DecodedWorkbook with sheet names in workbook order, one grid per
        sheet and the header row (first non-empty row) of each sheet.
    """
    # 1. Load the Excel File
    try:
        xls = pd.ExcelFile(file_source)
        frames = {
            name: pd.read_excel(xls, sheet_name=name, header=None, dtype=object)
            for name in xls.sheet_names
        }
    except Exception as e:
        raise WorkbookDecodeError(f"Failed to parse Excel file: {e}") from e

    # 2. Grids + header rows
    sheet_names: List[str] = []
    grids = {}
    headers = {}
    for name, df in frames.items():
        grid = sheet_to_grid(df)
        idx = find_header_row(grid)
        sheet_names.append(name)
        grids[name] = grid
        headers[name] = [_header_text(h) for h in grid[idx]] if idx >= 0 else []

    logger.info("Decoded workbook with {} sheet(s): {}", len(sheet_names), sheet_names)
    return DecodedWorkbook(sheet_names=sheet_names, cell_grids=grids, header_rows=headers)
