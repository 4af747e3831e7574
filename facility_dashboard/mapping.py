"""
Column / row mapping for monthly facility workbooks.

A decoded sheet arrives as a grid of cells. Two layouts are supported:

Columnar layout
---------------
One row per month. A header such as "Month" or "Period" names the period
column and every financial field is mapped to another header.

    Month     | Total Revenue | Salaries | Supplies | Rent
    Jan 2024  | 1,000,000     | 400,000  | 200,000  | 150,000

Statement layout
----------------
One row per line item, one column per month (or an "Actual" column). The
period header names a month ("2024-01", "Jan 2024 Actual") and every
financial field is mapped to a row label.

    Line Item      | Budget | 2024-01
    Total Revenue  |        | 1000000

Auto-detection only ever *suggests* a mapping; the operator confirms or
overrides it field by field before ``apply_mapping`` runs.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from loguru import logger

from .periods import find_period, month_distance, normalize_period
from .schema import (
    DEFAULT_FACILITY_NAME,
    REQUIRED_FIELDS,
    VALUE_FIELDS,
    ColumnMapping,
    FacilityPeriod,
    PeriodValues,
    ValidationResult,
)

DEFAULT_SCAN_ROWS = 50


class MappingError(ValueError):
    """The mapping cannot be applied to the sheet (e.g. no period column)."""


# =============================================================================
# DETECTION RULES (ordered; first match wins)
# =============================================================================

def _rx(*patterns: str) -> List[Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]

ACTUAL_COLUMN_PATTERNS = _rx(r"^actual$", r"actual")
ACTUAL_COLUMN_FALLBACK_KEYWORDS = ["amount", "value", "total"]

PERIOD_COLUMN_PATTERNS = _rx(r"^period$", r"^month$", r"^date$", r"period", r"month")

DETECTION_RULES: List[Tuple[str, List[Pattern]]] = [
    ("revenue_total", _rx(
        r"total\s*operating\s*revenue",
        r"total\s*revenue",
        r"operating\s*revenue",
        r"revenue",
    )),
    ("labor_expense", _rx(r"salar(y|ies)", r"wages", r"payroll", r"labor")),
    ("non_labor_expense", _rx(
        r"non[-\s]*labor",
        r"supplies",
        r"operating\s*expenses",
        r"other\s*opex",
        r"g&a",
        r"general\s*&\s*admin",
        r"utilities",
    )),
    ("rent", _rx(r"rent", r"lease\s*expense")),
    ("depreciation", _rx(r"depreciation")),
    ("interest", _rx(r"interest")),
    ("other_income", _rx(r"other\s*income")),
    ("census", _rx(r"census")),
    ("adr", _rx(r"\badr\b", r"average\s*daily\s*rate")),
]


# =============================================================================
# HELPERS
# =============================================================================

def _as_str(x) -> str:
    if x is None:
        return ""
    if isinstance(x, float) and math.isnan(x):
        return ""
    return str(x).strip()

def _as_number(x) -> Optional[float]:
    """Parse a cell as a finite float; None when it is not a number."""
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, (int, float, np.number)):
        v = float(x)
        return v if math.isfinite(v) else None
    s = str(x).strip()
    if s == "":
        return None
    # remove currency symbols and thousands separators
    s = s.replace("$", "").replace(",", "")
    if s.startswith("(") and s.endswith(")"):
        s = "-" + s[1:-1]
    try:
        v = float(s)
    except ValueError:
        return None
    return v if math.isfinite(v) else None

def _cell(row: Sequence[Any], idx: int) -> Any:
    return row[idx] if 0 <= idx < len(row) else ""

def _first_match(candidates: Sequence[str], patterns: Sequence[Pattern]) -> int:
    """Index of the first candidate (in order) that any pattern matches, else -1."""
    for i, text in enumerate(candidates):
        if any(p.search(text) for p in patterns):
            return i
    return -1

def row_label(row: Sequence[Any]) -> str:
    """First non-empty cell of a row, lower-cased and trimmed."""
    for c in row:
        s = _as_str(c)
        if s:
            return s.lower()
    return ""

def find_header_row(rows: Sequence[Sequence[Any]]) -> int:
    """Index of the first row with at least one non-empty cell, -1 if none."""
    for i, row in enumerate(rows):
        if any(_as_str(c) for c in row):
            return i
    return -1

def _mapping_dict(mapping: Union[ColumnMapping, Mapping[str, Optional[str]]]) -> Dict[str, str]:
    if isinstance(mapping, ColumnMapping):
        return mapping.targets()
    return {k: v for k, v in dict(mapping).items() if v}

def missing_required_fields(mapping: Union[ColumnMapping, Mapping[str, Optional[str]]]) -> List[str]:
    m = _mapping_dict(mapping)
    return [f for f in REQUIRED_FIELDS if not _as_str(m.get(f))]


# =============================================================================
# AUTO-DETECTION
# =============================================================================

@dataclass
class DetectionReport:
    mapping: Dict[str, str]
    actual_column: int
    period_column: int
    samples: Dict[str, float] = field(default_factory=dict)
    scanned_rows: int = 0


def find_actual_column(headers: Sequence[Any]) -> int:
    names = [_as_str(h).lower() for h in headers]
    idx = _first_match(names, ACTUAL_COLUMN_PATTERNS)
    if idx == -1:
        for i, name in enumerate(names):
            if any(k in name for k in ACTUAL_COLUMN_FALLBACK_KEYWORDS):
                return i
    return idx

def find_period_column(headers: Sequence[Any]) -> int:
    return _first_match([_as_str(h).lower() for h in headers], PERIOD_COLUMN_PATTERNS)

def detect_with_evidence(
    headers: Sequence[Any],
    rows: Sequence[Sequence[Any]],
    scan_rows: int = DEFAULT_SCAN_ROWS,
) -> DetectionReport:
    """
    Suggest a mapping for a sheet, plus the evidence behind it.

    Line-item labels are read from the first non-empty cell of each of the
    first ``scan_rows`` data rows; the sample value for a label comes from
    the detected "actual" column (0 when missing or non-numeric).
    """
    mapping: Dict[str, str] = {}

    actual_col = find_actual_column(headers)
    period_col = find_period_column(headers)
    if period_col >= 0:
        mapping["period"] = _as_str(headers[period_col])

    header_idx = find_header_row(rows)
    data_rows = rows[header_idx + 1:] if header_idx >= 0 else rows

    labels: List[str] = []
    values: List[float] = []
    for row in data_rows[:scan_rows]:
        label = row_label(row)
        if not label:
            continue
        labels.append(label)
        v = _as_number(_cell(row, actual_col)) if actual_col >= 0 else None
        values.append(v if v is not None else 0.0)

    samples: Dict[str, float] = {}
    for fname, patterns in DETECTION_RULES:
        i = _first_match(labels, patterns)
        if i >= 0:
            mapping[fname] = labels[i]
            samples[fname] = values[i]

    logger.debug(
        "Auto-detected mapping {} (actual column {}, period column {}, {} labels scanned)",
        mapping, actual_col, period_col, len(labels),
    )
    return DetectionReport(
        mapping=mapping,
        actual_column=actual_col,
        period_column=period_col,
        samples=samples,
        scanned_rows=min(len(data_rows), scan_rows),
    )

def auto_detect(
    headers: Sequence[Any],
    rows: Sequence[Sequence[Any]],
    scan_rows: int = DEFAULT_SCAN_ROWS,
) -> Dict[str, str]:
    """Partial candidate mapping (field -> header or row label)."""
    return detect_with_evidence(headers, rows, scan_rows).mapping


# =============================================================================
# APPLY MAPPING
# =============================================================================

def _resolve_targets(
    rows: Sequence[Sequence[Any]],
    headers: Sequence[str],
    targets: Dict[str, str],
    header_idx: int,
) -> Tuple[Dict[str, int], Dict[str, int]]:
    """Split value fields into column-bound and row-bound indices."""
    header_names = [_as_str(h) for h in headers]
    labels = {}
    for r in range(header_idx + 1, len(rows)):
        label = row_label(rows[r])
        if label and label not in labels:
            labels[label] = r

    columns: Dict[str, int] = {}
    row_refs: Dict[str, int] = {}
    for fname in VALUE_FIELDS:
        target = _as_str(targets.get(fname))
        if not target:
            continue
        if target in header_names:
            columns[fname] = header_names.index(target)
        elif target.lower() in labels:
            row_refs[fname] = labels[target.lower()]
        else:
            logger.debug("Mapping target {!r} for {} not found in sheet", target, fname)
    return columns, row_refs

def _read_value(cell: Any, fname: str, where: str, issues: Optional[List[str]]) -> float:
    v = _as_number(cell)
    if v is None:
        if issues is not None and _as_str(cell):
            issues.append(f"{where}: could not read {fname} value '{_as_str(cell)}' as a number; using 0")
        return 0.0
    # stored as magnitudes
    return abs(v)

def _build_period(facility_name: str, period: str, values: Dict[str, float], currency: str) -> Optional[FacilityPeriod]:
    if values["revenue_total"] == 0 and values["labor_expense"] == 0 and values["non_labor_expense"] == 0:
        return None
    return FacilityPeriod(
        id=f"{facility_name}-{period}",
        facility_name=facility_name,
        period=period,
        currency=currency,
        values=PeriodValues(**values),
    )

def _empty_values() -> Dict[str, float]:
    return {"revenue_total": 0.0, "labor_expense": 0.0, "non_labor_expense": 0.0, "rent": 0.0}

def apply_mapping(
    rows: Sequence[Sequence[Any]],
    headers: Sequence[Any],
    mapping: Union[ColumnMapping, Mapping[str, Optional[str]]],
    facility_name: str = DEFAULT_FACILITY_NAME,
    currency: str = "USD",
    issues: Optional[List[str]] = None,
) -> List[FacilityPeriod]:
    """
    Turn a sheet into facility periods using a confirmed mapping.

    Raises MappingError when the period header is not in ``headers``.
    Rows with an empty/unparseable period, or with revenue, labor and
    non-labor all zero, are skipped. Numeric cells that cannot be parsed
    read as 0; pass ``issues`` to collect a note for each of them.
    Output follows input row order.
    """
    targets = _mapping_dict(mapping)
    header_names = [_as_str(h) for h in headers]
    period_target = _as_str(targets.get("period"))
    if not period_target or period_target not in header_names:
        raise MappingError("Period column not found in mappings")
    period_col = header_names.index(period_target)

    header_idx = find_header_row(rows)
    columns, row_refs = _resolve_targets(rows, header_names, targets, header_idx)

    out: List[FacilityPeriod] = []

    header_period = find_period(period_target)
    if header_period is not None:
        # Statement layout: line items are rows, the period column holds the values
        values = _empty_values()
        for fname, r in row_refs.items():
            values[fname] = _read_value(_cell(rows[r], period_col), fname, f"Row {r + 1}", issues)
        rec = _build_period(facility_name, header_period, values, currency)
        if rec is not None:
            out.append(rec)
        logger.debug("Statement layout: {} record(s) for {}", len(out), header_period)
        return out

    if row_refs:
        logger.debug("Row-label targets {} ignored in columnar layout", sorted(row_refs))

    skipped = 0
    for r in range(header_idx + 1, len(rows)):
        row = rows[r]
        if not row:
            continue
        period = normalize_period(_cell(row, period_col))
        if period is None:
            skipped += 1
            continue

        values = _empty_values()
        for fname, c in columns.items():
            values[fname] = _read_value(_cell(row, c), fname, f"Row {r + 1}", issues)

        rec = _build_period(facility_name, period, values, currency)
        if rec is None:
            skipped += 1
            continue
        out.append(rec)

    logger.debug("Columnar layout: {} record(s), {} row(s) skipped", len(out), skipped)
    return out


# =============================================================================
# VALIDATION
# =============================================================================

def _fmt_amount(x: float) -> str:
    return f"{x:,.0f}" if float(x).is_integer() else f"{x:,.2f}"

def validate(periods: Sequence[FacilityPeriod]) -> ValidationResult:
    """
    Structural checks on an imported series.

    Errors block the import; warnings are advisory and never affect validity.
    """
    warnings: List[str] = []
    errors: List[str] = []

    if len(periods) == 0:
        errors.append("No valid data found in the Excel file")
        return ValidationResult(is_valid=False, warnings=warnings, errors=errors)

    # Rent above revenue usually means a mis-mapped row or column
    for p in periods:
        if p.values.revenue_total < p.values.rent:
            warnings.append(
                f"Revenue ({_fmt_amount(p.values.revenue_total)}) is less than "
                f"rent ({_fmt_amount(p.values.rent)}) for {p.period}"
            )

    keys = sorted(p.period for p in periods)
    seen = set()
    for k in keys:
        if k in seen:
            warnings.append(f"Duplicate period {k}; only the first occurrence will be kept")
        seen.add(k)

    unique_keys = sorted(seen)
    for prev, curr in zip(unique_keys, unique_keys[1:]):
        if month_distance(prev, curr) > 1:
            warnings.append(f"Gap detected between {prev} and {curr}")

    return ValidationResult(is_valid=len(errors) == 0, warnings=warnings, errors=errors)


def periods_preview(periods: Sequence[FacilityPeriod]) -> pd.DataFrame:
    """Flat table of imported values for the mapping wizard."""
    records = []
    for p in periods:
        rec = {"Period": p.period}
        rec.update(p.values.model_dump())
        records.append(rec)
    return pd.DataFrame.from_records(records)
