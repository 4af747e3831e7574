"""
Period keys: every facility-month is identified by a zero-padded ``YYYY-MM``.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from typing import Any, Optional, Tuple

import pandas as pd

PERIOD_RE = re.compile(r"^\d{4}-\d{2}$")
MM_YYYY_RE = re.compile(r"^(\d{1,2})/(\d{4})$")

# A standalone four-digit year must be present before the text is handed to
# the date parser; "01/02" or "today" would otherwise pick up the current year.
_YEAR_RE = re.compile(r"(?<!\d)\d{4}(?!\d)")

_MONTH_NAMES = sorted(
    {m.lower() for m in calendar.month_name[1:]} | {m.lower() for m in calendar.month_abbr[1:]} | {"sept"},
    key=len, reverse=True,
)
# Period tokens inside longer header text ("2024-01 Actual", "Jan 2024 Actual")
EMBEDDED_PERIOD_RES = [
    re.compile(r"(?<!\d)\d{4}-\d{2}(?!\d)"),
    re.compile(r"(?<!\d)\d{1,2}/\d{4}(?!\d)"),
    re.compile(r"\b(?:" + "|".join(_MONTH_NAMES) + r")\.?\s+\d{4}(?!\d)", re.IGNORECASE),
]


def _from_timestamp(ts) -> str:
    return f"{int(ts.year):04d}-{int(ts.month):02d}"


def normalize_period(value: Any) -> Optional[str]:
    """
    Convert a period cell into ``YYYY-MM``.

    Tried in order, first success wins:
      1. calendar-date parse ("March 2024", "2024-03-15", date cells)
      2. text already in ``YYYY-MM``
      3. ``MM/YYYY``
    Returns None when nothing applies. Never raises.
    """
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        if pd.isna(value):
            return None
        return _from_timestamp(value)

    text = str(value).strip()
    if text == "":
        return None

    if _YEAR_RE.search(text):
        try:
            ts = pd.to_datetime(text, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            ts = pd.NaT
        if not pd.isna(ts):
            return _from_timestamp(ts)

    if PERIOD_RE.match(text):
        return text

    m = MM_YYYY_RE.match(text)
    if m and 1 <= int(m.group(1)) <= 12:
        return f"{m.group(2)}-{int(m.group(1)):02d}"

    return None


def split_period(period: str) -> Tuple[int, int]:
    year, month = period.split("-")
    return int(year), int(month)


def month_distance(start: str, end: str) -> int:
    """Calendar months from ``start`` to ``end`` (both ``YYYY-MM``)."""
    y1, m1 = split_period(start)
    y2, m2 = split_period(end)
    return (y2 - y1) * 12 + (m2 - m1)


def shift_period(period: str, months: int) -> str:
    """``shift_period("2024-01", -1) == "2023-12"``."""
    y, m = split_period(period)
    idx = y * 12 + (m - 1) + months
    return f"{idx // 12:04d}-{idx % 12 + 1:02d}"


def find_period(text: Any) -> Optional[str]:
    """
    Period named by a header: the whole text if it normalizes, else the
    first embedded period token that does. ``"2024-01 Actual" -> "2024-01"``.
    """
    period = normalize_period(text)
    if period is not None or not isinstance(text, str):
        return period
    for rx in EMBEDDED_PERIOD_RES:
        for m in rx.finditer(text):
            period = normalize_period(m.group(0).replace(".", ""))
            if period is not None:
                return period
    return None
