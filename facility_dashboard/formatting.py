import calendar
from typing import Optional, Sequence, Tuple

import pandas as pd

from .metrics import trend_direction
from .periods import split_period

TREND_ICONS = {"up": "↗", "down": "↘", "flat": "→"}


def format_currency(val, currency: str = "USD") -> str:
    if val is None or pd.isna(val):
        return "N/A"
    sign = "-" if val < 0 else ""
    if currency == "USD":
        return f"{sign}${abs(val):,.0f}"
    return f"{sign}{currency} {abs(val):,.0f}"

def format_percentage(val, decimals: int = 1) -> str:
    if val is None or pd.isna(val):
        return "N/A"
    return f"{val:.{decimals}f}%"

def format_number(val, decimals: int = 0) -> str:
    if val is None or pd.isna(val):
        return "0"
    return f"{val:,.{decimals}f}"

def format_period(period: str) -> str:
    """``"2024-01"`` -> ``"Jan 2024"``."""
    year, month = split_period(period)
    if not 1 <= month <= 12:
        return period
    return f"{calendar.month_abbr[month]} {year}"

def format_period_range(periods: Sequence[str]) -> str:
    if not periods:
        return ""
    ordered = sorted(periods)
    if len(ordered) == 1:
        return format_period(ordered[0])
    return f"{format_period(ordered[0])} - {format_period(ordered[-1])}"

def format_change(percentage: float) -> Tuple[str, str, str]:
    """(text, color, icon) for a change indicator."""
    if abs(percentage) < 0.1:
        return "0.0%", "gray", "→"
    if percentage > 0:
        return f"+{abs(percentage):.1f}%", "green", "↗"
    return f"-{abs(percentage):.1f}%", "red", "↘"

def format_delta(percentage: float) -> str:
    """KPI delta text; the icon follows the trend direction (±1% is flat)."""
    text, _, _ = format_change(percentage)
    return f"{TREND_ICONS[trend_direction(percentage)]} {text}"

def format_compact(val: Optional[float]) -> str:
    if val is None or pd.isna(val):
        return "0"
    if abs(val) >= 1e9:
        return f"{val / 1e9:.1f}B"
    if abs(val) >= 1e6:
        return f"{val / 1e6:.1f}M"
    if abs(val) >= 1e3:
        return f"{val / 1e3:.1f}K"
    return f"{val:.0f}"
