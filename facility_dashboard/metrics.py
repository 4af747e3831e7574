"""
Facility Financial Metrics: EBITDA, EBITDAR, NOI
================================================

Core business definitions (IMPORTANT)
------------------------------------
1) OPEX    = Labor Expense + Non-Labor Expense
2) EBITDA  = Revenue - OPEX
3) EBITDAR = EBITDA + Rent      (rent treated as financing, not operating)
4) NOI     = EBITDA - Rent

Margins
-------
A) EBITDA Margin (%)  = EBITDA / Revenue x 100
B) EBITDAR Margin (%) = EBITDAR / Revenue x 100
C) NOI Margin (%)     = NOI / Revenue x 100

Aggregation note
----------------
Across several months the absolute metrics are summed and margins are
recomputed from the summed totals. Margins are never averaged.

Every ratio goes through ``safe_div``: a zero or non-finite denominator
yields 0 rather than inf/NaN.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, List, Sequence, Union

import numpy as np
import pandas as pd

from .schema import FacilityPeriod, PeriodValues


# =============================================================================
# HELPERS
# =============================================================================

def safe_div(n, d):
    """Vector-safe divide. Supports scalars, numpy arrays, and pandas Series."""
    n_arr = np.asarray(n, dtype="float64")
    d_arr = np.asarray(d, dtype="float64")
    out = np.zeros(np.broadcast(n_arr, d_arr).shape, dtype="float64")
    np.divide(n_arr, d_arr, out=out, where=(d_arr != 0) & np.isfinite(d_arr))
    # Preserve scalar return type when inputs are scalar
    return float(out) if out.shape == () else out

def pct(n, d):
    """Percent = (n/d)*100 with vector-safe divide."""
    return safe_div(n, d) * 100.0


# =============================================================================
# PER-PERIOD METRICS
# =============================================================================

@dataclass(frozen=True)
class DerivedMetrics:
    opex: float
    ebitda: float
    ebitdar: float
    noi: float
    ebitda_margin: float
    ebitdar_margin: float
    noi_margin: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class AggregateMetrics(DerivedMetrics):
    revenue_total: float = 0.0


@dataclass(frozen=True)
class PeriodChange:
    absolute: float
    percentage: float


def _values(period: Union[FacilityPeriod, PeriodValues]) -> PeriodValues:
    return period.values if isinstance(period, FacilityPeriod) else period

def calculate_metrics(period: Union[FacilityPeriod, PeriodValues]) -> DerivedMetrics:
    """Derived metrics for one month. Always recomputed, never stored."""
    v = _values(period)

    opex = v.labor_expense + v.non_labor_expense
    ebitda = v.revenue_total - opex
    ebitdar = ebitda + v.rent
    noi = ebitda - v.rent

    return DerivedMetrics(
        opex=opex,
        ebitda=ebitda,
        ebitdar=ebitdar,
        noi=noi,
        ebitda_margin=pct(ebitda, v.revenue_total),
        ebitdar_margin=pct(ebitdar, v.revenue_total),
        noi_margin=pct(noi, v.revenue_total),
    )

def calculate_period_change(current: float, previous: float) -> PeriodChange:
    absolute = current - previous
    return PeriodChange(absolute=absolute, percentage=pct(absolute, previous))

def trend_direction(percentage: float) -> str:
    if percentage > 1:
        return "up"
    if percentage < -1:
        return "down"
    return "flat"


# =============================================================================
# AGGREGATIONS
# =============================================================================

def aggregate_metrics(periods: Sequence[FacilityPeriod]) -> AggregateMetrics:
    """Sum revenue and absolute metrics, then recompute margins from the totals."""
    revenue = opex = ebitda = ebitdar = noi = 0.0
    for p in periods:
        m = calculate_metrics(p)
        revenue += p.values.revenue_total
        opex += m.opex
        ebitda += m.ebitda
        ebitdar += m.ebitdar
        noi += m.noi

    return AggregateMetrics(
        opex=opex,
        ebitda=ebitda,
        ebitdar=ebitdar,
        noi=noi,
        ebitda_margin=pct(ebitda, revenue),
        ebitdar_margin=pct(ebitdar, revenue),
        noi_margin=pct(noi, revenue),
        revenue_total=revenue,
    )

def calculate_yoy_growth(
    current_periods: Sequence[FacilityPeriod],
    previous_periods: Sequence[FacilityPeriod],
) -> Dict[str, float]:
    current = aggregate_metrics(current_periods)
    previous = aggregate_metrics(previous_periods)
    return {
        "revenue": calculate_period_change(current.revenue_total, previous.revenue_total).percentage,
        "ebitda": calculate_period_change(current.ebitda, previous.ebitda).percentage,
        "ebitdar": calculate_period_change(current.ebitdar, previous.ebitdar).percentage,
        "noi": calculate_period_change(current.noi, previous.noi).percentage,
    }


# =============================================================================
# TABLES (charts + detail table)
# =============================================================================

METRICS_COLUMNS = [
    "period", "revenue_total", "labor_expense", "non_labor_expense", "rent",
    "other_income", "depreciation", "interest", "census", "adr",
    "opex", "ebitda", "ebitdar", "noi",
    "ebitda_margin", "ebitdar_margin", "noi_margin",
]

def metrics_frame(periods: Sequence[FacilityPeriod]) -> pd.DataFrame:
    """One row per period: raw values plus derived metrics, sorted by period."""
    records: List[dict] = []
    for p in periods:
        rec = {"period": p.period}
        rec.update(p.values.model_dump())
        records.append(rec)
    if not records:
        return pd.DataFrame(columns=METRICS_COLUMNS)

    out = pd.DataFrame.from_records(records)
    for col in ["revenue_total", "labor_expense", "non_labor_expense", "rent"]:
        out[col] = out[col].astype(float)

    out["opex"] = out["labor_expense"] + out["non_labor_expense"]
    out["ebitda"] = out["revenue_total"] - out["opex"]
    out["ebitdar"] = out["ebitda"] + out["rent"]
    out["noi"] = out["ebitda"] - out["rent"]
    out["ebitda_margin"] = pct(out["ebitda"], out["revenue_total"])
    out["ebitdar_margin"] = pct(out["ebitdar"], out["revenue_total"])
    out["noi_margin"] = pct(out["noi"], out["revenue_total"])

    return out[METRICS_COLUMNS].sort_values("period").reset_index(drop=True)


METRIC_DEFINITIONS = {
    "revenue_total": {"name": "Total Revenue", "formula": "Total operating revenue", "description": "All operating revenue recognised for the month."},
    "opex": {"name": "Operating Expenses", "formula": "Labor Expense + Non-Labor Expense", "description": "Salaries, wages and payroll plus supplies, G&A, utilities and other opex."},
    "ebitda": {"name": "EBITDA", "formula": "Revenue - Operating Expenses", "description": "Earnings before interest, taxes, depreciation and amortization."},
    "ebitdar": {"name": "EBITDAR", "formula": "EBITDA + Rent", "description": "EBITDA before rent; compares owned and leased facilities."},
    "noi": {"name": "NOI", "formula": "EBITDA - Rent", "description": "Net operating income after facility rent."},
    "ebitda_margin": {"name": "EBITDA Margin (%)", "formula": "(EBITDA / Revenue) x 100", "description": "Share of revenue left after operating expenses."},
    "ebitdar_margin": {"name": "EBITDAR Margin (%)", "formula": "(EBITDAR / Revenue) x 100", "description": "EBITDA margin with rent added back."},
    "noi_margin": {"name": "NOI Margin (%)", "formula": "(NOI / Revenue) x 100", "description": "Share of revenue left after operating expenses and rent."},
}
