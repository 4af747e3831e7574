"""
Chart and table builders for the dashboard widgets.

Each widget kind maps to one builder; the app looks the builder up once per
render and hands it the metrics frame of the filtered periods.
"""

from typing import Callable, Dict, Optional

import altair as alt
import pandas as pd

from .formatting import format_period
from .schema import WidgetKind

GREEN = "#43a047"
RED = "#e53935"
BLUE = "#1e88e5"
ORANGE = "#fb8c00"
GRAY = "#9e9e9e"


def _with_labels(frame: pd.DataFrame) -> pd.DataFrame:
    out = frame.copy()
    out["Month"] = out["period"].map(format_period)
    return out


def revenue_line(frame: pd.DataFrame, comparison: Optional[pd.DataFrame] = None) -> alt.Chart:
    data = _with_labels(frame)
    chart = alt.Chart(data).mark_line(point=True, color=BLUE).encode(
        x=alt.X("Month:N", sort=list(data["Month"]), title=""),
        y=alt.Y("revenue_total:Q", title="Revenue"),
        tooltip=["Month", alt.Tooltip("revenue_total:Q", format="$,.0f", title="Revenue")],
    )
    if comparison is not None and len(comparison) > 0:
        ref = alt.Chart(comparison).mark_rule(strokeDash=[5, 5], color=GRAY).encode(
            y="revenue_total:Q",
            tooltip=[alt.Tooltip("revenue_total:Q", format="$,.0f", title="Comparison revenue")],
        )
        chart = chart + ref
    return chart.properties(height=300)


def ebitda_waterfall(frame: pd.DataFrame, comparison: Optional[pd.DataFrame] = None) -> alt.Chart:
    revenue = float(frame["revenue_total"].sum())
    labor = float(frame["labor_expense"].sum())
    non_labor = float(frame["non_labor_expense"].sum())
    ebitda = revenue - labor - non_labor

    steps = pd.DataFrame([
        {"Step": "Revenue", "start": 0.0, "end": revenue, "Amount": revenue, "Kind": "total"},
        {"Step": "Labor", "start": revenue, "end": revenue - labor, "Amount": -labor, "Kind": "decrease"},
        {"Step": "Non-Labor", "start": revenue - labor, "end": ebitda, "Amount": -non_labor, "Kind": "decrease"},
        {"Step": "EBITDA", "start": 0.0, "end": ebitda, "Amount": ebitda, "Kind": "total"},
    ])
    return alt.Chart(steps).mark_bar().encode(
        x=alt.X("Step:N", sort=list(steps["Step"]), title=""),
        y=alt.Y("start:Q", title="Amount"),
        y2="end:Q",
        color=alt.Color(
            "Kind:N",
            scale=alt.Scale(domain=["total", "decrease"], range=[BLUE, RED]),
            legend=None,
        ),
        tooltip=["Step", alt.Tooltip("Amount:Q", format="$,.0f")],
    ).properties(height=300)


def opex_breakdown(frame: pd.DataFrame, comparison: Optional[pd.DataFrame] = None) -> alt.Chart:
    data = _with_labels(frame)[["Month", "labor_expense", "non_labor_expense"]].melt(
        id_vars=["Month"], var_name="Type", value_name="Expense"
    )
    data["Type"] = data["Type"].map({"labor_expense": "Labor", "non_labor_expense": "Non-Labor"})
    months = list(_with_labels(frame)["Month"])
    return alt.Chart(data).mark_bar().encode(
        x=alt.X("Month:N", sort=months, title=""),
        y=alt.Y("Expense:Q", stack=True, title="Operating Expenses"),
        color=alt.Color("Type:N", scale=alt.Scale(domain=["Labor", "Non-Labor"], range=[BLUE, ORANGE])),
        tooltip=["Month", "Type", alt.Tooltip("Expense:Q", format="$,.0f")],
    ).properties(height=300)


def noi_trend(frame: pd.DataFrame, comparison: Optional[pd.DataFrame] = None) -> alt.Chart:
    data = _with_labels(frame)
    bars = alt.Chart(data).mark_bar().encode(
        x=alt.X("Month:N", sort=list(data["Month"]), title=""),
        y=alt.Y("noi:Q", title="NOI"),
        color=alt.condition(alt.datum.noi < 0, alt.value(RED), alt.value(GREEN)),
        tooltip=[
            "Month",
            alt.Tooltip("noi:Q", format="$,.0f", title="NOI"),
            alt.Tooltip("noi_margin:Q", format=".1f", title="NOI Margin %"),
        ],
    )
    return bars.properties(height=300)


def census_adr(frame: pd.DataFrame, comparison: Optional[pd.DataFrame] = None) -> alt.Chart:
    data = _with_labels(frame)
    base = alt.Chart(data).encode(x=alt.X("Month:N", sort=list(data["Month"]), title=""))
    census = base.mark_bar(color=BLUE, opacity=0.6).encode(y=alt.Y("census:Q", title="Census"))
    adr = base.mark_line(point=True, color=ORANGE).encode(y=alt.Y("adr:Q", title="ADR"))
    return alt.layer(census, adr).resolve_scale(y="independent").properties(height=300)


def detail_table(frame: pd.DataFrame, comparison: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    disp = _with_labels(frame)[[
        "Month", "revenue_total", "labor_expense", "non_labor_expense", "opex",
        "ebitda", "ebitda_margin", "rent", "ebitdar", "ebitdar_margin", "noi", "noi_margin",
    ]].copy()
    disp.columns = [
        "Month", "Revenue $", "Labor $", "Non-Labor $", "Opex $",
        "EBITDA $", "EBITDA %", "Rent $", "EBITDAR $", "EBITDAR %", "NOI $", "NOI %",
    ]
    return disp


# KPI cards are laid out with st.metric in the app, not built here
WIDGET_RENDERERS: Dict[WidgetKind, Callable] = {
    WidgetKind.REVENUE_LINE: revenue_line,
    WidgetKind.EBITDA_WATERFALL: ebitda_waterfall,
    WidgetKind.OPEX_BREAKDOWN: opex_breakdown,
    WidgetKind.NOI_TREND: noi_trend,
    WidgetKind.CENSUS_ADR: census_adr,
    WidgetKind.DETAIL_TABLE: detail_table,
}

DETAIL_TABLE_FORMAT = {
    "Revenue $": "${:,.0f}", "Labor $": "${:,.0f}", "Non-Labor $": "${:,.0f}", "Opex $": "${:,.0f}",
    "EBITDA $": "${:,.0f}", "EBITDA %": "{:.1f}%", "Rent $": "${:,.0f}",
    "EBITDAR $": "${:,.0f}", "EBITDAR %": "{:.1f}%", "NOI $": "${:,.0f}", "NOI %": "{:.1f}%",
}
