"""
Facility Financial Dashboard
============================
Streamlit app for senior-living facility operators.

Structure follows the import-then-analyse flow:
1. Data source (stored dataset, sample data or workbook upload)
2. Mapping wizard (sheet -> auto-detected mapping -> review -> import)
3. Overall KPIs with period-over-period change
4. Widgets (revenue, EBITDA waterfall, opex, NOI, census/ADR, detail table)
"""

import io
from typing import Dict, List, Optional

import pandas as pd
import streamlit as st
from loguru import logger

from facility_dashboard.config import configure_logging, settings
from facility_dashboard.formatting import (
    format_currency, format_delta, format_percentage, format_period, format_period_range,
)
from facility_dashboard.mapping import (
    MappingError, apply_mapping, detect_with_evidence, find_header_row,
    missing_required_fields, periods_preview, row_label, validate,
)
from facility_dashboard.metrics import (
    METRIC_DEFINITIONS, aggregate_metrics, calculate_period_change, metrics_frame,
)
from facility_dashboard.periods import shift_period
from facility_dashboard.sample import seed_sample_data
from facility_dashboard.schema import (
    FIELD_LABELS, OPTIONAL_FIELDS, REQUIRED_FIELDS, DecodedWorkbook, WidgetKind,
)
from facility_dashboard.state import (
    WIDGET_CATALOG, DatasetCollection, FilterState, LayoutState, addable_widgets, new_dataset, widget_for,
)
from facility_dashboard.store import DatasetStore
from facility_dashboard.widgets import DETAIL_TABLE_FORMAT, WIDGET_RENDERERS
from facility_dashboard.workbook import WorkbookDecodeError, load_workbook

# =============================================================================
# PAGE CONFIGURATION
# =============================================================================

st.set_page_config(
    page_title="Facility Financial Dashboard",
    page_icon="🏥",
    layout="wide",
    initial_sidebar_state="expanded"
)


# =============================================================================
# SESSION STATE
# =============================================================================

def get_session():
    """One dataset collection, filter state and layout state per browser session."""
    if "datasets" not in st.session_state:
        configure_logging()
        store = DatasetStore(settings.data_dir)
        datasets = DatasetCollection(store)
        datasets.load()
        st.session_state["datasets"] = datasets
        st.session_state["filters"] = FilterState()
        st.session_state["layouts"] = LayoutState(store)
    return st.session_state["datasets"], st.session_state["filters"], st.session_state["layouts"]


# =============================================================================
# DATA LOADING (CACHED)
# =============================================================================

@st.cache_data
def decode_workbook(data: bytes) -> DecodedWorkbook:
    """Decode uploaded bytes into cell grids."""
    return load_workbook(io.BytesIO(data))


# =============================================================================
# MAPPING WIZARD
# =============================================================================

def _row_labels(grid: List[list]) -> List[str]:
    idx = find_header_row(grid)
    labels = []
    for row in grid[idx + 1:]:
        label = row_label(row)
        if label and label not in labels:
            labels.append(label)
    return labels

def _pick(label: str, options: List[str], default: Optional[str], key: str) -> str:
    choices = [""] + options
    index = choices.index(default) if default in choices else 0
    return st.selectbox(label, choices, index=index, key=key)

def mapping_wizard(workbook: DecodedWorkbook, datasets: DatasetCollection):
    st.header("🧭 Map Workbook Columns")

    # Step 1: sheet + facility
    c1, c2 = st.columns(2)
    sheet = c1.selectbox("Sheet", workbook.sheet_names, key="wiz_sheet")
    facility_name = c2.text_input("Facility name", settings.default_facility_name, key="wiz_facility")

    grid = workbook.cell_grids[sheet]
    headers = workbook.header_rows[sheet]
    if not grid:
        st.warning("Selected sheet is empty.")
        return

    report = detect_with_evidence(headers, grid, scan_rows=settings.detection_scan_rows)
    header_options = [h for h in headers if h]
    value_options = header_options + [lbl for lbl in _row_labels(grid) if lbl not in header_options]

    # Step 2: review the suggested mapping
    st.subheader("Field Mapping")
    st.caption("Suggested from the sheet's headers and row labels. Review and override before importing.")
    mapping: Dict[str, str] = {}
    cols = st.columns(2)
    for i, fname in enumerate(REQUIRED_FIELDS + OPTIONAL_FIELDS):
        label = FIELD_LABELS[fname] + (" *" if fname in REQUIRED_FIELDS else "")
        options = header_options if fname == "period" else value_options
        with cols[i % 2]:
            mapping[fname] = _pick(label, options, report.mapping.get(fname), key=f"{sheet}_{fname}")

    missing = missing_required_fields(mapping)
    if missing:
        st.error("Missing required fields: " + ", ".join(FIELD_LABELS[f] for f in missing))
        return

    issues: List[str] = []
    try:
        periods = apply_mapping(
            grid, headers, mapping, facility_name=facility_name,
            currency=settings.default_currency, issues=issues,
        )
    except MappingError as e:
        st.error(f"Error: {e}")
        return

    result = validate(periods)
    for err in result.errors:
        st.error(err)
    for warn in result.warnings + issues:
        st.warning(warn)

    if periods:
        st.subheader(f"Preview: {len(periods)} period(s)")
        st.dataframe(periods_preview(periods), use_container_width=True)

    if not result.is_valid:
        return

    # Step 3: import
    st.subheader("Import")
    targets = ["New dataset"] + [d.name for d in datasets.datasets]
    target = st.selectbox("Add to", targets, key="wiz_target")
    name = st.text_input("Dataset name", f"{facility_name} financials", key="wiz_name") if target == "New dataset" else None

    if st.button("Import", type="primary"):
        if target == "New dataset":
            ok = datasets.add_dataset(new_dataset(name, periods, facility_name=facility_name))
            dataset_id = datasets.datasets[-1].id if ok else None
        else:
            dataset_id = next(d.id for d in datasets.datasets if d.name == target)
            ok = datasets.add_periods(dataset_id, periods)
        if not ok:
            st.error(datasets.error)
            datasets.clear_error()
            return
        datasets.set_current(dataset_id)
        logger.info("Imported {} period(s) from sheet {!r}", len(periods), sheet)
        st.success(f"✅ Imported {len(periods)} period(s)")


# =============================================================================
# DASHBOARD
# =============================================================================

def kpi_cards(previous: List, selection: List):
    agg = aggregate_metrics(selection)
    prev = aggregate_metrics(previous) if previous else None

    def delta(now: float, before: Optional[float]) -> Optional[str]:
        if before is None:
            return None
        return format_delta(calculate_period_change(now, before).percentage)

    c1, c2, c3, c4, c5 = st.columns(5)
    c1.metric("Total Revenue", format_currency(agg.revenue_total), delta(agg.revenue_total, prev and prev.revenue_total))
    c2.metric("Operating Expenses", format_currency(agg.opex), delta(agg.opex, prev and prev.opex), delta_color="inverse")
    c3.metric("EBITDA", format_currency(agg.ebitda), delta(agg.ebitda, prev and prev.ebitda))
    c4.metric("EBITDAR", format_currency(agg.ebitdar), delta(agg.ebitdar, prev and prev.ebitdar))
    c5.metric("NOI", format_currency(agg.noi), delta(agg.noi, prev and prev.noi))

    c1, c2, c3 = st.columns(3)
    c1.metric("EBITDA Margin", format_percentage(agg.ebitda_margin))
    c2.metric("EBITDAR Margin", format_percentage(agg.ebitdar_margin))
    c3.metric("NOI Margin", format_percentage(agg.noi_margin))

def _previous_periods(all_periods: List, selection: List) -> List:
    """Same number of months immediately before the selection."""
    if not selection:
        return []
    keys = sorted(p.period for p in selection)
    span = len(keys)
    wanted = {shift_period(keys[0], -(i + 1)) for i in range(span)}
    return [p for p in all_periods if p.period in wanted]

def dashboard(datasets: DatasetCollection, filters: FilterState, layouts: LayoutState):
    dataset = datasets.current
    all_periods = list(dataset.periods)
    available = filters.available_periods(all_periods)

    # FILTERS
    st.sidebar.header("🎛️ Filters")
    if len(available) > 1:
        start, end = st.sidebar.select_slider(
            "Period range", options=available, value=(available[0], available[-1]),
            format_func=format_period,
        )
        filters.set_date_range(start, end, all_periods)
    filters.show_comparison = st.sidebar.checkbox("Compare with a period", filters.show_comparison)
    if filters.show_comparison:
        filters.compare_with = st.sidebar.selectbox("Comparison period", available, format_func=format_period)

    selection = filters.filtered(all_periods)
    if not selection:
        st.warning("No data for selected period.")
        st.stop()

    comparison = filters.comparison(all_periods)
    previous = comparison or _previous_periods(all_periods, selection)

    # HEADER
    st.markdown(
        f"### 🏥 {dataset.facility_name} | {format_period_range([p.period for p in selection])} "
        f"({len(selection)} month{'s' if len(selection) != 1 else ''})"
    )

    frame = metrics_frame(selection)
    comp_frame = metrics_frame(comparison) if comparison else None

    layout = layouts.current if layouts.current and layouts.current.dataset_id == dataset.id else layouts.load(dataset.id)

    # LAYOUT EDITING
    with st.sidebar.expander("🧩 Widgets", expanded=False):
        for w in layout.widgets:
            visible = st.checkbox(w.title, w.visible, key=f"widget_{dataset.id}_{w.id}")
            if visible != w.visible:
                layouts.update_widget(dataset.id, w.id, visible=visible)
        addable = addable_widgets(layouts.current or layout)
        if addable:
            kind = st.selectbox(
                "Add widget", addable, format_func=lambda k: WIDGET_CATALOG[k][0], key=f"add_widget_{dataset.id}",
            )
            if st.button("Add"):
                layouts.add_widget(dataset.id, widget_for(kind))
        current_widgets = (layouts.current or layout).widgets
        if current_widgets:
            titles = {w.id: w.title for w in current_widgets}
            widget_id = st.selectbox(
                "Remove widget", list(titles), format_func=titles.get, key=f"remove_widget_{dataset.id}",
            )
            if st.button("Remove"):
                layouts.remove_widget(dataset.id, widget_id)
        if st.button("Reset layout"):
            layouts.reset(dataset.id)
        if layouts.error:
            st.error(layouts.error)
    layout = layouts.current or layout

    for w in layout.widgets:
        if not w.visible:
            continue
        st.subheader(w.title)
        if w.description:
            st.caption(w.description)
        if w.type == WidgetKind.KPI_CARDS:
            kpi_cards(previous, selection)
            continue
        out = WIDGET_RENDERERS[w.type](frame, comp_frame)
        if isinstance(out, pd.DataFrame):
            st.dataframe(out.style.format(DETAIL_TABLE_FORMAT), use_container_width=True)
        else:
            st.altair_chart(out, use_container_width=True)

    with st.expander("📖 Metric Definitions", expanded=False):
        defs = pd.DataFrame(METRIC_DEFINITIONS.values())
        st.dataframe(defs, use_container_width=True)


# =============================================================================
# MAIN APPLICATION
# =============================================================================

def main():
    st.title("🏥 Facility Financial Dashboard")
    st.markdown("*Monthly EBITDA, EBITDAR and NOI from your Excel close package*")

    datasets, filters, layouts = get_session()

    # -------------------------------------------------------------------------
    # SIDEBAR: DATA SOURCE
    # -------------------------------------------------------------------------
    st.sidebar.header("📁 Data Source")
    uploaded = st.sidebar.file_uploader("Upload Excel File", type=["xlsx", "xls"])

    if st.sidebar.button("Load sample data"):
        seed_sample_data(datasets.store)
        datasets.load()

    if datasets.datasets:
        names = {d.id: d.name for d in datasets.datasets}
        ids = list(names)
        default = ids.index(datasets.current.id) if datasets.current and datasets.current.id in names else 0
        chosen = st.sidebar.selectbox("Dataset", ids, index=default, format_func=names.get)
        if datasets.current is None or datasets.current.id != chosen:
            datasets.set_current(chosen)
            filters.reset()
        if st.sidebar.button("Delete dataset"):
            datasets.delete_dataset(chosen)
            if datasets.error:
                st.sidebar.error(datasets.error)
                datasets.clear_error()
            st.rerun()
        st.sidebar.success(f"✅ {len(datasets.current.periods):,} periods loaded")

    if uploaded:
        try:
            with st.spinner("Reading workbook..."):
                workbook = decode_workbook(uploaded.getvalue())
        except WorkbookDecodeError as e:
            st.error(f"Error: {e}")
            st.stop()
        if not workbook.sheet_names:
            st.warning("⚠️ The workbook has no sheets.")
            st.stop()
        with st.expander("🧭 Import from workbook", expanded=datasets.current is None):
            mapping_wizard(workbook, datasets)

    if datasets.current is None:
        st.warning("⚠️ Upload a workbook or load the sample data to get started")
        st.stop()

    dashboard(datasets, filters, layouts)

    # Footer
    st.markdown("---")
    st.caption(
        "**Facility Financial Dashboard** | "
        "EBITDA = Revenue - Labor - Non-Labor | EBITDAR = EBITDA + Rent | NOI = EBITDA - Rent | "
        "Built with Streamlit"
    )


if __name__ == "__main__":
    main()
