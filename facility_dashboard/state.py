"""
Application state owned by one dashboard session.

Nothing here is a module-level singleton: the Streamlit app keeps one
``DatasetCollection``, ``FilterState`` and ``LayoutState`` per session and
passes them where they are needed. Storage is touched only through the
explicit load/save calls below.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from loguru import logger

from .schema import (
    DEFAULT_FACILITY_NAME,
    Dataset,
    FacilityPeriod,
    LayoutConfig,
    LayoutFilters,
    WidgetConfig,
    WidgetKind,
    WidgetPosition,
)
from .store import DatasetStore, StorageError


# =============================================================================
# MERGE
# =============================================================================

def merge_periods(existing: Sequence[FacilityPeriod], new: Sequence[FacilityPeriod]) -> List[FacilityPeriod]:
    """
    Existing periods win: a new period whose key is already present is
    dropped. Survivors are appended and the result sorted by period key.
    """
    keys = {p.period for p in existing}
    survivors = []
    for p in new:
        if p.period in keys:
            continue
        keys.add(p.period)
        survivors.append(p)
    return sorted([*existing, *survivors], key=lambda p: p.period)

def new_dataset(name: str, periods: Sequence[FacilityPeriod], facility_name: str = DEFAULT_FACILITY_NAME) -> Dataset:
    now = datetime.now()
    return Dataset(
        id=uuid.uuid4().hex,
        name=name,
        facility_name=facility_name,
        periods=merge_periods([], periods),
        created_at=now,
        updated_at=now,
    )


# =============================================================================
# DATASETS
# =============================================================================

class DatasetCollection:
    """In-memory datasets mirrored to a store. Storage failures land in ``error``."""

    def __init__(self, store: DatasetStore):
        self.store = store
        self.datasets: List[Dataset] = []
        self.current: Optional[Dataset] = None
        self.error: Optional[str] = None

    def load(self) -> None:
        self.error = None
        self.datasets = self.store.load_datasets()
        if self.current is not None:
            self.current = self.get(self.current.id)

    def get(self, dataset_id: str) -> Optional[Dataset]:
        return next((d for d in self.datasets if d.id == dataset_id), None)

    def set_current(self, dataset_id: str) -> None:
        self.current = self.get(dataset_id)

    def _commit(self, datasets: List[Dataset], action: str) -> bool:
        try:
            self.store.save_datasets(datasets)
        except StorageError as e:
            self.error = str(e) or f"Failed to {action}"
            return False
        self.datasets = datasets
        if self.current is not None:
            self.current = self.get(self.current.id)
        return True

    def add_dataset(self, dataset: Dataset) -> bool:
        logger.info("Adding dataset {!r} with {} period(s)", dataset.name, len(dataset.periods))
        return self._commit([*self.datasets, dataset], "save dataset")

    def update_dataset(self, dataset_id: str, **updates) -> bool:
        updates["updated_at"] = datetime.now()
        datasets = [
            d.model_copy(update=updates) if d.id == dataset_id else d
            for d in self.datasets
        ]
        return self._commit(datasets, "update dataset")

    def delete_dataset(self, dataset_id: str) -> bool:
        ok = self._commit([d for d in self.datasets if d.id != dataset_id], "delete dataset")
        if ok:
            logger.info("Deleted dataset {}", dataset_id)
        return ok

    def add_periods(self, dataset_id: str, periods: Sequence[FacilityPeriod]) -> bool:
        dataset = self.get(dataset_id)
        if dataset is None:
            self.error = f"Dataset {dataset_id} not found"
            return False
        merged = merge_periods(dataset.periods, periods)
        logger.info(
            "Merging {} period(s) into {!r}: {} new",
            len(periods), dataset.name, len(merged) - len(dataset.periods),
        )
        return self.update_dataset(dataset_id, periods=merged)

    def clear_error(self) -> None:
        self.error = None


# =============================================================================
# FILTERS
# =============================================================================

@dataclass
class FilterState:
    selected_periods: List[str] = field(default_factory=list)
    compare_with: Optional[str] = None
    show_comparison: bool = False
    date_start: Optional[str] = None
    date_end: Optional[str] = None

    @staticmethod
    def available_periods(periods: Sequence[FacilityPeriod]) -> List[str]:
        return sorted({p.period for p in periods})

    def set_date_range(self, start: Optional[str], end: Optional[str], periods: Sequence[FacilityPeriod] = ()) -> None:
        self.date_start, self.date_end = start, end
        self.selected_periods = [
            k for k in self.available_periods(periods)
            if not start or not end or start <= k <= end
        ]

    def filtered(self, periods: Sequence[FacilityPeriod]) -> List[FacilityPeriod]:
        out = []
        for p in periods:
            if self.selected_periods and p.period not in self.selected_periods:
                continue
            if self.date_start and p.period < self.date_start:
                continue
            if self.date_end and p.period > self.date_end:
                continue
            out.append(p)
        return out

    def comparison(self, periods: Sequence[FacilityPeriod]) -> List[FacilityPeriod]:
        if not self.show_comparison or not self.compare_with:
            return []
        return [p for p in periods if p.period == self.compare_with]

    def reset(self) -> None:
        self.selected_periods = []
        self.compare_with = None
        self.show_comparison = False
        self.date_start = None
        self.date_end = None


# =============================================================================
# LAYOUT
# =============================================================================

# kind -> (title, description, default position x, y, w, h)
WIDGET_CATALOG = {
    WidgetKind.KPI_CARDS: ("Key Performance Indicators", "Revenue, EBITDA, NOI and other key metrics", 0, 0, 12, 4),
    WidgetKind.REVENUE_LINE: ("Monthly Revenue Trend", "Revenue over time with comparison", 0, 4, 8, 6),
    WidgetKind.EBITDA_WATERFALL: ("EBITDA Waterfall", "Revenue breakdown to EBITDA", 8, 4, 4, 6),
    WidgetKind.OPEX_BREAKDOWN: ("Operating Expenses", "Labor vs non-labor expense breakdown", 0, 10, 6, 6),
    WidgetKind.NOI_TREND: ("NOI Trend", "Net Operating Income over time", 6, 10, 6, 6),
    WidgetKind.DETAIL_TABLE: ("Detailed Financials", "Complete financial data table", 0, 16, 12, 8),
    WidgetKind.CENSUS_ADR: ("Census & ADR", "Occupied units against average daily rate", 0, 24, 12, 6),
}

# shown on a fresh layout; the rest of the catalog is added on demand
DEFAULT_WIDGET_KINDS = [
    WidgetKind.KPI_CARDS,
    WidgetKind.REVENUE_LINE,
    WidgetKind.EBITDA_WATERFALL,
    WidgetKind.OPEX_BREAKDOWN,
    WidgetKind.NOI_TREND,
    WidgetKind.DETAIL_TABLE,
]

def widget_for(kind: WidgetKind) -> WidgetConfig:
    title, description, x, y, w, h = WIDGET_CATALOG[kind]
    return WidgetConfig(
        id=kind.value, type=kind, title=title, description=description,
        visible=True, layout=WidgetPosition(x=x, y=y, w=w, h=h),
    )

def default_widgets() -> List[WidgetConfig]:
    return [widget_for(kind) for kind in DEFAULT_WIDGET_KINDS]

def addable_widgets(layout: LayoutConfig) -> List[WidgetKind]:
    """Catalog kinds not yet on the layout, in catalog order."""
    present = {w.type for w in layout.widgets}
    return [kind for kind in WIDGET_CATALOG if kind not in present]

def default_layout(dataset_id: str) -> LayoutConfig:
    return LayoutConfig(dataset_id=dataset_id, widgets=default_widgets(), filters=LayoutFilters())


class LayoutState:
    def __init__(self, store: DatasetStore):
        self.store = store
        self.layouts: Dict[str, LayoutConfig] = {}
        self.current: Optional[LayoutConfig] = None
        self.error: Optional[str] = None

    def load(self, dataset_id: str) -> LayoutConfig:
        layout = self.store.load_layout(dataset_id) or default_layout(dataset_id)
        self.layouts[dataset_id] = layout
        self.current = layout
        return layout

    def save(self, dataset_id: str, layout: LayoutConfig) -> None:
        try:
            self.store.save_layout(dataset_id, layout)
        except StorageError as e:
            self.error = str(e)
            return
        self.layouts[dataset_id] = layout
        self.current = layout

    def _replace_widgets(self, dataset_id: str, widgets: List[WidgetConfig]) -> None:
        layout = self.layouts.get(dataset_id)
        if layout is None:
            return
        self.save(dataset_id, layout.model_copy(update={"widgets": widgets}))

    def update_widget(self, dataset_id: str, widget_id: str, **updates) -> None:
        layout = self.layouts.get(dataset_id)
        if layout is None:
            return
        self._replace_widgets(dataset_id, [
            w.model_copy(update=updates) if w.id == widget_id else w for w in layout.widgets
        ])

    def add_widget(self, dataset_id: str, widget: WidgetConfig) -> None:
        layout = self.layouts.get(dataset_id)
        if layout is None:
            return
        self._replace_widgets(dataset_id, [*layout.widgets, widget])

    def remove_widget(self, dataset_id: str, widget_id: str) -> None:
        layout = self.layouts.get(dataset_id)
        if layout is None:
            return
        self._replace_widgets(dataset_id, [w for w in layout.widgets if w.id != widget_id])

    def reset(self, dataset_id: str) -> None:
        self.save(dataset_id, default_layout(dataset_id))
