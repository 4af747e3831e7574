"""
Core data model for facility financial periods, datasets and dashboard layouts.

Attributes are snake_case in Python; the persisted JSON uses the camelCase
names of the dashboard contract (``revenueTotal``, ``facilityName``, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# CONFIG
# =============================================================================

DEFAULT_FACILITY_NAME = "Alpine Vista"
DEFAULT_CURRENCY = "USD"

PERIOD_PATTERN = r"^\d{4}-\d{2}$"

REQUIRED_FIELDS = ["period", "revenue_total", "labor_expense", "non_labor_expense", "rent"]
OPTIONAL_FIELDS = ["other_income", "depreciation", "interest", "census", "adr"]
VALUE_FIELDS = REQUIRED_FIELDS[1:] + OPTIONAL_FIELDS

FIELD_LABELS = {
    "period": "Period",
    "revenue_total": "Revenue Total",
    "labor_expense": "Labor Expense",
    "non_labor_expense": "Non-Labor Expense",
    "rent": "Rent",
    "other_income": "Other Income",
    "depreciation": "Depreciation",
    "interest": "Interest",
    "census": "Census",
    "adr": "Average Daily Rate",
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# PERIODS + DATASETS
# =============================================================================

class PeriodValues(_CamelModel):
    """Raw financial values for one facility-month, stored as magnitudes."""
    model_config = ConfigDict(frozen=True)

    revenue_total: float
    labor_expense: float
    non_labor_expense: float
    rent: float
    other_income: Optional[float] = None
    depreciation: Optional[float] = None
    interest: Optional[float] = None
    census: Optional[float] = None
    adr: Optional[float] = None


class FacilityPeriod(_CamelModel):
    """One month of financials for one facility. Identity is facility + period."""
    model_config = ConfigDict(frozen=True)

    id: str
    facility_name: str = DEFAULT_FACILITY_NAME
    period: str = Field(..., pattern=PERIOD_PATTERN)
    currency: str = DEFAULT_CURRENCY
    values: PeriodValues


class Dataset(_CamelModel):
    id: str
    name: str
    facility_name: str
    periods: List[FacilityPeriod] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ColumnMapping(_CamelModel):
    """Confirmed mapping of canonical field -> literal header or row label."""
    period: str
    revenue_total: str
    labor_expense: str
    non_labor_expense: str
    rent: str
    other_income: Optional[str] = None
    depreciation: Optional[str] = None
    interest: Optional[str] = None
    census: Optional[str] = None
    adr: Optional[str] = None

    def targets(self) -> Dict[str, str]:
        """Non-empty field -> target pairs, period included."""
        return {k: v for k, v in self.model_dump().items() if v}


# =============================================================================
# DASHBOARD LAYOUT
# =============================================================================

class WidgetKind(str, Enum):
    KPI_CARDS = "kpi-cards"
    REVENUE_LINE = "revenue-line"
    EBITDA_WATERFALL = "ebitda-waterfall"
    OPEX_BREAKDOWN = "opex-breakdown"
    NOI_TREND = "noi-trend"
    CENSUS_ADR = "census-adr"
    DETAIL_TABLE = "detail-table"


class WidgetPosition(BaseModel):
    x: int
    y: int
    w: int
    h: int


class WidgetConfig(_CamelModel):
    id: str
    type: WidgetKind
    title: str
    description: Optional[str] = None
    visible: bool = True
    layout: Optional[WidgetPosition] = None


class LayoutFilters(_CamelModel):
    selected_periods: List[str] = Field(default_factory=list)
    compare_with: Optional[str] = None
    show_comparison: bool = False


class LayoutConfig(_CamelModel):
    dataset_id: str
    widgets: List[WidgetConfig]
    filters: LayoutFilters = Field(default_factory=LayoutFilters)


# =============================================================================
# DECODED WORKBOOK + VALIDATION RESULT
# =============================================================================

@dataclass
class DecodedWorkbook:
    sheet_names: List[str]
    cell_grids: Dict[str, List[List[Any]]]
    header_rows: Dict[str, List[str]]


@dataclass
class ValidationResult:
    is_valid: bool
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


