from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from schemas.pharmacy import PharmacyCategory, StockStatus


Severity = Literal["stable", "warning", "critical"]


class CategoryQuantity(BaseModel):
    category: PharmacyCategory
    quantity: int = Field(ge=0)


class RecentDispense(BaseModel):
    id: UUID
    item_id: UUID
    item_name: str
    category: PharmacyCategory
    quantity: int = Field(gt=0)
    reason: Optional[str] = None
    dispensed_at: datetime
    value: Decimal


class DailySummary(BaseModel):
    day: date
    timezone: str
    total_dispensed_quantity: int = Field(ge=0)
    total_dispense_events: int = Field(ge=0)
    total_value: Decimal
    top_categories: List[CategoryQuantity]
    recent_dispenses: List[RecentDispense]


class TrendBucket(BaseModel):
    label: str
    year: int
    month: int = Field(ge=1, le=12)
    total_dispensed: int = Field(ge=0)
    category_breakdown: List[CategoryQuantity]
    # None when the previous month had nothing to compare against (not the same as 0.0)
    change_from_previous: Optional[float] = None


class SixMonthTrend(BaseModel):
    as_of: date
    timezone: str
    buckets: List[TrendBucket]
    total_dispensed: int = Field(ge=0)
    average_monthly_dispensed: float
    peak_month: TrendBucket

    @model_validator(mode="after")
    def _six_buckets(self):
        if len(self.buckets) != 6:
            raise ValueError("a six-month trend has exactly 6 buckets")
        return self


class CategoryImpact(BaseModel):
    category: PharmacyCategory
    total_items: int = Field(ge=0)
    current_stock: int = Field(ge=0)
    total_min_required: int = Field(ge=0)
    dispensed_this_month: int = Field(ge=0)
    low_stock_count: int = Field(ge=0)
    out_of_stock_count: int = Field(ge=0)
    utilization: float = Field(ge=0, le=100)
    severity: Severity


class CriticalItem(BaseModel):
    id: UUID
    item_code: str
    name: str
    category: PharmacyCategory
    quantity: int = Field(ge=0)
    min_required: int = Field(ge=1)
    status: StockStatus


class ImpactTotals(BaseModel):
    current_stock: int = Field(ge=0)
    min_required: int = Field(ge=0)
    total_items: int = Field(ge=0)
    total_low_stock: int = Field(ge=0)
    total_out_of_stock: int = Field(ge=0)
    total_dispensed_this_month: int = Field(ge=0)


class StockImpactReport(BaseModel):
    as_of: date
    month_label: str
    categories: List[CategoryImpact]
    critical_items: List[CriticalItem]
    totals: ImpactTotals


class MonthlyCategoryDispense(BaseModel):
    category: PharmacyCategory
    quantity: int = Field(ge=0)
    events: int = Field(ge=0)
    value: Decimal


class MonthlyDispenseAnalytics(BaseModel):
    year: int
    month: int = Field(ge=1, le=12)
    label: str
    total_dispensed: int = Field(ge=0)
    total_events: int = Field(ge=0)
    total_value: Decimal
    categories: List[MonthlyCategoryDispense]


class CategoryDistribution(BaseModel):
    category: PharmacyCategory
    supplier_count: int = Field(ge=1)
    item_count: int = Field(ge=0)
    total_quantity: int = Field(ge=0)
    total_value: Decimal


class SupplierDistribution(BaseModel):
    categories: List[CategoryDistribution]
    total_suppliers_in_system: int = Field(ge=0)
    total_linked_suppliers: int = Field(ge=0)
