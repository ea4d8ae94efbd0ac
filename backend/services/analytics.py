"""
AnalyticsAggregator: pull-based reports over the stock ledger and dispense log.

Nothing here is stored. Each report opens one snapshot, reads the items and
the relevant slice of dispense history, and folds them with the pure
``build_*`` functions below (which is also what the tests exercise directly).

All day and month windows are calendar periods in the configured reporting
timezone. A month window always covers the whole calendar month.
"""

import time
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.clock import Clock, SystemClock
from core.config import settings
from core.exceptions import ValidationError
from core.logging_config import get_logger
from core.reporting_calendar import day_bounds, local_date, month_bounds, month_label, reporting_tz, shift_month
from db.database import snapshot_session
from schemas.pharmacy import CATEGORIES, DispenseRecordRead, PharmacyItemRead
from schemas.reports import (
    CategoryImpact,
    CategoryQuantity,
    CriticalItem,
    DailySummary,
    ImpactTotals,
    MonthlyCategoryDispense,
    MonthlyDispenseAnalytics,
    RecentDispense,
    SixMonthTrend,
    StockImpactReport,
    TrendBucket,
)
from services.dispense_history import DispenseHistoryStore
from services.stock_ledger import LOW_STOCK, OUT_OF_STOCK, STATUS_RANK, StockLedger

logger = get_logger("analytics")

TREND_MONTHS = 6
TOP_CATEGORIES = 3

CRITICAL_UTILIZATION = 75
WARNING_UTILIZATION = 50


# ---------------------------------------------------------------------------
# Pure builders
# ---------------------------------------------------------------------------


def category_totals(records: Iterable[DispenseRecordRead], limit: Optional[int] = None) -> List[CategoryQuantity]:
    """Quantity per category, largest first, ties by category name."""
    sums: Dict[str, int] = defaultdict(int)
    for r in records:
        sums[r.category] += r.quantity
    ranked = sorted(sums.items(), key=lambda kv: (-kv[1], kv[0]))
    if limit is not None:
        ranked = ranked[:limit]
    return [CategoryQuantity(category=c, quantity=q) for c, q in ranked]


def percent_change(current: int, previous: int) -> Optional[float]:
    # No baseline: undefined, which is not the same as "no change"
    if previous <= 0:
        return None
    return round((current - previous) / previous * 100, 2)


def utilization(current_stock: int, dispensed: int) -> float:
    available = current_stock + dispensed
    if available == 0:
        return 0.0
    return round(dispensed / available * 100, 2)


def classify_severity(out_of_stock_count: int, low_stock_count: int, utilization_pct: float) -> str:
    if out_of_stock_count > 0 or utilization_pct >= CRITICAL_UTILIZATION:
        return "critical"
    if low_stock_count > 0 or utilization_pct >= WARNING_UTILIZATION:
        return "warning"
    return "stable"


def build_daily_summary(
    day: date,
    tz_name: str,
    records: Sequence[DispenseRecordRead],
    recent: Sequence[DispenseRecordRead],
) -> DailySummary:
    """``records`` are all of the day's dispenses; ``recent`` the newest few, newest first."""
    return DailySummary(
        day=day,
        timezone=tz_name,
        total_dispensed_quantity=sum(r.quantity for r in records),
        total_dispense_events=len(records),
        total_value=sum((r.value for r in records), Decimal("0")),
        top_categories=category_totals(records, limit=TOP_CATEGORIES),
        recent_dispenses=[
            RecentDispense(
                id=r.id,
                item_id=r.item_id,
                item_name=r.item_name,
                category=r.category,
                quantity=r.quantity,
                reason=r.reason,
                dispensed_at=r.dispensed_at,
                value=r.value,
            )
            for r in recent
        ],
    )


def build_six_month_trend(
    as_of: date,
    tz: ZoneInfo,
    records: Iterable[DispenseRecordRead],
) -> SixMonthTrend:
    """
    ``records`` should cover the six buckets plus the month before the oldest
    one, which is only used as the baseline for the first change_from_previous.
    """
    months: List[Tuple[int, int]] = [
        shift_month(as_of.year, as_of.month, -offset) for offset in range(TREND_MONTHS, -1, -1)
    ]
    by_month: Dict[Tuple[int, int], List[DispenseRecordRead]] = {m: [] for m in months}
    for r in records:
        local = r.dispensed_at.astimezone(tz)
        key = (local.year, local.month)
        if key in by_month:
            by_month[key].append(r)

    baseline = sum(r.quantity for r in by_month[months[0]])
    buckets: List[TrendBucket] = []
    previous = baseline
    for year, month in months[1:]:
        bucket_records = by_month[(year, month)]
        total = sum(r.quantity for r in bucket_records)
        buckets.append(
            TrendBucket(
                label=month_label(year, month),
                year=year,
                month=month,
                total_dispensed=total,
                category_breakdown=category_totals(bucket_records),
                change_from_previous=percent_change(total, previous),
            )
        )
        previous = total

    peak = buckets[0]
    for b in buckets[1:]:
        # ">=" so the most recent month wins a tie
        if b.total_dispensed >= peak.total_dispensed:
            peak = b

    grand_total = sum(b.total_dispensed for b in buckets)
    return SixMonthTrend(
        as_of=as_of,
        timezone=tz.key,
        buckets=buckets,
        total_dispensed=grand_total,
        average_monthly_dispensed=round(grand_total / TREND_MONTHS, 2),
        peak_month=peak,
    )


def build_stock_impact_report(
    as_of: date,
    items: Sequence[PharmacyItemRead],
    month_records: Iterable[DispenseRecordRead],
) -> StockImpactReport:
    dispensed: Dict[str, int] = defaultdict(int)
    for r in month_records:
        dispensed[r.category] += r.quantity

    categories: List[CategoryImpact] = []
    for category in CATEGORIES:
        in_cat = [it for it in items if it.category == category]
        current_stock = sum(it.quantity for it in in_cat)
        low = sum(1 for it in in_cat if it.status == LOW_STOCK)
        out = sum(1 for it in in_cat if it.status == OUT_OF_STOCK)
        used = dispensed.get(category, 0)
        util = utilization(current_stock, used)
        categories.append(
            CategoryImpact(
                category=category,
                total_items=len(in_cat),
                current_stock=current_stock,
                total_min_required=sum(it.min_required for it in in_cat),
                dispensed_this_month=used,
                low_stock_count=low,
                out_of_stock_count=out,
                utilization=util,
                severity=classify_severity(out, low, util),
            )
        )

    critical = sorted(
        (it for it in items if it.status in (OUT_OF_STOCK, LOW_STOCK)),
        key=lambda it: (STATUS_RANK[it.status], it.name.lower(), it.item_code),
    )

    return StockImpactReport(
        as_of=as_of,
        month_label=month_label(as_of.year, as_of.month),
        categories=categories,
        critical_items=[
            CriticalItem(
                id=it.id,
                item_code=it.item_code,
                name=it.name,
                category=it.category,
                quantity=it.quantity,
                min_required=it.min_required,
                status=it.status,
            )
            for it in critical
        ],
        totals=ImpactTotals(
            current_stock=sum(c.current_stock for c in categories),
            min_required=sum(c.total_min_required for c in categories),
            total_items=sum(c.total_items for c in categories),
            total_low_stock=sum(c.low_stock_count for c in categories),
            total_out_of_stock=sum(c.out_of_stock_count for c in categories),
            total_dispensed_this_month=sum(c.dispensed_this_month for c in categories),
        ),
    )


def build_monthly_analytics(year: int, month: int, records: Sequence[DispenseRecordRead]) -> MonthlyDispenseAnalytics:
    per: Dict[str, Dict[str, object]] = {}
    for r in records:
        row = per.setdefault(r.category, {"quantity": 0, "events": 0, "value": Decimal("0")})
        row["quantity"] += r.quantity
        row["events"] += 1
        row["value"] += r.value

    rows = sorted(per.items(), key=lambda kv: (-kv[1]["quantity"], kv[0]))
    return MonthlyDispenseAnalytics(
        year=year,
        month=month,
        label=month_label(year, month),
        total_dispensed=sum(r.quantity for r in records),
        total_events=len(records),
        total_value=sum((r.value for r in records), Decimal("0")),
        categories=[MonthlyCategoryDispense(category=c, **v) for c, v in rows],
    )


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class AnalyticsAggregator:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        ledger: Optional[StockLedger] = None,
        history: Optional[DispenseHistoryStore] = None,
        clock: Optional[Clock] = None,
        timezone: Optional[str] = None,
        recent_limit: Optional[int] = None,
    ):
        self.session_maker = session_maker
        self.clock = clock or SystemClock()
        self.tz = reporting_tz(timezone)
        self.ledger = ledger or StockLedger(session_maker, clock=self.clock, timezone=self.tz.key)
        self.history = history or DispenseHistoryStore(session_maker)
        self.recent_limit = recent_limit or settings.recent_dispenses_limit

    def today(self) -> date:
        return local_date(self.clock.now(), self.tz)

    def _log_built(self, report: str, started: float, **fields) -> None:
        logger.debug(
            "report_built",
            extra={"report": report, "duration_ms": round((time.perf_counter() - started) * 1000, 2), **fields},
        )

    async def daily_summary(self, day: Optional[date] = None) -> DailySummary:
        started = time.perf_counter()
        day = day or self.today()
        start, end = day_bounds(day, self.tz)
        async with snapshot_session(self.session_maker) as session:
            records = await self.history.query_range(start, end, session=session)
            recent = await self.history.recent(start, end, self.recent_limit, session=session)
        out = build_daily_summary(day, self.tz.key, records, recent)
        self._log_built("daily_summary", started, day=day, events=out.total_dispense_events)
        return out

    async def six_month_trend(self, as_of: Optional[date] = None) -> SixMonthTrend:
        started = time.perf_counter()
        as_of = as_of or self.today()
        # one extra month in front as the baseline of the oldest bucket
        first_year, first_month = shift_month(as_of.year, as_of.month, -TREND_MONTHS)
        start, _ = month_bounds(first_year, first_month, self.tz)
        _, end = month_bounds(as_of.year, as_of.month, self.tz)
        async with snapshot_session(self.session_maker) as session:
            records = await self.history.query_range(start, end, session=session)
        out = build_six_month_trend(as_of, self.tz, records)
        self._log_built("six_month_trend", started, as_of=as_of, total=out.total_dispensed)
        return out

    async def stock_impact_report(self, as_of: Optional[date] = None) -> StockImpactReport:
        started = time.perf_counter()
        as_of = as_of or self.today()
        start, end = month_bounds(as_of.year, as_of.month, self.tz)
        async with snapshot_session(self.session_maker) as session:
            items = await self.ledger.list_items(session=session)
            records = await self.history.query_range(start, end, session=session)
        out = build_stock_impact_report(as_of, items, records)
        self._log_built("stock_impact", started, as_of=as_of, critical=len(out.critical_items))
        return out

    async def monthly_analytics(self, year: Optional[int] = None, month: Optional[int] = None) -> MonthlyDispenseAnalytics:
        started = time.perf_counter()
        today = self.today()
        year = today.year if year is None else year
        month = today.month if month is None else month
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", field="month")
        if not 1900 <= year <= 9998:
            raise ValidationError("year is out of range", field="year")
        start, end = month_bounds(year, month, self.tz)
        async with snapshot_session(self.session_maker) as session:
            records = await self.history.query_range(start, end, session=session)
        out = build_monthly_analytics(year, month, records)
        self._log_built("monthly", started, year=year, month=month)
        return out
