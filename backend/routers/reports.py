from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, Request

from schemas.reports import (
    DailySummary,
    MonthlyDispenseAnalytics,
    SixMonthTrend,
    StockImpactReport,
    SupplierDistribution,
)

router = APIRouter()


@router.get("/daily-summary", response_model=DailySummary)
async def daily_summary(request: Request, day: Optional[date] = Query(None, alias="date")):
    return await request.app.state.analytics.daily_summary(day)


@router.get("/six-month-trend", response_model=SixMonthTrend)
async def six_month_trend(request: Request, as_of: Optional[date] = Query(None)):
    return await request.app.state.analytics.six_month_trend(as_of)


@router.get("/stock-impact", response_model=StockImpactReport)
async def stock_impact(request: Request, as_of: Optional[date] = Query(None)):
    return await request.app.state.analytics.stock_impact_report(as_of)


@router.get("/monthly", response_model=MonthlyDispenseAnalytics)
async def monthly(request: Request, year: Optional[int] = Query(None), month: Optional[int] = Query(None)):
    return await request.app.state.analytics.monthly_analytics(year, month)


@router.get("/supplier-distribution", response_model=SupplierDistribution)
async def supplier_distribution(request: Request):
    return await request.app.state.supplier_distribution.distribution()
