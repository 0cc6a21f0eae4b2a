"""
Reports router — balances and period statistics.

Endpoints:
  GET /reports/balance     — Headline total, running total and wallets
  GET /reports/stats       — Income/expense totals and counts for a period
  GET /reports/categories  — Expense per category for a period
  GET /reports/trends      — Income/expense per month

Periods are evaluated in the configured TIMEZONE.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.database import get_db
from kantong.dependencies import get_user_id
from kantong.schemas.report import (
    BalanceSummaryResponse,
    CategoryStatResponse,
    MonthlyTrendResponse,
    PeriodStatsResponse,
)
from kantong.services import report_service, wallet_service

router = APIRouter()

PERIOD_QUERY = Query("this_month", description="today | this_month | last_month | specific_month | all_time")
MONTH_QUERY = Query(None, description="YYYY-MM, used with specific_month")


@router.get(
    "/balance",
    response_model=BalanceSummaryResponse,
    summary="Total balance",
)
async def get_balance(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """total_balance only counts wallets with include_in_total set."""
    return BalanceSummaryResponse(
        total_balance=await report_service.get_balance(db, user_id),
        running_total=await report_service.get_running_total(db, user_id),
        wallets=await wallet_service.list_wallets(db, user_id),
    )


@router.get(
    "/stats",
    response_model=PeriodStatsResponse,
    summary="Period statistics",
)
async def get_stats(
    period: str = PERIOD_QUERY,
    month: str | None = MONTH_QUERY,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    stats = await report_service.get_period_stats(db, user_id, period, month)
    return PeriodStatsResponse(period=period, month=month, **stats)


@router.get(
    "/categories",
    response_model=list[CategoryStatResponse],
    summary="Expense per category",
)
async def get_categories(
    period: str = PERIOD_QUERY,
    month: str | None = MONTH_QUERY,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await report_service.get_category_stats(db, user_id, period, month)


@router.get(
    "/trends",
    response_model=list[MonthlyTrendResponse],
    summary="Monthly trends",
)
async def get_trends(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    trends = await report_service.get_monthly_trends(db, user_id)
    return [
        MonthlyTrendResponse(
            month=month,
            income=bucket["income"],
            expense=bucket["expense"],
            net=bucket["income"] - bucket["expense"],
        )
        for month, bucket in trends.items()
    ]
