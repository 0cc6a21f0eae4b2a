"""Pydantic schemas for the report endpoints."""

from decimal import Decimal

from pydantic import BaseModel

from kantong.schemas.wallet import WalletResponse


class BalanceSummaryResponse(BaseModel):
    """Headline total plus the per-wallet breakdown."""
    total_balance: Decimal
    running_total: Decimal
    wallets: list[WalletResponse]


class PeriodStatsResponse(BaseModel):
    period: str
    month: str | None = None
    income: Decimal
    expense: Decimal
    income_count: int
    expense_count: int
    net: Decimal


class CategoryStatResponse(BaseModel):
    category: str
    total: Decimal
    count: int


class MonthlyTrendResponse(BaseModel):
    month: str
    income: Decimal
    expense: Decimal
    net: Decimal
