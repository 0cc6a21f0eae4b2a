"""
Report service — balances, history and period statistics.

Everything here is read-only. Periods ("today", "this_month", ...) are
resolved by kantong.utils.periods into half-open UTC ranges in the
configured local timezone, so "today" means the user's calendar day even
though timestamps are stored in UTC.

Two totals exist and they are NOT the same thing:
  - get_balance(): sum of wallet balances with include_in_total set. This
    is the headline "Saldo Total" shown to users.
  - get_running_total(): the cached net income minus expense kept in the
    `balances` table, which ignores the include_in_total flag.

Monthly trends are bucketed in Python rather than with strftime() in SQL,
because the month a timestamp belongs to depends on the local timezone.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.models.balance import UserBalance
from kantong.models.transaction import Transaction
from kantong.models.wallet import Wallet
from kantong.utils.periods import as_utc, month_key, resolve_period

UNCATEGORIZED = "lainnya"


def _decimal(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


def _in_period(query, period: str, year_month: str | None):
    bounds = resolve_period(period, year_month)
    if bounds is None:
        return query
    start, end = bounds
    return query.where(Transaction.created_at >= start).where(Transaction.created_at < end)


async def get_balance(db: AsyncSession, user_id: str) -> Decimal:
    """Sum of balances over the user's wallets that count toward the total."""
    result = await db.execute(
        select(func.coalesce(func.sum(Wallet.balance), 0))
        .where(Wallet.user_id == user_id)
        .where(Wallet.include_in_total.is_(True))
    )
    return _decimal(result.scalar())


async def get_running_total(db: AsyncSession, user_id: str) -> Decimal:
    running = await db.get(UserBalance, user_id)
    return _decimal(running.balance if running else 0)


async def get_history(db: AsyncSession, user_id: str, limit: int = 10) -> list[Transaction]:
    """The most recent transactions, newest first."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.user_id == user_id)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_history_by_period(
    db: AsyncSession,
    user_id: str,
    period: str,
    year_month: str | None = None,
    limit: int | None = 20,
) -> list[Transaction]:
    """
    Transactions within a period, newest first.

    Args:
        period: today | this_month | last_month | specific_month | all_time.
        year_month: "YYYY-MM", only used with specific_month. Omitting it
            applies no date filter.
        limit: Maximum number of rows; None for all of them.

    Raises:
        InvalidPeriodError: Unknown period or malformed year_month.
    """
    query = _in_period(
        select(Transaction).where(Transaction.user_id == user_id),
        period,
        year_month,
    ).order_by(Transaction.created_at.desc())

    if limit is not None:
        query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_period_stats(
    db: AsyncSession,
    user_id: str,
    period: str,
    year_month: str | None = None,
) -> dict:
    """
    Income and expense totals and counts for a period.

    Returns:
        Dict with income, expense, income_count, expense_count and net.
    """
    query = _in_period(
        select(
            Transaction.type,
            func.coalesce(func.sum(Transaction.amount), 0),
            func.count(Transaction.id),
        ).where(Transaction.user_id == user_id),
        period,
        year_month,
    ).group_by(Transaction.type)

    stats = {
        "income": Decimal("0.00"),
        "expense": Decimal("0.00"),
        "income_count": 0,
        "expense_count": 0,
    }
    for txn_type, total, count in (await db.execute(query)).all():
        stats[txn_type] = _decimal(total)
        stats[f"{txn_type}_count"] = count

    stats["net"] = stats["income"] - stats["expense"]
    return stats


async def get_daily_stats(db: AsyncSession, user_id: str) -> dict:
    return await get_period_stats(db, user_id, "today")


async def get_monthly_stats(
    db: AsyncSession,
    user_id: str,
    year_month: str | None = None,
) -> dict:
    """Stats for a given "YYYY-MM", or the current month when omitted."""
    if year_month is None:
        return await get_period_stats(db, user_id, "this_month")
    return await get_period_stats(db, user_id, "specific_month", year_month)


async def get_all_time_stats(db: AsyncSession, user_id: str) -> dict:
    return await get_period_stats(db, user_id, "all_time")


async def get_category_stats(
    db: AsyncSession,
    user_id: str,
    period: str = "this_month",
    year_month: str | None = None,
) -> list[dict]:
    """Expense totals per category, largest first. Missing categories count as "lainnya"."""
    category = func.coalesce(Transaction.category, UNCATEGORIZED)
    total = func.sum(Transaction.amount)

    query = _in_period(
        select(category, total, func.count(Transaction.id))
        .where(Transaction.user_id == user_id)
        .where(Transaction.type == "expense"),
        period,
        year_month,
    ).group_by(category).order_by(total.desc())

    return [
        {"category": name, "total": _decimal(amount), "count": count}
        for name, amount, count in (await db.execute(query)).all()
    ]


async def get_monthly_trends(db: AsyncSession, user_id: str) -> dict[str, dict]:
    """
    Income and expense per local month, ascending by month.

    Returns:
        {"2025-01": {"income": Decimal, "expense": Decimal}, ...}
    """
    result = await db.execute(
        select(Transaction.created_at, Transaction.type, Transaction.amount)
        .where(Transaction.user_id == user_id)
    )

    buckets: dict[str, dict] = {}
    for created_at, txn_type, amount in result.all():
        bucket = buckets.setdefault(
            month_key(created_at),
            {"income": Decimal("0.00"), "expense": Decimal("0.00")},
        )
        bucket[txn_type] += _decimal(amount)

    return dict(sorted(buckets.items()))


async def get_first_transaction_date(db: AsyncSession, user_id: str) -> datetime | None:
    result = await db.execute(
        select(func.min(Transaction.created_at)).where(Transaction.user_id == user_id)
    )
    first = result.scalar()
    if first is None:
        return None
    # func.min() on SQLite may come back as a plain string
    if isinstance(first, str):
        first = datetime.fromisoformat(first)
    return as_utc(first)
