"""
Transactions router — income, expense and history.

Endpoints:
  POST /transactions/income   — Record income into a wallet
  POST /transactions/expense  — Record an expense from a wallet
  GET  /transactions          — History for a period, newest first

Transactions are immutable: there is no update or delete. A mistake is
corrected with an adjustment (see /adjustments).
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.database import get_db
from kantong.dependencies import get_user_id
from kantong.schemas.transaction import EntryRequest, EntryResponse, TransactionResponse
from kantong.services import ledger_service, report_service

router = APIRouter()


@router.post(
    "/income",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record income",
)
async def add_income(
    request: EntryRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Add money to a wallet.

    - **amount**: positive, plain number or shorthand ("50rb", "1.5jt")
    - **wallet**: must exist (404 WALLET_NOT_FOUND)
    - **date**: optional backdate, recorded at local midnight
    """
    return await ledger_service.add_income(
        db=db,
        user_id=user_id,
        amount=request.amount,
        description=request.description,
        wallet=request.wallet,
        category=request.category,
        when=request.date,
    )


@router.post(
    "/expense",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record an expense",
)
async def add_expense(
    request: EntryRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Take money out of a wallet. The wallet may go negative; the category
    defaults to "lainnya".
    """
    return await ledger_service.add_expense(
        db=db,
        user_id=user_id,
        amount=request.amount,
        description=request.description,
        wallet=request.wallet,
        category=request.category,
        when=request.date,
    )


@router.get(
    "",
    response_model=list[TransactionResponse],
    summary="Transaction history",
)
async def list_transactions(
    period: str = Query("all_time", description="today | this_month | last_month | specific_month | all_time"),
    month: str | None = Query(None, description="YYYY-MM, used with specific_month"),
    limit: int = Query(20, ge=1, le=500),
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Returns 400 INVALID_PERIOD for an unknown period or a malformed month."""
    return await report_service.get_history_by_period(db, user_id, period, month, limit)
