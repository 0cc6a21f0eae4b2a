"""
Adjustments router — reconcile a wallet with the real balance.

Endpoints:
  POST /adjustments — Record the difference between tracked and real balance
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.database import get_db
from kantong.dependencies import get_user_id
from kantong.schemas.transaction import AdjustmentRequest, AdjustmentResponse
from kantong.services import ledger_service

router = APIRouter()


@router.post(
    "",
    response_model=AdjustmentResponse,
    summary="Adjust a wallet to its real balance",
)
async def adjust_wallet(
    request: AdjustmentRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Writes one income or expense transaction (category "adjustment") for
    real_balance - current_balance, or nothing when they are equal.
    """
    return await ledger_service.adjust_wallet_balance(
        db=db,
        user_id=user_id,
        wallet=request.wallet,
        current_balance=request.current_balance,
        real_balance=request.real_balance,
        description=request.description,
    )
