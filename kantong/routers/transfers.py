"""
Transfers router — move money between two wallets of the same user.

Endpoints:
  POST /transfers — Transfer money from one wallet to another

A transfer writes two linked transactions:
  1. An expense against the source wallet
  2. An income against the destination wallet

Both carry category "transfer" and share a transfer_pair_id. Either both
are written and both balances move, or nothing changes.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.database import get_db
from kantong.dependencies import get_user_id
from kantong.schemas.transaction import TransferRequest, TransferResponse
from kantong.services import ledger_service

router = APIRouter()


@router.post(
    "",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Transfer money between wallets",
)
async def create_transfer(
    request: TransferRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    - **from_wallet** / **to_wallet**: must both exist (404 FROM_/TO_WALLET_NOT_FOUND)
    - The source must hold at least **amount** (422 INSUFFICIENT_BALANCE)
    - Source and destination must differ (400 SAME_WALLET)
    """
    return await ledger_service.transfer_between_wallets(
        db=db,
        user_id=user_id,
        amount=request.amount,
        from_wallet=request.from_wallet,
        to_wallet=request.to_wallet,
        description=request.description,
        when=request.date,
    )
