"""
Wallets router — named balances ("kantong") of the calling user.

Endpoints:
  POST   /wallets                 — Create a wallet
  GET    /wallets                 — List wallets, ordered by name
  GET    /wallets/{name}          — Get one wallet
  GET    /wallets/{name}/balance  — Cached vs. recomputed balance
  PATCH  /wallets/{name}          — Change type / include_in_total
  DELETE /wallets/{name}          — Delete an empty wallet

Names are case-insensitive: "Tabungan" and "tabungan" are the same wallet.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.database import get_db
from kantong.dependencies import get_user_id
from kantong.schemas.wallet import (
    WalletBalanceResponse,
    WalletCreateRequest,
    WalletDeletedResponse,
    WalletResponse,
    WalletUpdateRequest,
)
from kantong.services import wallet_service

router = APIRouter()


@router.post(
    "",
    response_model=WalletResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a wallet",
)
async def create_wallet(
    request: WalletCreateRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a wallet with a zero balance.

    Returns 409 ALREADY_EXISTS when the (normalized) name is taken.
    """
    return await wallet_service.create_wallet(
        db=db,
        user_id=user_id,
        name=request.name,
        wallet_type=request.type,
        include_in_total=request.include_in_total,
    )


@router.get(
    "",
    response_model=list[WalletResponse],
    summary="List your wallets",
)
async def list_wallets(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await wallet_service.list_wallets(db, user_id)


@router.get(
    "/{name}",
    response_model=WalletResponse,
    summary="Get a wallet",
)
async def get_wallet(
    name: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await wallet_service.get_wallet(db, user_id, name)


@router.get(
    "/{name}/balance",
    response_model=WalletBalanceResponse,
    summary="Get a wallet's balance",
)
async def get_wallet_balance(
    name: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Return the cached balance alongside the balance recomputed from the
    transaction log. `match` is false only if the two have drifted apart.
    """
    return await wallet_service.get_wallet_balance(db, user_id, name)


@router.patch(
    "/{name}",
    response_model=WalletResponse,
    summary="Update a wallet",
)
async def update_wallet(
    name: str,
    request: WalletUpdateRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Returns 404 NOT_FOUND for an unknown wallet and 400 NO_UPDATES for an empty body."""
    return await wallet_service.update_wallet(
        db=db,
        user_id=user_id,
        name=name,
        wallet_type=request.type,
        include_in_total=request.include_in_total,
    )


@router.delete(
    "/{name}",
    response_model=WalletDeletedResponse,
    summary="Delete an empty wallet",
)
async def delete_wallet(
    name: str,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Delete a wallet whose balance is exactly zero (409 NOT_EMPTY otherwise).

    The wallet's transactions stay in the history.
    """
    deleted = await wallet_service.delete_wallet(db, user_id, name)
    return WalletDeletedResponse(name=deleted)
