"""
Wallet service — named balances ("kantong") per chat user.

This module handles:
  - Wallet creation (explicit, or implicitly on first use)
  - Settings updates (type, include_in_total)
  - Deletion of empty wallets
  - Balance verification (cached vs. computed from transactions)

Naming:
  Wallet names are case-insensitive. Every entry point normalizes the name
  (lowercase, trimmed) before touching the store, so "Tabungan " and
  "tabungan" are the same wallet. The normalized form is what gets stored.

Ownership:
  Every function takes the `user_id` (chat handle) and scopes its queries by
  it. Two users may both own a wallet called "cash".
"""

from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.exceptions import (
    NoUpdatesError,
    WalletAlreadyExistsError,
    WalletNotEmptyError,
    WalletNotFoundError,
)
from kantong.models.transaction import Transaction
from kantong.models.wallet import Wallet


def normalize_wallet_name(name: str) -> str:
    return name.strip().lower()


async def find_wallet(
    db: AsyncSession,
    user_id: str,
    name: str,
) -> Wallet | None:
    """Look up a wallet by (normalized) name. Returns None when absent."""
    result = await db.execute(
        select(Wallet)
        .where(Wallet.user_id == user_id)
        .where(Wallet.name == normalize_wallet_name(name))
    )
    return result.scalar_one_or_none()


async def wallet_exists(db: AsyncSession, user_id: str, name: str) -> bool:
    return await find_wallet(db, user_id, name) is not None


async def get_wallet(db: AsyncSession, user_id: str, name: str) -> Wallet:
    """
    Get a single wallet.

    Raises:
        WalletNotFoundError: If the user has no wallet with that name.
    """
    wallet = await find_wallet(db, user_id, name)
    if wallet is None:
        raise WalletNotFoundError(normalize_wallet_name(name))
    return wallet


async def list_wallets(db: AsyncSession, user_id: str) -> list[Wallet]:
    """List all wallets of a user, ordered by name."""
    result = await db.execute(
        select(Wallet).where(Wallet.user_id == user_id).order_by(Wallet.name)
    )
    return list(result.scalars().all())


async def create_wallet(
    db: AsyncSession,
    user_id: str,
    name: str,
    wallet_type: str = "regular",
    include_in_total: bool = True,
) -> Wallet:
    """
    Create a new wallet with a zero balance.

    The unique (user_id, name) constraint backs up the explicit existence
    check: a concurrent insert of the same name surfaces as the same error.

    Raises:
        WalletAlreadyExistsError: If the normalized name is already taken.
    """
    normalized = normalize_wallet_name(name)
    if await find_wallet(db, user_id, normalized) is not None:
        raise WalletAlreadyExistsError(normalized)

    wallet = Wallet(
        user_id=user_id,
        name=normalized,
        type=wallet_type,
        include_in_total=include_in_total,
        balance=Decimal("0"),
    )
    try:
        async with db.begin_nested():
            db.add(wallet)
    except IntegrityError as exc:
        raise WalletAlreadyExistsError(normalized) from exc

    return wallet


async def get_or_create_wallet(db: AsyncSession, user_id: str, name: str) -> Wallet:
    """Return the wallet, creating a regular, counted one if it does not exist."""
    wallet = await find_wallet(db, user_id, name)
    if wallet is not None:
        return wallet
    return await create_wallet(db, user_id, name)


async def update_wallet(
    db: AsyncSession,
    user_id: str,
    name: str,
    wallet_type: str | None = None,
    include_in_total: bool | None = None,
) -> Wallet:
    """
    Update the patchable settings of a wallet.

    Only the fields that are not None are changed. The balance and history
    are never touched: excluding a wallet from the total only changes what
    get_balance() adds up.

    Raises:
        WalletNotFoundError: If the wallet does not exist.
        NoUpdatesError: If neither field is given.
    """
    wallet = await get_wallet(db, user_id, name)

    if wallet_type is None and include_in_total is None:
        raise NoUpdatesError()

    if wallet_type is not None:
        wallet.type = wallet_type
    if include_in_total is not None:
        wallet.include_in_total = include_in_total

    await db.flush()
    return wallet


async def delete_wallet(db: AsyncSession, user_id: str, name: str) -> str:
    """
    Delete an empty wallet. Irreversible.

    Transactions recorded against the wallet stay in the log: wallet_name is
    a plain column, not a foreign key.

    Returns:
        The normalized name of the deleted wallet.

    Raises:
        WalletNotFoundError: If the wallet does not exist.
        WalletNotEmptyError: If its balance is not exactly zero.
    """
    wallet = await get_wallet(db, user_id, name)

    if wallet.balance != 0:
        raise WalletNotEmptyError(wallet.name, wallet.balance)

    await db.delete(wallet)
    await db.flush()
    return wallet.name


async def get_wallet_balance(db: AsyncSession, user_id: str, name: str) -> dict:
    """
    Get a wallet's balance — both cached and computed from transactions.

    The computed balance sums the wallet's income rows and subtracts its
    expense rows. If it doesn't match the cached balance, that signals a
    data integrity issue.

    Returns:
        Dict with wallet, cached_balance, computed_balance, match.
    """
    wallet = await get_wallet(db, user_id, name)
    computed_balance = await _compute_balance_from_transactions(db, user_id, wallet.name)

    return {
        "wallet": wallet.name,
        "cached_balance": wallet.balance,
        "computed_balance": computed_balance,
        "match": wallet.balance == computed_balance,
    }


async def _compute_balance_from_transactions(
    db: AsyncSession,
    user_id: str,
    wallet_name: str,
) -> Decimal:
    signed_amount = case(
        (Transaction.type == "income", Transaction.amount),
        else_=-Transaction.amount,
    )
    result = await db.execute(
        select(func.coalesce(func.sum(signed_amount), 0))
        .where(Transaction.user_id == user_id)
        .where(Transaction.wallet_name == wallet_name)
    )
    return Decimal(str(result.scalar())).quantize(Decimal("0.01"))
