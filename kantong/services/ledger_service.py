"""
Ledger service — the core money-moving logic.

THIS IS THE MOST CRITICAL FILE IN THE PROJECT. It handles:
  - Income and expense against a named wallet
  - Atomic transfers between two wallets of the same user
  - Reconciliation adjustments ("my savings are really 1.5jt")
  - The per-user running total in the `balances` table

Atomicity:
  Every operation runs inside `db.begin_nested()` (a SAVEPOINT in the
  request's transaction). The wallet balance change, the transaction rows
  and the running-total update either all land or none do. A failure half
  way through an operation rolls back that operation only, so a chat
  message with several commands keeps the ones that succeeded.

Locking:
  Wallet rows are read with `with_for_update()` and `populate_existing`.
  The lock is a no-op on SQLite (the per-user chat lock serializes instead)
  and a row lock on PostgreSQL. A transfer locks its two wallets in sorted
  name order so opposite transfers between the same pair cannot deadlock.

Sign conventions:
  Transaction amounts are always positive; the type carries the direction.
  Income adds to the wallet, expense subtracts. Expenses may take a wallet
  negative; only a transfer refuses to overdraw its source.

Dates:
  A backdated entry ("kemarin") gets the start of that day in the
  configured local timezone. Without a date the entry is stamped now.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.config import settings
from kantong.exceptions import (
    DestinationWalletNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
    LedgerWalletNotFoundError,
    SameWalletTransferError,
    SourceWalletNotFoundError,
)
from kantong.models.balance import UserBalance
from kantong.models.transaction import ADJUSTMENT_CATEGORY, TRANSFER_CATEGORY, Transaction
from kantong.models.wallet import Wallet
from kantong.services.wallet_service import normalize_wallet_name
from kantong.utils.amounts import CENT
from kantong.utils.periods import as_utc, local_day_start

logger = logging.getLogger(__name__)

DEFAULT_EXPENSE_CATEGORY = "lainnya"
DEFAULT_TRANSFER_DESCRIPTION = "Transfer antar kantong"


def _positive_amount(amount) -> Decimal:
    value = Decimal(str(amount)).quantize(CENT)
    if value <= 0:
        raise InvalidAmountError(value)
    return value


def _entry_timestamp(when: date | datetime | None) -> datetime:
    if when is None:
        return datetime.now(timezone.utc)
    if isinstance(when, datetime):
        return as_utc(when)
    return local_day_start(when)


def _plain(amount: Decimal) -> str:
    """150000.00 -> "150000", 1.50 -> "1.5"."""
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


async def _lock_wallet(db: AsyncSession, user_id: str, name: str) -> Wallet:
    result = await db.execute(
        select(Wallet)
        .where(Wallet.user_id == user_id)
        .where(Wallet.name == name)
        .with_for_update()  # No-op on SQLite, locks row on PostgreSQL
        .execution_options(populate_existing=True)
    )
    wallet = result.scalar_one_or_none()
    if wallet is None:
        raise LedgerWalletNotFoundError(name)
    return wallet


async def _apply_to_running_total(db: AsyncSession, user_id: str, delta: Decimal) -> Decimal:
    """Add `delta` to the user's running total, creating the row on first use."""
    result = await db.execute(
        select(UserBalance)
        .where(UserBalance.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    running = result.scalar_one_or_none()

    if running is None:
        running = UserBalance(user_id=user_id, balance=delta)
        db.add(running)
    else:
        running.balance += delta
        running.updated_at = datetime.now(timezone.utc)

    await db.flush()
    return running.balance


async def _record_entry(
    db: AsyncSession,
    user_id: str,
    txn_type: str,
    amount,
    description: str | None,
    wallet: str,
    category: str | None,
    when: date | datetime | None,
) -> dict:
    amount = _positive_amount(amount)
    name = normalize_wallet_name(wallet)
    delta = amount if txn_type == "income" else -amount

    async with db.begin_nested():
        target = await _lock_wallet(db, user_id, name)

        target.balance += delta
        txn = Transaction(
            user_id=user_id,
            wallet_name=name,
            type=txn_type,
            amount=amount,
            category=category,
            description=description,
            created_at=_entry_timestamp(when),
        )
        db.add(txn)
        running_total = await _apply_to_running_total(db, user_id, delta)

    logger.info("%s %s on %s/%s", txn_type, amount, user_id, name)
    return {
        "transaction_id": txn.id,
        "new_balance": running_total,
        "wallet_balance": target.balance,
        "wallet_name": name,
    }


async def add_income(
    db: AsyncSession,
    user_id: str,
    amount,
    description: str | None,
    wallet: str = settings.DEFAULT_WALLET,
    category: str | None = None,
    when: date | datetime | None = None,
) -> dict:
    """
    Record money coming into a wallet.

    Args:
        db: Database session.
        user_id: Chat handle of the owner.
        amount: Positive amount.
        description: Free-text memo.
        wallet: Wallet name (case-insensitive), default "cash".
        category: Optional category label.
        when: Backdate to this day (local midnight) or exact instant.

    Returns:
        Dict with transaction_id, new_balance (running total),
        wallet_balance and wallet_name.

    Raises:
        InvalidAmountError: If amount <= 0.
        LedgerWalletNotFoundError: If the wallet does not exist.
    """
    return await _record_entry(
        db, user_id, "income", amount, description, wallet, category, when
    )


async def add_expense(
    db: AsyncSession,
    user_id: str,
    amount,
    description: str | None,
    wallet: str = settings.DEFAULT_WALLET,
    category: str | None = DEFAULT_EXPENSE_CATEGORY,
    when: date | datetime | None = None,
) -> dict:
    """
    Record money going out of a wallet.

    There is no sufficient-balance check: a wallet can go negative through
    spending. The category defaults to "lainnya".

    Raises:
        InvalidAmountError: If amount <= 0.
        LedgerWalletNotFoundError: If the wallet does not exist.
    """
    return await _record_entry(
        db,
        user_id,
        "expense",
        amount,
        description,
        wallet,
        category or DEFAULT_EXPENSE_CATEGORY,
        when,
    )


async def transfer_between_wallets(
    db: AsyncSession,
    user_id: str,
    amount,
    from_wallet: str,
    to_wallet: str,
    description: str | None = DEFAULT_TRANSFER_DESCRIPTION,
    when: date | datetime | None = None,
) -> dict:
    """
    Move money between two wallets of the same user.

    Writes TWO transactions linked by a shared transfer_pair_id: an expense
    against the source and an income against the destination, both with
    category "transfer" and the same timestamp. The running total is left
    alone since the net change is zero.

    DEADLOCK PREVENTION: wallets are locked in sorted name order.

    Returns:
        Dict with amount, from_wallet, to_wallet, from_balance, to_balance
        and transfer_pair_id.

    Raises:
        InvalidAmountError: If amount <= 0.
        SameWalletTransferError: If both names normalize to the same wallet.
        SourceWalletNotFoundError / DestinationWalletNotFoundError.
        InsufficientBalanceError: If the source holds less than amount.
            Neither balance changes.
    """
    amount = _positive_amount(amount)
    source_name = normalize_wallet_name(from_wallet)
    dest_name = normalize_wallet_name(to_wallet)
    if source_name == dest_name:
        raise SameWalletTransferError(source_name)

    description = description or DEFAULT_TRANSFER_DESCRIPTION
    created_at = _entry_timestamp(when)
    transfer_pair_id = uuid.uuid4()

    async with db.begin_nested():
        locked: dict[str, Wallet | None] = {}
        for name in sorted([source_name, dest_name]):
            result = await db.execute(
                select(Wallet)
                .where(Wallet.user_id == user_id)
                .where(Wallet.name == name)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            locked[name] = result.scalar_one_or_none()

        source = locked[source_name]
        dest = locked[dest_name]
        if source is None:
            raise SourceWalletNotFoundError(source_name)
        if dest is None:
            raise DestinationWalletNotFoundError(dest_name)

        if source.balance < amount:
            raise InsufficientBalanceError(
                wallet=source_name,
                requested=amount,
                available=source.balance,
            )

        source.balance -= amount
        dest.balance += amount

        # Each leg is scoped to its own wallet; the pair id links them
        db.add_all([
            Transaction(
                user_id=user_id,
                wallet_name=source_name,
                type="expense",
                amount=amount,
                category=TRANSFER_CATEGORY,
                description=f"Transfer ke {dest_name}: {description}",
                transfer_pair_id=transfer_pair_id,
                created_at=created_at,
            ),
            Transaction(
                user_id=user_id,
                wallet_name=dest_name,
                type="income",
                amount=amount,
                category=TRANSFER_CATEGORY,
                description=f"Transfer dari {source_name}: {description}",
                transfer_pair_id=transfer_pair_id,
                created_at=created_at,
            ),
        ])
        await db.flush()

    logger.info("transfer %s %s -> %s for %s", amount, source_name, dest_name, user_id)
    return {
        "amount": amount,
        "from_wallet": source_name,
        "to_wallet": dest_name,
        "from_balance": source.balance,
        "to_balance": dest.balance,
        "transfer_pair_id": transfer_pair_id,
    }


async def adjust_wallet_balance(
    db: AsyncSession,
    user_id: str,
    wallet: str,
    current_balance,
    real_balance,
    description: str | None = None,
) -> dict:
    """
    Reconcile a wallet with the balance the user actually holds.

    difference = real_balance - current_balance. Zero is a no-op (no
    transaction). Otherwise ONE compensating transaction is written, income
    for a positive and expense for a negative difference, with category
    "adjustment"; the wallet and the running total move by the difference.

    Args:
        current_balance: The balance the caller believes is recorded. None
            means "whatever the wallet holds right now".
        real_balance: The balance the user reports.

    Returns:
        Dict with wallet_name, difference, type, amount, transaction_id and
        new_balance. type/amount/transaction_id are None for a no-op.

    Raises:
        LedgerWalletNotFoundError: If the wallet does not exist.
    """
    name = normalize_wallet_name(wallet)
    real = Decimal(str(real_balance)).quantize(CENT)

    async with db.begin_nested():
        target = await _lock_wallet(db, user_id, name)

        current = target.balance if current_balance is None else Decimal(str(current_balance)).quantize(CENT)
        difference = real - current

        if difference == 0:
            return {
                "wallet_name": name,
                "difference": Decimal("0"),
                "type": None,
                "amount": None,
                "transaction_id": None,
                "new_balance": target.balance,
            }

        txn_type = "income" if difference > 0 else "expense"
        txn = Transaction(
            user_id=user_id,
            wallet_name=name,
            type=txn_type,
            amount=abs(difference),
            category=ADJUSTMENT_CATEGORY,
            description=description or f"Penyesuaian saldo: {_plain(current)} → {_plain(real)}",
            created_at=datetime.now(timezone.utc),
        )
        target.balance += difference
        db.add(txn)
        await _apply_to_running_total(db, user_id, difference)

    logger.info("adjustment %s on %s/%s", difference, user_id, name)
    return {
        "wallet_name": name,
        "difference": difference,
        "type": txn_type,
        "amount": abs(difference),
        "transaction_id": txn.id,
        "new_balance": target.balance,
    }
