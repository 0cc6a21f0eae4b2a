"""
Wallet model — a named running balance ("kantong") owned by a chat user.

Each wallet has:
  - An owner handle (the chat user id, e.g. "62812xxxx@c.us")
  - A name, stored lowercased and trimmed; unique per owner
  - A type: "regular" or "savings"
  - An include_in_total flag: excluded wallets keep their own balance and
    history but do not count toward the headline total
  - A balance, updated in the same unit of work as every transaction that
    touches the wallet

Balance management:
  `balance` is a cache of the signed sum of the wallet's transactions
  (income adds, expense subtracts). Unlike a bank account it may go negative:
  ordinary expenses are recorded even when the wallet runs dry, only
  transfers refuse to overdraw their source.

Why Numeric and Decimal?
  Amounts are Rupiah values parsed from chat ("1.5jt"); storing them as
  NUMERIC and handling them as Decimal keeps the arithmetic exact.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Boolean, Numeric, DateTime, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from kantong.database import Base


WALLET_TYPES = ("regular", "savings")


class Wallet(Base):
    __tablename__ = "wallets"

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_wallets_user_name"),
        CheckConstraint(
            "type IN ('regular', 'savings')",
            name="ck_wallets_type",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Chat handle of the owner
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    # Normalized (lowercase, trimmed) wallet name
    name: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # "regular" or "savings"
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="regular",
    )

    include_in_total: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    balance: Mapped[Decimal] = mapped_column(
        Numeric(16, 2),
        nullable=False,
        default=Decimal("0"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
