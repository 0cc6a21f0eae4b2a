"""
Transaction model — the append-only log of every money movement.

The table is type-homogeneous: every row is either "income" (money into a
wallet) or "expense" (money out of a wallet). Compound operations are
expressed as several rows:

  - A transfer writes TWO rows: an expense against the source wallet and an
    income against the destination, both with category "transfer", the same
    amount and timestamp, linked by a shared `transfer_pair_id`
  - An adjustment writes ONE row (income or expense) with category
    "adjustment" for the difference between tracked and real balance

Key fields:
  - wallet_name: the normalized wallet name at the time of writing. It is not
    a foreign key: deleting a wallet leaves its history in place
  - amount: always positive, the direction is implied by the type
  - created_at: defaults to now, may be backdated from chat ("kemarin")

Rows are never updated or deleted in normal flow. Corrections are new
compensating rows.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Numeric, DateTime, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from kantong.database import Base


TRANSACTION_TYPES = ("income", "expense")

TRANSFER_CATEGORY = "transfer"
ADJUSTMENT_CATEGORY = "adjustment"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        # Amount must always be positive; the type carries the direction
        CheckConstraint("amount > 0", name="ck_transactions_positive_amount"),
        CheckConstraint("type IN ('income', 'expense')", name="ck_transactions_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    wallet_name: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="cash",
    )

    # "income" or "expense"
    type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(16, 2),
        nullable=False,
    )

    category: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        index=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    # Links the two legs of a transfer
    transfer_pair_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
        index=True,
    )

    # Indexed for period queries (history, statistics)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
