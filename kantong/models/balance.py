"""
Running total per user.

A cached net figure (income minus expense across all wallets) kept next to
the wallet balances. It is updated inside the same unit of work as each
income, expense and adjustment; transfers move money between wallets and
leave it untouched.

The headline total shown to users is NOT this value: it is the sum of the
wallets flagged include_in_total (see report_service.get_balance).
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Numeric, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from kantong.database import Base


class UserBalance(Base):
    __tablename__ = "balances"

    user_id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    balance: Mapped[Decimal] = mapped_column(
        Numeric(16, 2),
        nullable=False,
        default=Decimal("0"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
