"""
Business book models — everything scoped by business_id instead of user_id.

A chat user may own several businesses and may log in to a business owned by
someone else when they know its credentials. While logged in, business
commands (materials, catalogs, expenses, ...) act on that business.

Tables:
  - businesses         name + login credentials (password stored hashed)
  - business_sessions  which business a chat user is currently logged in to
  - materials          raw materials with unit/pack prices
  - price_tiers        the selling price points the business uses
  - catalogs           products, with production cost and bill of materials
  - business_expenses  spending, with an is_recorded flag for bookkeeping
  - business_incomes   sales and other income
  - empty_bouquets     price sheet of empty bouquets per size

All prices are non-negative, enforced by CHECK constraints.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from kantong.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Business(Base):
    __tablename__ = "businesses"

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_businesses_user_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)

    # Owner's chat handle
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class BusinessSession(Base):
    __tablename__ = "business_sessions"

    # One active business per chat user
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    business_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class Material(Base):
    __tablename__ = "materials"

    __table_args__ = (
        UniqueConstraint("business_id", "name", name="uq_materials_business_name"),
        CheckConstraint("unit_price >= 0", name="ck_materials_unit_price"),
        CheckConstraint("pack_price IS NULL OR pack_price >= 0", name="ck_materials_pack_price"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    # Optional pack pricing: pack_price buys per_pack units
    pack_price: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    per_pack: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class PriceTier(Base):
    __tablename__ = "price_tiers"

    __table_args__ = (
        UniqueConstraint("business_id", "price", name="uq_price_tiers_business_price"),
        CheckConstraint("price >= 0", name="ck_price_tiers_price"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    price: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class Catalog(Base):
    __tablename__ = "catalogs"

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_catalogs_price"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    image_path: Mapped[str | None] = mapped_column(String(255), nullable=True)

    production_cost: Mapped[Decimal | None] = mapped_column(Numeric(16, 2), nullable=True)
    # [{"name": ..., "quantity": ..., "unit_price": ...}, ...]
    production_materials: Mapped[list | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class BusinessExpense(Base):
    __tablename__ = "business_expenses"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_business_expenses_amount"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)
    is_recorded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class BusinessIncome(Base):
    __tablename__ = "business_incomes"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_business_incomes_amount"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )


class EmptyBouquet(Base):
    __tablename__ = "empty_bouquets"

    __table_args__ = (
        UniqueConstraint("business_id", "size", name="uq_empty_bouquets_business_size"),
        CheckConstraint("price >= 0", name="ck_empty_bouquets_price"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    business_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    size: Mapped[str] = mapped_column(String(50), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
