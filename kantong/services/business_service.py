"""
Business service — the small-business book kept alongside personal wallets.

This module handles:
  - Businesses and login sessions (one active business per chat user)
  - Raw materials with unit or pack pricing
  - Price tiers and selling-price suggestions from production cost
  - Catalog items with their bill of materials
  - Business expenses/incomes and the summary statistics
  - The empty-bouquet price sheet

Scoping:
  Businesses belong to the chat user who created them, but logging in is a
  global lookup by (name, username, password): anyone holding the
  credentials can work on that business. Everything below the business
  level is keyed by business_id.

Names (businesses, materials, catalog items, bouquet sizes) are compared
case-insensitively and stored as typed.
"""

import logging
import math
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from sqlalchemy import delete, event, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from kantong.exceptions import (
    BusinessAlreadyExistsError,
    CatalogNotFoundError,
    EmptyBouquetAlreadyExistsError,
    EmptyBouquetNotFoundError,
    InvalidAmountError,
    InvalidCredentialsError,
    MaterialAlreadyExistsError,
    MaterialNotFoundError,
    NoActiveBusinessError,
    NoUpdatesError,
    PriceAlreadyExistsError,
)
from kantong.models.business import (
    Business,
    BusinessExpense,
    BusinessIncome,
    BusinessSession,
    Catalog,
    EmptyBouquet,
    Material,
    PriceTier,
)
from kantong.security import hash_password, verify_password
from kantong.utils.matching import best_match

logger = logging.getLogger(__name__)

# Selling price must cover production cost plus at least 30%
MIN_MARGIN = Decimal("1.3")
DEFAULT_PRICE_TIERS = [1000, 5000, 6000, 8000, 10000, 12000, 15000, 20000]

# Session.info key for catalog images to delete after commit
PENDING_IMAGE_REMOVALS = "pending_image_removals"


def _price(value, *, allow_zero: bool = True) -> Decimal:
    price = Decimal(str(value))
    if price < 0 or (price == 0 and not allow_zero):
        raise InvalidAmountError(price)
    return price


# ---------------------------------------------------------------------------
# Businesses and sessions
# ---------------------------------------------------------------------------

async def create_business(
    db: AsyncSession,
    user_id: str,
    name: str,
    username: str,
    password: str,
    description: str = "",
) -> Business:
    """
    Create a business owned by `user_id`.

    Raises:
        BusinessAlreadyExistsError: If the user already has a business with
            that name (case-insensitive).
    """
    if await get_business_by_name(db, user_id, name) is not None:
        raise BusinessAlreadyExistsError(name)

    business = Business(
        user_id=user_id,
        name=name.strip(),
        username=username,
        password_hash=hash_password(password),
        description=description or "",
    )
    db.add(business)
    await db.flush()
    logger.info("business %r created by %s", business.name, user_id)
    return business


async def list_businesses(db: AsyncSession, user_id: str) -> list[Business]:
    result = await db.execute(
        select(Business)
        .where(Business.user_id == user_id)
        .order_by(Business.created_at.desc())
    )
    return list(result.scalars().all())


async def get_business_by_name(db: AsyncSession, user_id: str, name: str) -> Business | None:
    result = await db.execute(
        select(Business)
        .where(Business.user_id == user_id)
        .where(func.lower(Business.name) == name.strip().lower())
    )
    return result.scalar_one_or_none()


async def verify_business_credentials(
    db: AsyncSession,
    name: str,
    username: str,
    password: str,
) -> Business | None:
    """Find the business matching all three credentials, across every owner."""
    result = await db.execute(
        select(Business)
        .where(func.lower(Business.name) == name.strip().lower())
        .where(Business.username == username)
        .order_by(Business.created_at)
    )
    for business in result.scalars().all():
        if verify_password(password, business.password_hash):
            return business
    return None


async def start_business_session(db: AsyncSession, user_id: str, business_id: uuid.UUID) -> BusinessSession:
    """Make `business_id` the user's active business, replacing any previous one."""
    session = await db.get(BusinessSession, user_id)
    if session is None:
        session = BusinessSession(user_id=user_id, business_id=business_id)
        db.add(session)
    else:
        session.business_id = business_id
        session.started_at = datetime.now(timezone.utc)
    await db.flush()
    return session


async def end_business_session(db: AsyncSession, user_id: str) -> bool:
    """Log the user out of their business. Returns False if none was active."""
    result = await db.execute(
        delete(BusinessSession).where(BusinessSession.user_id == user_id)
    )
    return result.rowcount > 0


async def get_active_session(db: AsyncSession, user_id: str) -> Business | None:
    """The business the user is currently logged in to, if any."""
    result = await db.execute(
        select(Business)
        .join(BusinessSession, BusinessSession.business_id == Business.id)
        .where(BusinessSession.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def login_business(
    db: AsyncSession,
    user_id: str,
    name: str,
    username: str,
    password: str,
) -> Business:
    """
    Verify credentials and start a business session.

    Raises:
        InvalidCredentialsError: If no business matches.
    """
    business = await verify_business_credentials(db, name, username, password)
    if business is None:
        raise InvalidCredentialsError()
    await start_business_session(db, user_id, business.id)
    logger.info("%s logged in to business %r", user_id, business.name)
    return business


async def require_active_business(db: AsyncSession, user_id: str) -> Business:
    business = await get_active_session(db, user_id)
    if business is None:
        raise NoActiveBusinessError()
    return business


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------

async def add_material(
    db: AsyncSession,
    business_id: uuid.UUID,
    name: str,
    unit_price=None,
    pack_price=None,
    per_pack: int | None = None,
) -> Material:
    """
    Add a raw material.

    When unit_price is omitted it is derived as pack_price / per_pack.

    Raises:
        MaterialAlreadyExistsError: Same name (case-insensitive) already exists.
        InvalidAmountError: Negative prices, or neither a unit price nor a
            complete pack price was given.
    """
    if await get_material_by_name(db, business_id, name) is not None:
        raise MaterialAlreadyExistsError(name)

    if pack_price is not None:
        pack_price = _price(pack_price)
    if unit_price is None:
        if pack_price is None or not per_pack:
            raise InvalidAmountError(Decimal("0"))
        unit_price = (pack_price / Decimal(per_pack)).quantize(Decimal("0.01"))

    material = Material(
        business_id=business_id,
        name=name.strip(),
        unit_price=_price(unit_price),
        pack_price=pack_price,
        per_pack=per_pack,
    )
    db.add(material)
    await db.flush()
    return material


async def list_materials(db: AsyncSession, business_id: uuid.UUID) -> list[Material]:
    result = await db.execute(
        select(Material).where(Material.business_id == business_id).order_by(Material.name)
    )
    return list(result.scalars().all())


async def get_material_by_name(db: AsyncSession, business_id: uuid.UUID, name: str) -> Material | None:
    result = await db.execute(
        select(Material)
        .where(Material.business_id == business_id)
        .where(func.lower(Material.name) == name.strip().lower())
    )
    return result.scalar_one_or_none()


async def update_material(
    db: AsyncSession,
    business_id: uuid.UUID,
    name: str,
    unit_price=None,
    pack_price=None,
    per_pack: int | None = None,
) -> Material:
    """
    Raises:
        NoUpdatesError: If no field is given.
        MaterialNotFoundError: If the material does not exist.
    """
    if unit_price is None and pack_price is None and per_pack is None:
        raise NoUpdatesError()

    material = await get_material_by_name(db, business_id, name)
    if material is None:
        raise MaterialNotFoundError(name)

    if unit_price is not None:
        material.unit_price = _price(unit_price)
    if pack_price is not None:
        material.pack_price = _price(pack_price)
    if per_pack is not None:
        material.per_pack = per_pack

    await db.flush()
    return material


async def delete_material(db: AsyncSession, business_id: uuid.UUID, name: str) -> None:
    material = await get_material_by_name(db, business_id, name)
    if material is None:
        raise MaterialNotFoundError(name)
    await db.delete(material)
    await db.flush()


async def delete_all_materials(db: AsyncSession, business_id: uuid.UUID) -> int:
    result = await db.execute(delete(Material).where(Material.business_id == business_id))
    return result.rowcount


def match_material(query: str, materials: Iterable[Material]) -> Material | None:
    """Resolve a loosely typed material name ("mawar") to a stored material."""
    return best_match(query, materials, key=lambda material: material.name)


async def resolve_material_lines(db: AsyncSession, business_id: uuid.UUID, lines: Iterable) -> list[dict]:
    """
    Price a bill of materials against the business's stored materials.

    Each line is a dict or object with name, quantity and an optional
    unit_price. Lines without a unit price take it from the best-matching
    stored material (and its stored name); unmatched lines keep a price of
    0 and their typed name.
    """
    # Ties in best_match go to the first candidate, so keep insertion order
    result = await db.execute(
        select(Material)
        .where(Material.business_id == business_id)
        .order_by(Material.created_at, Material.id)
    )
    materials = list(result.scalars().all())
    resolved = []
    for line in lines:
        name = _line_value(line, "name") or ""
        unit_price = _line_value(line, "unit_price")
        quantity = _line_value(line, "quantity")

        if unit_price is None:
            material = match_material(name, materials)
            if material is not None:
                name, unit_price = material.name, material.unit_price

        resolved.append({
            "name": name,
            "quantity": Decimal(str(quantity if quantity is not None else 1)),
            "unit_price": Decimal(str(unit_price or 0)),
        })
    return resolved


# ---------------------------------------------------------------------------
# Price tiers and pricing
# ---------------------------------------------------------------------------

async def add_price_tier(db: AsyncSession, business_id: uuid.UUID, price) -> PriceTier:
    """
    Raises:
        PriceAlreadyExistsError: If the tier is already configured.
    """
    price = _price(price)
    existing = await db.execute(
        select(PriceTier)
        .where(PriceTier.business_id == business_id)
        .where(PriceTier.price == price)
    )
    if existing.scalar_one_or_none() is not None:
        raise PriceAlreadyExistsError(price)

    tier = PriceTier(business_id=business_id, price=price)
    db.add(tier)
    await db.flush()
    return tier


async def list_price_tiers(db: AsyncSession, business_id: uuid.UUID) -> list[PriceTier]:
    result = await db.execute(
        select(PriceTier).where(PriceTier.business_id == business_id).order_by(PriceTier.price)
    )
    return list(result.scalars().all())


async def delete_price_tier(db: AsyncSession, business_id: uuid.UUID, price) -> bool:
    result = await db.execute(
        delete(PriceTier)
        .where(PriceTier.business_id == business_id)
        .where(PriceTier.price == Decimal(str(price)))
    )
    return result.rowcount > 0


async def delete_all_price_tiers(db: AsyncSession, business_id: uuid.UUID) -> int:
    result = await db.execute(delete(PriceTier).where(PriceTier.business_id == business_id))
    return result.rowcount


def _line_value(line, field: str):
    if isinstance(line, dict):
        return line.get(field)
    return getattr(line, field, None)


def calculate_cost(lines: Iterable) -> Decimal:
    """Sum of unit_price x quantity over the lines. Missing values count as 0."""
    total = Decimal("0")
    for line in lines:
        unit_price = _line_value(line, "unit_price")
        quantity = _line_value(line, "quantity")
        total += Decimal(str(unit_price or 0)) * Decimal(str(quantity or 0))
    return total


async def suggest_selling_price(db: AsyncSession, business_id: uuid.UUID, cost) -> Decimal:
    """
    Pick a selling price for a product costing `cost` to make.

    The minimum acceptable price is cost x 1.3. The first configured price
    tier at or above it wins; with no tiers configured the default ladder
    is used the same way. If nothing qualifies, the minimum is rounded up to
    the next thousand.
    """
    minimum = Decimal(str(cost)) * MIN_MARGIN

    tiers = [tier.price for tier in await list_price_tiers(db, business_id)]
    if not tiers:
        tiers = [Decimal(price) for price in DEFAULT_PRICE_TIERS]

    for price in tiers:
        if price >= minimum:
            return Decimal(price)

    return Decimal(math.ceil(minimum / 1000) * 1000)


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------

def _jsonable_lines(lines) -> list[dict] | None:
    if lines is None:
        return None
    return [
        {
            "name": _line_value(line, "name"),
            "quantity": str(_line_value(line, "quantity") or 0),
            "unit_price": str(_line_value(line, "unit_price") or 0),
        }
        for line in lines
    ]


def _remove_image(path: str | None) -> None:
    if not path:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not delete catalog image %s", path, exc_info=True)


def _remove_image_on_commit(db: AsyncSession, path: str | None) -> None:
    """Queue an image file for deletion once the current transaction commits."""
    if path:
        db.sync_session.info.setdefault(PENDING_IMAGE_REMOVALS, []).append(path)


@event.listens_for(Session, "after_commit")
def _remove_committed_images(session):
    # Also fires when a SAVEPOINT is released; wait for the outer commit
    if session.in_nested_transaction():
        return
    for path in session.info.pop(PENDING_IMAGE_REMOVALS, []):
        _remove_image(path)


@event.listens_for(Session, "after_rollback")
def _keep_images_on_rollback(session):
    # The rows still point at their files
    session.info.pop(PENDING_IMAGE_REMOVALS, None)


async def add_catalog(
    db: AsyncSession,
    business_id: uuid.UUID,
    name: str,
    price,
    image_path: str | None = None,
    production_cost=None,
    production_materials=None,
) -> Catalog:
    catalog = Catalog(
        business_id=business_id,
        name=name.strip(),
        price=_price(price),
        image_path=image_path,
        production_cost=None if production_cost is None else _price(production_cost),
        production_materials=_jsonable_lines(production_materials),
    )
    db.add(catalog)
    await db.flush()
    return catalog


async def list_catalogs(db: AsyncSession, business_id: uuid.UUID) -> list[Catalog]:
    """Catalog items, newest first."""
    result = await db.execute(
        select(Catalog)
        .where(Catalog.business_id == business_id)
        .order_by(Catalog.created_at.desc())
    )
    return list(result.scalars().all())


async def get_catalog_by_name(db: AsyncSession, business_id: uuid.UUID, name: str) -> Catalog | None:
    result = await db.execute(
        select(Catalog)
        .where(Catalog.business_id == business_id)
        .where(func.lower(Catalog.name) == name.strip().lower())
        .order_by(Catalog.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_catalogs_by_price(db: AsyncSession, business_id: uuid.UUID, price) -> list[Catalog]:
    result = await db.execute(
        select(Catalog)
        .where(Catalog.business_id == business_id)
        .where(Catalog.price == Decimal(str(price)))
        .order_by(Catalog.created_at.desc())
    )
    return list(result.scalars().all())


async def update_catalog(
    db: AsyncSession,
    business_id: uuid.UUID,
    name: str,
    new_name: str | None = None,
    price=None,
    image_path: str | None = None,
    production_cost=None,
    production_materials=None,
) -> Catalog:
    """
    Raises:
        NoUpdatesError: If no field is given.
        CatalogNotFoundError: If no item has that name.
    """
    if all(
        value is None
        for value in (new_name, price, image_path, production_cost, production_materials)
    ):
        raise NoUpdatesError()

    catalog = await get_catalog_by_name(db, business_id, name)
    if catalog is None:
        raise CatalogNotFoundError(name)

    if new_name is not None:
        catalog.name = new_name.strip()
    if price is not None:
        catalog.price = _price(price)
    if image_path is not None:
        if catalog.image_path and catalog.image_path != image_path:
            _remove_image_on_commit(db, catalog.image_path)
        catalog.image_path = image_path
    if production_cost is not None:
        catalog.production_cost = _price(production_cost)
    if production_materials is not None:
        catalog.production_materials = _jsonable_lines(production_materials)

    await db.flush()
    return catalog


async def delete_catalog(db: AsyncSession, business_id: uuid.UUID, name: str) -> None:
    """Delete a catalog item; its image file goes once the deletion commits."""
    catalog = await get_catalog_by_name(db, business_id, name)
    if catalog is None:
        raise CatalogNotFoundError(name)
    _remove_image_on_commit(db, catalog.image_path)
    await db.delete(catalog)
    await db.flush()


async def delete_all_catalogs(db: AsyncSession, business_id: uuid.UUID) -> int:
    catalogs = await list_catalogs(db, business_id)
    for catalog in catalogs:
        _remove_image_on_commit(db, catalog.image_path)
        await db.delete(catalog)
    await db.flush()
    return len(catalogs)


# ---------------------------------------------------------------------------
# Expenses and incomes
# ---------------------------------------------------------------------------

async def add_business_expense(
    db: AsyncSession,
    business_id: uuid.UUID,
    description: str,
    amount,
) -> BusinessExpense:
    expense = BusinessExpense(
        business_id=business_id,
        description=description,
        amount=_price(amount, allow_zero=False),
        is_recorded=False,
    )
    db.add(expense)
    await db.flush()
    return expense


async def list_business_expenses(
    db: AsyncSession,
    business_id: uuid.UUID,
    include_recorded: bool = True,
) -> list[BusinessExpense]:
    query = (
        select(BusinessExpense)
        .where(BusinessExpense.business_id == business_id)
        .order_by(BusinessExpense.created_at.desc())
    )
    if not include_recorded:
        query = query.where(BusinessExpense.is_recorded.is_(False))
    result = await db.execute(query)
    return list(result.scalars().all())


async def mark_expense_recorded(
    db: AsyncSession,
    business_id: uuid.UUID,
    expense_id: uuid.UUID,
) -> bool:
    expense = await db.get(BusinessExpense, expense_id)
    if expense is None or expense.business_id != business_id:
        return False
    expense.is_recorded = True
    await db.flush()
    return True


async def add_business_income(
    db: AsyncSession,
    business_id: uuid.UUID,
    description: str,
    amount,
) -> BusinessIncome:
    income = BusinessIncome(
        business_id=business_id,
        description=description,
        amount=_price(amount, allow_zero=False),
    )
    db.add(income)
    await db.flush()
    return income


async def list_business_incomes(db: AsyncSession, business_id: uuid.UUID) -> list[BusinessIncome]:
    result = await db.execute(
        select(BusinessIncome)
        .where(BusinessIncome.business_id == business_id)
        .order_by(BusinessIncome.created_at.desc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Empty bouquets
# ---------------------------------------------------------------------------

async def add_empty_bouquet(db: AsyncSession, business_id: uuid.UUID, size: str, price) -> EmptyBouquet:
    """
    Raises:
        EmptyBouquetAlreadyExistsError: If the size is already priced.
    """
    if await get_empty_bouquet_by_size(db, business_id, size) is not None:
        raise EmptyBouquetAlreadyExistsError(size)

    bouquet = EmptyBouquet(business_id=business_id, size=size.strip(), price=_price(price))
    db.add(bouquet)
    await db.flush()
    return bouquet


async def list_empty_bouquets(db: AsyncSession, business_id: uuid.UUID) -> list[EmptyBouquet]:
    result = await db.execute(
        select(EmptyBouquet)
        .where(EmptyBouquet.business_id == business_id)
        .order_by(EmptyBouquet.price)
    )
    return list(result.scalars().all())


async def get_empty_bouquet_by_size(
    db: AsyncSession,
    business_id: uuid.UUID,
    size: str,
) -> EmptyBouquet | None:
    result = await db.execute(
        select(EmptyBouquet)
        .where(EmptyBouquet.business_id == business_id)
        .where(func.lower(EmptyBouquet.size) == size.strip().lower())
    )
    return result.scalar_one_or_none()


async def update_empty_bouquet(
    db: AsyncSession,
    business_id: uuid.UUID,
    size: str,
    price=None,
    new_size: str | None = None,
) -> EmptyBouquet:
    if price is None and new_size is None:
        raise NoUpdatesError()

    bouquet = await get_empty_bouquet_by_size(db, business_id, size)
    if bouquet is None:
        raise EmptyBouquetNotFoundError(size)

    if price is not None:
        bouquet.price = _price(price)
    if new_size is not None:
        bouquet.size = new_size.strip()

    await db.flush()
    return bouquet


async def delete_empty_bouquet(db: AsyncSession, business_id: uuid.UUID, size: str) -> None:
    bouquet = await get_empty_bouquet_by_size(db, business_id, size)
    if bouquet is None:
        raise EmptyBouquetNotFoundError(size)
    await db.delete(bouquet)
    await db.flush()


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

async def get_business_stats(db: AsyncSession, business_id: uuid.UUID) -> dict:
    """
    Summary of a business book.

    Returns:
        Dict with total_income, total_expense, profit, materials_count,
        catalogs_count and unrecorded_expenses_count.
    """
    incomes = await list_business_incomes(db, business_id)
    expenses = await list_business_expenses(db, business_id)
    materials = await list_materials(db, business_id)
    catalogs = await list_catalogs(db, business_id)

    total_income = sum((income.amount for income in incomes), Decimal("0"))
    total_expense = sum((expense.amount for expense in expenses), Decimal("0"))

    return {
        "total_income": total_income,
        "total_expense": total_expense,
        "profit": total_income - total_expense,
        "materials_count": len(materials),
        "catalogs_count": len(catalogs),
        "unrecorded_expenses_count": sum(1 for expense in expenses if not expense.is_recorded),
    }
