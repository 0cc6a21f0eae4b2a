"""
Businesses router — the small-business book.

Endpoints:
  POST   /businesses          — Create a business
  GET    /businesses          — List your businesses
  POST   /businesses/login    — Log in to a business (starts a business session)
  POST   /businesses/logout   — End the business session

  Under the active business (409 NO_ACTIVE_BUSINESS without a session):
  GET    /businesses/current
  POST   /businesses/current/materials           GET .../materials
  PATCH  /businesses/current/materials/{name}    DELETE .../materials/{name}
  POST   /businesses/current/price-tiers         GET .../price-tiers
  DELETE /businesses/current/price-tiers/{price}
  POST   /businesses/current/catalogs            GET .../catalogs[?price=]
  DELETE /businesses/current/catalogs/{name}
  POST   /businesses/current/expenses            GET .../expenses
  POST   /businesses/current/expenses/{id}/recorded
  POST   /businesses/current/incomes             GET .../incomes
  POST   /businesses/current/empty-bouquets      GET .../empty-bouquets
  DELETE /businesses/current/empty-bouquets/{size}
  GET    /businesses/current/stats
  POST   /businesses/current/suggest-price
"""

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.database import get_db
from kantong.dependencies import get_active_business, get_user_id
from kantong.models.business import Business
from kantong.schemas.business import (
    BusinessCreateRequest,
    BusinessEntryRequest,
    BusinessExpenseResponse,
    BusinessIncomeResponse,
    BusinessLoginRequest,
    BusinessResponse,
    BusinessStatsResponse,
    CatalogCreateRequest,
    CatalogResponse,
    EmptyBouquetRequest,
    EmptyBouquetResponse,
    MaterialCreateRequest,
    MaterialResponse,
    MaterialUpdateRequest,
    PriceTierRequest,
    PriceTierResponse,
    SuggestPriceRequest,
    SuggestPriceResponse,
)
from kantong.services import business_service

router = APIRouter()


# ---------------------------------------------------------------------------
# Businesses and sessions
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=BusinessResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a business",
)
async def create_business(
    request: BusinessCreateRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """The password is stored as an argon2 hash and never returned."""
    return await business_service.create_business(
        db=db,
        user_id=user_id,
        name=request.name,
        username=request.username,
        password=request.password,
        description=request.description,
    )


@router.get("", response_model=list[BusinessResponse], summary="List your businesses")
async def list_businesses(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.list_businesses(db, user_id)


@router.post("/login", response_model=BusinessResponse, summary="Log in to a business")
async def login(
    request: BusinessLoginRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Returns 401 INVALID_CREDENTIALS when name, username and password do not match."""
    return await business_service.login_business(
        db, user_id, request.name, request.username, request.password
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Log out of the business")
async def logout(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    await business_service.end_business_session(db, user_id)


@router.get("/current", response_model=BusinessResponse, summary="The active business")
async def current_business(business: Business = Depends(get_active_business)):
    return business


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------

@router.post(
    "/current/materials",
    response_model=MaterialResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a material",
)
async def add_material(
    request: MaterialCreateRequest,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    """unit_price is derived from pack_price / per_pack when omitted."""
    return await business_service.add_material(
        db, business.id, request.name, request.unit_price, request.pack_price, request.per_pack
    )


@router.get("/current/materials", response_model=list[MaterialResponse], summary="List materials")
async def list_materials(
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.list_materials(db, business.id)


@router.patch("/current/materials/{name}", response_model=MaterialResponse, summary="Update a material")
async def update_material(
    name: str,
    request: MaterialUpdateRequest,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.update_material(
        db, business.id, name, request.unit_price, request.pack_price, request.per_pack
    )


@router.delete(
    "/current/materials/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a material",
)
async def delete_material(
    name: str,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    await business_service.delete_material(db, business.id, name)


# ---------------------------------------------------------------------------
# Price tiers and pricing
# ---------------------------------------------------------------------------

@router.post(
    "/current/price-tiers",
    response_model=PriceTierResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a price tier",
)
async def add_price_tier(
    request: PriceTierRequest,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.add_price_tier(db, business.id, request.price)


@router.get("/current/price-tiers", response_model=list[PriceTierResponse], summary="List price tiers")
async def list_price_tiers(
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.list_price_tiers(db, business.id)


@router.delete(
    "/current/price-tiers/{price}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a price tier",
)
async def delete_price_tier(
    price: Decimal,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    if not await business_service.delete_price_tier(db, business.id, price):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Price tier not found")


@router.post("/current/suggest-price", response_model=SuggestPriceResponse, summary="Suggest a selling price")
async def suggest_price(
    request: SuggestPriceRequest,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    """
    Cost is taken from **cost**, or computed from **materials** (unit prices
    default to the stored materials). The suggestion is the first price tier
    covering cost x 1.3.
    """
    if request.cost is not None:
        cost = request.cost
    else:
        lines = await business_service.resolve_material_lines(db, business.id, request.materials)
        cost = business_service.calculate_cost(lines)
    suggested = await business_service.suggest_selling_price(db, business.id, cost)
    return SuggestPriceResponse(cost=cost, suggested_price=suggested)


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------

@router.post(
    "/current/catalogs",
    response_model=CatalogResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a catalog item",
)
async def add_catalog(
    request: CatalogCreateRequest,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    """
    Production cost comes from **materials** when given. Without a **price**
    the suggested selling price is used (400 INVALID_AMOUNT when there is
    neither a price nor materials).
    """
    lines = await business_service.resolve_material_lines(db, business.id, request.materials)
    cost = business_service.calculate_cost(lines) if lines else None

    price = request.price
    if price is None:
        if cost is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Either price or materials is required",
            )
        price = await business_service.suggest_selling_price(db, business.id, cost)

    return await business_service.add_catalog(
        db, business.id, request.name, price, request.image_path,
        production_cost=cost, production_materials=lines or None,
    )


@router.get("/current/catalogs", response_model=list[CatalogResponse], summary="List catalog items")
async def list_catalogs(
    price: Decimal | None = Query(None, description="Only items sold at this price"),
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    if price is not None:
        return await business_service.list_catalogs_by_price(db, business.id, price)
    return await business_service.list_catalogs(db, business.id)


@router.delete(
    "/current/catalogs/{name}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a catalog item",
)
async def delete_catalog(
    name: str,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    await business_service.delete_catalog(db, business.id, name)


# ---------------------------------------------------------------------------
# Expenses and incomes
# ---------------------------------------------------------------------------

@router.post(
    "/current/expenses",
    response_model=BusinessExpenseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a business expense",
)
async def add_expense(
    request: BusinessEntryRequest,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.add_business_expense(db, business.id, request.description, request.amount)


@router.get("/current/expenses", response_model=list[BusinessExpenseResponse], summary="List business expenses")
async def list_expenses(
    include_recorded: bool = True,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.list_business_expenses(db, business.id, include_recorded)


@router.post(
    "/current/expenses/{expense_id}/recorded",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Mark an expense as recorded",
)
async def mark_recorded(
    expense_id: uuid.UUID,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    if not await business_service.mark_expense_recorded(db, business.id, expense_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense not found")


@router.post(
    "/current/incomes",
    response_model=BusinessIncomeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a business income",
)
async def add_income(
    request: BusinessEntryRequest,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.add_business_income(db, business.id, request.description, request.amount)


@router.get("/current/incomes", response_model=list[BusinessIncomeResponse], summary="List business incomes")
async def list_incomes(
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.list_business_incomes(db, business.id)


# ---------------------------------------------------------------------------
# Empty bouquets and stats
# ---------------------------------------------------------------------------

@router.post(
    "/current/empty-bouquets",
    response_model=EmptyBouquetResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Price an empty bouquet size",
)
async def add_empty_bouquet(
    request: EmptyBouquetRequest,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.add_empty_bouquet(db, business.id, request.size, request.price)


@router.get(
    "/current/empty-bouquets",
    response_model=list[EmptyBouquetResponse],
    summary="List empty bouquet prices",
)
async def list_empty_bouquets(
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.list_empty_bouquets(db, business.id)


@router.delete(
    "/current/empty-bouquets/{size}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an empty bouquet size",
)
async def delete_empty_bouquet(
    size: str,
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    await business_service.delete_empty_bouquet(db, business.id, size)


@router.get("/current/stats", response_model=BusinessStatsResponse, summary="Business statistics")
async def business_stats(
    business: Business = Depends(get_active_business),
    db: AsyncSession = Depends(get_db),
):
    return await business_service.get_business_stats(db, business.id)
