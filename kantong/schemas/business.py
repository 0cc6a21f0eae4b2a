"""
Pydantic schemas for the business book endpoints.

Business passwords go in on create/login and never come back out:
BusinessResponse has no password field.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from kantong.schemas.types import Amount


class BusinessCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)
    description: str = ""


class BusinessLoginRequest(BaseModel):
    name: str
    username: str
    password: str


class BusinessResponse(BaseModel):
    id: uuid.UUID
    name: str
    username: str
    description: str
    created_at: datetime

    model_config = {"from_attributes": True}


class MaterialCreateRequest(BaseModel):
    """unit_price may be omitted when pack_price and per_pack are given."""
    name: str = Field(min_length=1, max_length=100)
    unit_price: Amount | None = None
    pack_price: Amount | None = None
    per_pack: int | None = Field(None, gt=0)


class MaterialUpdateRequest(BaseModel):
    unit_price: Amount | None = None
    pack_price: Amount | None = None
    per_pack: int | None = Field(None, gt=0)


class MaterialResponse(BaseModel):
    id: uuid.UUID
    name: str
    unit_price: Decimal
    pack_price: Decimal | None
    per_pack: int | None

    model_config = {"from_attributes": True}


class PriceTierRequest(BaseModel):
    price: Amount


class PriceTierResponse(BaseModel):
    id: uuid.UUID
    price: Decimal

    model_config = {"from_attributes": True}


class MaterialLine(BaseModel):
    """One line of a bill of materials. unit_price falls back to the stored material."""
    name: str
    quantity: Decimal = Decimal("1")
    unit_price: Amount | None = None


class CatalogCreateRequest(BaseModel):
    """price may be omitted: it is then suggested from the production cost."""
    name: str = Field(min_length=1, max_length=100)
    price: Amount | None = None
    image_path: str | None = None
    materials: list[MaterialLine] = []


class CatalogResponse(BaseModel):
    id: uuid.UUID
    name: str
    price: Decimal
    image_path: str | None
    production_cost: Decimal | None
    production_materials: list[dict] | None
    created_at: datetime

    model_config = {"from_attributes": True}


class BusinessEntryRequest(BaseModel):
    """Request body for business expenses and incomes."""
    description: str
    amount: Amount


class BusinessExpenseResponse(BaseModel):
    id: uuid.UUID
    description: str
    amount: Decimal
    is_recorded: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class BusinessIncomeResponse(BaseModel):
    id: uuid.UUID
    description: str
    amount: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class EmptyBouquetRequest(BaseModel):
    size: str = Field(min_length=1, max_length=50)
    price: Amount


class EmptyBouquetResponse(BaseModel):
    id: uuid.UUID
    size: str
    price: Decimal

    model_config = {"from_attributes": True}


class BusinessStatsResponse(BaseModel):
    total_income: Decimal
    total_expense: Decimal
    profit: Decimal
    materials_count: int
    catalogs_count: int
    unrecorded_expenses_count: int


class SuggestPriceRequest(BaseModel):
    """Either a known cost, or a bill of materials to cost first."""
    cost: Amount | None = None
    materials: list[MaterialLine] = []


class SuggestPriceResponse(BaseModel):
    cost: Decimal
    suggested_price: Decimal
