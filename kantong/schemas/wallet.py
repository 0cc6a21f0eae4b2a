"""
Pydantic schemas for Wallet endpoints.

Amounts are Decimals and serialize as strings ("150000.00") so no precision
is lost on the way to the client.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class WalletCreateRequest(BaseModel):
    """Request body for POST /wallets."""
    name: str = Field(min_length=1, max_length=64)
    type: Literal["regular", "savings"] = "regular"
    include_in_total: bool = True


class WalletUpdateRequest(BaseModel):
    """Request body for PATCH /wallets/{name}. Omitted fields are left alone."""
    type: Literal["regular", "savings"] | None = None
    include_in_total: bool | None = None


class WalletResponse(BaseModel):
    """Public representation of a wallet."""
    id: uuid.UUID
    name: str
    type: str
    include_in_total: bool
    balance: Decimal
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class WalletBalanceResponse(BaseModel):
    """Cached vs. computed balance of one wallet."""
    wallet: str
    cached_balance: Decimal
    computed_balance: Decimal
    match: bool


class WalletDeletedResponse(BaseModel):
    name: str
    deleted: bool = True
