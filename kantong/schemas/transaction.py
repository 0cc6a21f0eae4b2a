"""
Pydantic schemas for the ledger endpoints: income, expense, transfers and
adjustments.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from kantong.config import settings
from kantong.schemas.types import Amount, OptionalDate


class EntryRequest(BaseModel):
    """Request body for POST /transactions/income and /transactions/expense."""
    amount: Amount = Field(description='Amount, e.g. 25000 or "25rb"')
    description: str | None = None
    wallet: str = settings.DEFAULT_WALLET
    category: str | None = None
    date: OptionalDate = Field(None, description="Backdate to this local day (YYYY-MM-DD)")


class EntryResponse(BaseModel):
    """Result of an income or expense."""
    transaction_id: uuid.UUID
    new_balance: Decimal = Field(description="Running total after the entry")
    wallet_balance: Decimal
    wallet_name: str


class TransactionResponse(BaseModel):
    """Public representation of a transaction."""
    id: uuid.UUID
    wallet_name: str
    type: str
    amount: Decimal
    category: str | None
    description: str | None
    transfer_pair_id: uuid.UUID | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TransferRequest(BaseModel):
    """Request body for POST /transfers."""
    amount: Amount
    from_wallet: str
    to_wallet: str
    description: str | None = None
    date: OptionalDate = None


class TransferResponse(BaseModel):
    """Response body for a successful transfer."""
    transfer_pair_id: uuid.UUID
    amount: Decimal
    from_wallet: str
    to_wallet: str
    from_balance: Decimal
    to_balance: Decimal


class AdjustmentRequest(BaseModel):
    """
    Request body for POST /adjustments.

    current_balance defaults to the wallet's recorded balance.
    """
    wallet: str
    real_balance: Amount
    current_balance: Amount | None = None
    description: str | None = None


class AdjustmentResponse(BaseModel):
    wallet_name: str
    difference: Decimal
    type: str | None
    amount: Decimal | None
    transaction_id: uuid.UUID | None
    new_balance: Decimal
