"""
Custom exception classes and FastAPI exception handlers.

Every ledger, wallet and business failure is a named condition with a stable
`code` (ALREADY_EXISTS, INSUFFICIENT_BALANCE, ...). Services raise these
typed exceptions and never recover from them locally. Two layers translate
them:

  - the REST layer, through the handlers registered here, into
    {"detail": ..., "error_type": ...} JSON responses
  - the chat dispatcher, into user-facing reply texts keyed by `code`

Exception hierarchy:
    KantongError (base)
    ├── WalletAlreadyExistsError      ALREADY_EXISTS
    ├── WalletNotFoundError           NOT_FOUND
    │   ├── LedgerWalletNotFoundError     WALLET_NOT_FOUND
    │   ├── SourceWalletNotFoundError     FROM_WALLET_NOT_FOUND
    │   └── DestinationWalletNotFoundError TO_WALLET_NOT_FOUND
    ├── NoUpdatesError                NO_UPDATES
    ├── WalletNotEmptyError           NOT_EMPTY
    ├── InsufficientBalanceError      INSUFFICIENT_BALANCE
    ├── SameWalletTransferError       SAME_WALLET
    ├── InvalidAmountError            INVALID_AMOUNT
    ├── InvalidPeriodError            INVALID_PERIOD
    ├── BusinessAlreadyExistsError    BUSINESS_ALREADY_EXISTS
    ├── InvalidCredentialsError       INVALID_CREDENTIALS
    ├── NoActiveBusinessError         NO_ACTIVE_BUSINESS
    ├── MaterialAlreadyExistsError    MATERIAL_ALREADY_EXISTS
    ├── MaterialNotFoundError         MATERIAL_NOT_FOUND
    ├── PriceAlreadyExistsError       PRICE_ALREADY_EXISTS
    ├── CatalogNotFoundError          CATALOG_NOT_FOUND
    ├── EmptyBouquetAlreadyExistsError EMPTY_BOUQUET_ALREADY_EXISTS
    ├── EmptyBouquetNotFoundError     EMPTY_BOUQUET_NOT_FOUND
    ├── BackupError                   BACKUP_FAILED
    └── DecisionParseError            INVALID_DECISION
"""

import logging
from decimal import Decimal

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class KantongError(Exception):
    """Base exception for all Kantong domain errors."""

    code = "ERROR"
    status_code = 400

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Wallet store
# ---------------------------------------------------------------------------

class WalletAlreadyExistsError(KantongError):
    """Raised when creating a wallet whose normalized name is taken."""

    code = "ALREADY_EXISTS"
    status_code = 409

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Wallet '{name}' already exists")


class WalletNotFoundError(KantongError):
    """Raised when a wallet-store operation targets a missing wallet."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Wallet '{name}' not found")


class LedgerWalletNotFoundError(WalletNotFoundError):
    """Raised by income/expense/adjustment when the wallet does not exist."""

    code = "WALLET_NOT_FOUND"


class SourceWalletNotFoundError(WalletNotFoundError):
    """Raised when the source wallet of a transfer does not exist."""

    code = "FROM_WALLET_NOT_FOUND"


class DestinationWalletNotFoundError(WalletNotFoundError):
    """Raised when the destination wallet of a transfer does not exist."""

    code = "TO_WALLET_NOT_FOUND"


class NoUpdatesError(KantongError):
    """Raised when a partial update carries no fields."""

    code = "NO_UPDATES"
    status_code = 400

    def __init__(self):
        super().__init__("No fields to update")


class WalletNotEmptyError(KantongError):
    """Raised when deleting a wallet whose balance is not exactly zero."""

    code = "NOT_EMPTY"
    status_code = 409

    def __init__(self, name: str, balance: Decimal):
        self.name = name
        self.balance = balance
        super().__init__(f"Wallet '{name}' still holds a balance of {balance}")


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class InsufficientBalanceError(KantongError):
    """
    Raised when a transfer would take the source wallet below zero.

    Plain expenses never raise this: wallets may go negative through
    spending, only transfers enforce a non-negative source.
    """

    code = "INSUFFICIENT_BALANCE"
    status_code = 422

    def __init__(self, wallet: str, requested: Decimal, available: Decimal):
        self.wallet = wallet
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient balance in '{wallet}': requested {requested}, "
            f"available {available}"
        )


class SameWalletTransferError(KantongError):
    """Raised when a transfer names the same wallet on both sides."""

    code = "SAME_WALLET"
    status_code = 400

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Cannot transfer from '{name}' to itself")


class InvalidAmountError(KantongError):
    """Raised when a ledger amount is zero or negative."""

    code = "INVALID_AMOUNT"
    status_code = 400

    def __init__(self, amount: Decimal):
        self.amount = amount
        super().__init__(f"Amount must be positive, got {amount}")


class InvalidPeriodError(KantongError):
    """Raised for an unknown period name or a malformed YYYY-MM value."""

    code = "INVALID_PERIOD"
    status_code = 400


# ---------------------------------------------------------------------------
# Business book
# ---------------------------------------------------------------------------

class BusinessAlreadyExistsError(KantongError):
    code = "BUSINESS_ALREADY_EXISTS"
    status_code = 409

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Business '{name}' already exists")


class InvalidCredentialsError(KantongError):
    """Raised when business login credentials are incorrect."""

    code = "INVALID_CREDENTIALS"
    status_code = 401

    def __init__(self):
        super().__init__("Invalid business name, username or password")


class NoActiveBusinessError(KantongError):
    """Raised when a business operation runs without a logged-in business."""

    code = "NO_ACTIVE_BUSINESS"
    status_code = 409

    def __init__(self):
        super().__init__("No active business session")


class MaterialAlreadyExistsError(KantongError):
    code = "MATERIAL_ALREADY_EXISTS"
    status_code = 409

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Material '{name}' already exists")


class MaterialNotFoundError(KantongError):
    code = "MATERIAL_NOT_FOUND"
    status_code = 404

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Material '{name}' not found")


class PriceAlreadyExistsError(KantongError):
    code = "PRICE_ALREADY_EXISTS"
    status_code = 409

    def __init__(self, price: Decimal):
        self.price = price
        super().__init__(f"Price tier {price} already exists")


class EmptyBouquetAlreadyExistsError(KantongError):
    code = "EMPTY_BOUQUET_ALREADY_EXISTS"
    status_code = 409

    def __init__(self, size: str):
        self.size = size
        super().__init__(f"Empty bouquet size '{size}' already exists")


class EmptyBouquetNotFoundError(KantongError):
    code = "EMPTY_BOUQUET_NOT_FOUND"
    status_code = 404

    def __init__(self, size: str):
        self.size = size
        super().__init__(f"Empty bouquet size '{size}' not found")


class CatalogNotFoundError(KantongError):
    code = "CATALOG_NOT_FOUND"
    status_code = 404

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Catalog item '{name}' not found")


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------

class BackupError(KantongError):
    """Raised when the store cannot be backed up (e.g. not a file-based SQLite URL)."""

    code = "BACKUP_FAILED"
    status_code = 503


# ---------------------------------------------------------------------------
# Decision step
# ---------------------------------------------------------------------------

class DecisionParseError(KantongError):
    """Raised when the LLM's decision JSON does not match any known action."""

    code = "INVALID_DECISION"
    status_code = 422

    def __init__(self, detail: str, raw: object = None):
        self.raw = raw
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Domain errors map to their own status code and a consistent JSON body:
    {"detail": "error message", "error_type": "<code>"}. Anything else is
    logged and answered with a bare 500 so internals never leak.
    """

    @app.exception_handler(InsufficientBalanceError)
    async def insufficient_balance_handler(
        request: Request, exc: InsufficientBalanceError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "error_type": exc.code,
                "requested": str(exc.requested),
                "available": str(exc.available),
            },
        )

    @app.exception_handler(KantongError)
    async def kantong_error_handler(
        request: Request, exc: KantongError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error_type": exc.code},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "INTERNAL_ERROR"},
        )
