"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from kantong.models directly
"""

from kantong.models.wallet import Wallet  # noqa: F401
from kantong.models.transaction import Transaction  # noqa: F401
from kantong.models.balance import UserBalance  # noqa: F401
from kantong.models.business import (  # noqa: F401
    Business,
    BusinessExpense,
    BusinessIncome,
    BusinessSession,
    Catalog,
    EmptyBouquet,
    Material,
    PriceTier,
)
