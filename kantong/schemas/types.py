"""
Shared annotated field types.

Amount accepts plain numbers as well as chat shorthand ("50rb", "1.5jt"),
both in REST bodies and in the LLM's decision JSON. Sign checks are left to
the services so a bad amount surfaces as INVALID_AMOUNT rather than a
generic validation error.
"""

from datetime import date
from decimal import Decimal
from typing import Annotated

from pydantic import BeforeValidator

from kantong.config import settings
from kantong.utils.amounts import parse_amount


def _amount(value):
    if value is None:
        return value
    return parse_amount(value)


def _blank_to_none(value):
    if isinstance(value, str) and value.strip().lower() in ("", "null", "none"):
        return None
    return value


Amount = Annotated[Decimal, BeforeValidator(_amount)]
OptionalDate = Annotated[date | None, BeforeValidator(_blank_to_none)]
OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]


def _default_wallet(value):
    value = _blank_to_none(value)
    return settings.DEFAULT_WALLET if value is None else value


# A wallet name the model may leave out or send as null
WalletName = Annotated[str, BeforeValidator(_default_wallet)]
