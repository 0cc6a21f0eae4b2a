"""
Rupiah amount parsing for chat shorthand.

Users type amounts the way they say them:

    "50rb"      -> 50000       (rb / ribu / k   = thousand)
    "1.5jt"     -> 1500000     (jt / juta / m   = million)
    "1jt 500"   -> 1500000     a bare number after "jt" counts in thousands
    "Rp 25.000" -> 25000       dots in groups of three are thousands separators
    "2500"      -> 2500

The LLM usually sends plain numbers, but shorthand strings still turn up in
its output, so the decision decoder runs every amount field through here.
"""

import re
from decimal import Decimal, InvalidOperation

THOUSAND = Decimal("1000")
MILLION = Decimal("1000000")
CENT = Decimal("0.01")

_UNITS = {
    "jt": MILLION,
    "juta": MILLION,
    "m": MILLION,
    "rb": THOUSAND,
    "ribu": THOUSAND,
    "k": THOUSAND,
}

# Longest unit names first so "juta" is not read as "jt"-less "j"
_AMOUNT_RE = re.compile(
    r"(?P<number>\d+(?:[.,]\d+)*)\s*(?P<unit>juta|ribu|jt|rb|k|m)?(?![a-z])"
)
_TRAILING_RE = re.compile(r"^\s*(?P<number>\d+(?:[.,]\d+)?)\s*(?P<unit>ribu|rb|k)?(?![a-z])")
_THOUSANDS_RE = re.compile(r"\d{1,3}(?:[.,]\d{3})+")


def _to_decimal(number: str, has_unit: bool) -> Decimal:
    # "25.000" / "1,500,000" without a unit are grouped thousands
    if not has_unit and _THOUSANDS_RE.fullmatch(number):
        return Decimal(re.sub(r"[.,]", "", number))

    separators = re.findall(r"[.,]", number)
    if len(separators) > 1:
        return Decimal(re.sub(r"[.,]", "", number))
    return Decimal(number.replace(",", "."))


def parse_amount(value) -> Decimal:
    """
    Parse a number or a shorthand string into a Decimal amount.

    Raises:
        ValueError: If no amount can be found in the text.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    if isinstance(value, (int, Decimal)):
        return Decimal(value).quantize(CENT)
    if isinstance(value, float):
        return Decimal(str(value)).quantize(CENT)
    if not isinstance(value, str):
        raise ValueError(f"Not an amount: {value!r}")

    text = value.lower().replace("rp", " ").strip()
    match = _AMOUNT_RE.search(text)
    if match is None:
        raise ValueError(f"No amount found in {value!r}")

    unit = match.group("unit")
    try:
        amount = _to_decimal(match.group("number"), has_unit=unit is not None)
    except InvalidOperation as exc:
        raise ValueError(f"No amount found in {value!r}") from exc

    if unit is not None:
        amount *= _UNITS[unit]

        # "1jt 500" / "1jt 500rb": the remainder is thousands
        if _UNITS[unit] == MILLION:
            rest = _TRAILING_RE.match(text[match.end():])
            if rest is not None:
                amount += _to_decimal(rest.group("number"), has_unit=True) * THOUSAND

    return amount.quantize(CENT)
