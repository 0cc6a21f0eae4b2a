"""Indonesian display helpers: Rupiah amounts, dates, month labels, category icons."""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from kantong.utils.periods import parse_year_month, to_local

MONTH_NAMES = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]
MONTH_ABBR = ["Jan", "Feb", "Mar", "Apr", "Mei", "Jun", "Jul", "Agu", "Sep", "Okt", "Nov", "Des"]

CATEGORY_ICONS = {
    "kebutuhan": "🛒",
    "makanan": "🍔",
    "food": "🍔",
    "transportasi": "🚗",
    "hiburan": "🎮",
    "social life": "🎉",
    "minyak": "⛽",
    "tagihan": "📄",
    "kesehatan": "💊",
    "pendidikan": "📚",
    "lainnya": "📦",
    "other": "📦",
}

PERIOD_LABELS = {
    "today": "Hari Ini",
    "this_month": "Bulan Ini",
    "last_month": "Bulan Lalu",
    "all_time": "Seluruh Periode",
    "specific_month": "Bulan Tertentu",
}


def _group_thousands(digits: str) -> str:
    groups = []
    while len(digits) > 3:
        groups.insert(0, digits[-3:])
        digits = digits[:-3]
    groups.insert(0, digits)
    return ".".join(groups)


def format_currency(amount) -> str:
    """Format an amount as Rupiah, e.g. Decimal("1500000") -> "Rp 1.500.000"."""
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    whole, _, cents = f"{abs(value):.2f}".partition(".")

    text = f"{sign}Rp {_group_thousands(whole)}"
    if cents != "00":
        text += f",{cents.rstrip('0')}"
    return text


def format_datetime(value: datetime) -> str:
    """Local time as "05 Jan 2025 14.30"."""
    local = to_local(value)
    return f"{local.day:02d} {MONTH_ABBR[local.month - 1]} {local.year} {local.hour:02d}.{local.minute:02d}"


def format_date(value: datetime) -> str:
    local = to_local(value)
    return f"{local.day} {MONTH_NAMES[local.month - 1]} {local.year}"


def month_label(year_month: str) -> str:
    """"2025-01" -> "Januari 2025"."""
    year, month = parse_year_month(year_month)
    return f"{MONTH_NAMES[month - 1]} {year}"


def short_month_label(year_month: str) -> str:
    year, month = parse_year_month(year_month)
    return f"{MONTH_ABBR[month - 1]} {year}"


def category_icon(category: str | None) -> str:
    if not category:
        return "📦"
    return CATEGORY_ICONS.get(category.lower(), "📦")
