"""
Period resolution for history, statistics and export.

Transactions are stored with UTC timestamps. Users think in local calendar
days and months, so every named period is evaluated in settings.TIMEZONE and
turned into a half-open UTC range [start, end) that can be bound directly in
a WHERE clause.

SQLite drops tzinfo on the way out; as_utc() re-attaches UTC to naive values
read back from the store.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from kantong.config import settings
from kantong.exceptions import InvalidPeriodError

PERIODS = ("today", "this_month", "last_month", "specific_month", "all_time")

_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def local_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime) -> datetime:
    return as_utc(value).astimezone(local_tz())


def local_now() -> datetime:
    return datetime.now(local_tz())


def parse_year_month(value: str) -> tuple[int, int]:
    """Split "YYYY-MM" into (year, month), raising InvalidPeriodError if malformed."""
    match = _YEAR_MONTH_RE.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise InvalidPeriodError(f"Invalid month '{value}', expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise InvalidPeriodError(f"Invalid month '{value}', expected YYYY-MM")
    return year, month


def month_key(value: datetime) -> str:
    """The local "YYYY-MM" a timestamp falls in."""
    return to_local(value).strftime("%Y-%m")


def current_year_month(now: datetime | None = None) -> str:
    now = now or local_now()
    return now.astimezone(local_tz()).strftime("%Y-%m")


def previous_year_month(now: datetime | None = None) -> str:
    now = (now or local_now()).astimezone(local_tz())
    first = now.replace(day=1)
    return (first - timedelta(days=1)).strftime("%Y-%m")


def local_day_start(day: date) -> datetime:
    """Midnight of a local calendar day, as a UTC datetime (used for backdating)."""
    return datetime.combine(day, time.min, tzinfo=local_tz()).astimezone(timezone.utc)


def _month_range(year: int, month: int) -> tuple[datetime, datetime]:
    tz = local_tz()
    start = datetime(year, month, 1, tzinfo=tz)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=tz)
    else:
        end = datetime(year, month + 1, 1, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def resolve_period(
    period: str,
    year_month: str | None = None,
    now: datetime | None = None,
) -> tuple[datetime, datetime] | None:
    """
    Resolve a period name to a half-open UTC range, or None for no filter.

    "specific_month" without a year_month applies no date filter at all; it
    is treated like "all_time" rather than an error.

    Raises:
        InvalidPeriodError: Unknown period name or malformed year_month.
    """
    now = (now or local_now()).astimezone(local_tz())

    if period == "today":
        start = local_day_start(now.date())
        end = local_day_start(now.date() + timedelta(days=1))
        return start, end

    if period == "this_month":
        return _month_range(now.year, now.month)

    if period == "last_month":
        year, month = parse_year_month(previous_year_month(now))
        return _month_range(year, month)

    if period == "specific_month":
        if not year_month:
            return None
        year, month = parse_year_month(year_month)
        return _month_range(year, month)

    if period == "all_time":
        return None

    raise InvalidPeriodError(
        f"Unknown period '{period}', expected one of {', '.join(PERIODS)}"
    )
