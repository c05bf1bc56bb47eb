"""Time helpers used by the subscription state machine."""
from calendar import monthrange
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(start: datetime, months: int) -> datetime:
    """Calendar-month addition, clamping the day to the end of the target month.

    Jan 31 + 1 month is Feb 28 (Feb 29 in leap years). Time of day and tzinfo
    are preserved.
    """
    total_months = start.month - 1 + months
    year = start.year + total_months // 12
    month = total_months % 12 + 1
    day = min(start.day, monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)
