from datetime import date, datetime, time, timezone

from booking_core.utils.constants import CALENDAR_DATE_FORMAT

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def from_iso_string(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        raise ValueError("Stored datetime must be timezone-aware")
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).isoformat()


def utc_midnight(value: date | datetime) -> datetime:
    """Midnight UTC of the calendar day ``value`` falls on (in UTC)."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            raise ValueError("Datetime must be timezone-aware")
        value = value.astimezone(timezone.utc).date()
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def parse_calendar_date(value: str) -> date:
    """Accepts DD/MM/YYYY (the stored form) or ISO YYYY-MM-DD."""
    value = value.strip()
    try:
        return datetime.strptime(value, CALENDAR_DATE_FORMAT).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date format: {value!r}") from None


def format_calendar_date(value: date) -> str:
    return value.strftime(CALENDAR_DATE_FORMAT)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, truncated toward zero."""
    return int((end - start).total_seconds() / SECONDS_PER_DAY)
