import calendar
from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, last_day_of_month(year, month)))


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def day_key(value: date) -> str:
    return value.isoformat()


def sunday_based_weekday(value: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return (value.weekday() + 1) % 7
