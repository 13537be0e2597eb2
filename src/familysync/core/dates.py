"""Pure date arithmetic - no I/O dependencies.

All values are naive local wall-clock datetimes. Month arithmetic goes through
``relativedelta``, which clamps to the last valid day of the target month
(Jan 31 + 1 month = Feb 28, or Feb 29 in a leap year).
"""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

# Python weekday numbers (Monday = 0)
SUNDAY = 6
MONDAY = 0

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}


def start_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.min)


def end_of_day(dt: datetime) -> datetime:
    return datetime.combine(dt.date(), time.max)


def start_of_week(dt: datetime, week_starts_on: int = SUNDAY) -> datetime:
    """Midnight of the first day of the week containing dt."""
    offset = (dt.weekday() - week_starts_on) % 7
    return start_of_day(dt - timedelta(days=offset))


def end_of_week(dt: datetime, week_starts_on: int = SUNDAY) -> datetime:
    """Last instant of the last day of the week containing dt."""
    return end_of_day(start_of_week(dt, week_starts_on) + timedelta(days=6))


def start_of_month(dt: datetime) -> datetime:
    return datetime.combine(dt.date().replace(day=1), time.min)


def end_of_month(dt: datetime) -> datetime:
    first_of_next = dt.date().replace(day=1) + relativedelta(months=1)
    return datetime.combine(first_of_next - timedelta(days=1), time.max)


def add_days(dt: datetime, days: int) -> datetime:
    return dt + timedelta(days=days)


def add_weeks(dt: datetime, weeks: int) -> datetime:
    return dt + timedelta(weeks=weeks)


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar-aware month addition, clamped to the target month's length."""
    return dt + relativedelta(months=months)


def is_within_interval(dt: datetime, start: datetime, end: datetime) -> bool:
    """Closed-interval containment: start <= dt <= end."""
    return start <= dt <= end


def is_same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()


def parse_weekday(name: str, default: int = SUNDAY) -> int:
    """Map a weekday name ("Sunday", "mon") to a Python weekday number."""
    key = name.strip().lower()
    for full, number in WEEKDAYS.items():
        if key and full.startswith(key):
            return number
    return default


def parse_instant(value: str | date | datetime, tz: ZoneInfo | None = None) -> datetime:
    """
    Convert an ISO-8601 value from the wire into a naive local datetime.

    Date-only strings become midnight. Offset-aware strings (including a
    trailing "Z") are converted to ``tz`` (or the system zone) and then made
    naive so they compare with the rest of the model.

    Raises:
        ValueError: if the value is not a valid ISO-8601 date or datetime.
    """
    if not isinstance(value, (str, date)):
        raise ValueError(f"expected an ISO-8601 string, got {type(value).__name__}")
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime.combine(value, time.min)
    else:
        text = value.strip()
        if not text:
            raise ValueError("empty date string")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        if len(text) == 10:
            return datetime.combine(date.fromisoformat(text), time.min)
        dt = datetime.fromisoformat(text)

    if dt.tzinfo is not None:
        dt = dt.astimezone(tz).replace(tzinfo=None) if tz else dt.astimezone().replace(tzinfo=None)
    return dt


def format_instant(dt: datetime | None) -> str | None:
    """Serialize an instant for the wire (ISO-8601, no offset)."""
    return dt.isoformat() if dt else None
