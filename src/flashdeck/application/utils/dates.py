"""Calendar-day keys and timestamp helpers.

Day keys are local-calendar `YYYY-MM-DD` strings; timestamps are aware
datetimes serialized as ISO-8601 UTC with a `Z` suffix.
"""

from datetime import UTC, date, datetime, timedelta


def utcnow() -> datetime:
    return datetime.now(UTC)


def today() -> date:
    return date.today()


def format_date_key(value: date) -> str:
    return value.isoformat()


def parse_date_key(value: str) -> date:
    return date.fromisoformat(value)


def today_key(current: date | None = None) -> str:
    return format_date_key(current or today())


def days_ago_key(days: int, current: date | None = None) -> str:
    return format_date_key((current or today()) - timedelta(days=days))


def days_ahead_key(days: int, current: date | None = None) -> str:
    return format_date_key((current or today()) + timedelta(days=days))


def previous_day_key(value: str) -> str:
    return format_date_key(parse_date_key(value) - timedelta(days=1))


def local_date(value: datetime) -> date:
    """Calendar date of a timestamp in the local timezone."""
    if value.tzinfo is None:
        return value.date()
    return value.astimezone().date()


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
