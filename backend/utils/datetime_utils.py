from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    """Naive UTC now, matching how datetimes are stored in SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_datetime(value: str | datetime | date | None) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix accepted) into naive UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def utc_midnight(value: datetime) -> datetime:
    """Truncate to 00:00:00 of the same UTC calendar day."""
    value = to_naive_utc(value)
    return datetime(value.year, value.month, value.day)


def isoformat_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    return to_naive_utc(value).isoformat() + "Z"


def start_of_week(d: date) -> date:
    """Return Monday of the week containing d."""
    return d - timedelta(days=d.weekday())
