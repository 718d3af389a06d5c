from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns (stored without tz)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()
