"""Time utilities for consistent timestamp handling."""

from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utc_now() -> datetime:
    """Get current UTC datetime.

    Returns:
        Current datetime in UTC timezone.
    """
    return datetime.now(UTC)


def format_iso(dt: datetime) -> str:
    """Format datetime as ISO 8601 string.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string.
    """
    return dt.isoformat()


def parse_iso(s: str) -> datetime:
    """Parse ISO 8601 string to datetime.

    Naive values are assumed to be UTC.

    Args:
        s: ISO 8601 formatted string.

    Returns:
        Parsed timezone-aware datetime.
    """
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA timezone name.

    Args:
        name: Timezone name, e.g. "Europe/London".

    Returns:
        ZoneInfo instance.

    Raises:
        ValueError: If the timezone is unknown.
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def parse_hhmm(value: str) -> time:
    """Parse a 24h "HH:MM" string.

    Raises:
        ValueError: If the string is not a valid 24h time.
    """
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Time out of range: {value!r}")
    return time(hour, minute)


def local_date(dt: datetime, zone: ZoneInfo) -> date:
    """Get the calendar date of a datetime in the given timezone."""
    return dt.astimezone(zone).date()
