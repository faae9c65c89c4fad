"""UTC-everywhere time handling. Local time only at display and numbering boundaries."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

# Business timezone: order numbers and "today" are counted in Taipei time
BUSINESS_TZ = "Asia/Taipei"


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def to_local(dt: datetime, tz_name: str = BUSINESS_TZ) -> datetime:
    """
    Convert UTC datetime to a local timezone.

    Args:
        dt: UTC datetime
        tz_name: IANA timezone name, defaults to the business timezone

    Raises:
        ValueError: If datetime is naive or timezone name is invalid
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime. Datetime must be timezone-aware."
        )

    try:
        local_tz = ZoneInfo(tz_name)
    except (KeyError, ValueError):
        raise ValueError(f"Unknown timezone: {tz_name}")

    return dt.astimezone(local_tz)


def business_date_stamp(dt: datetime) -> str:
    """YYYYMMDD of the given instant in the business timezone."""
    return to_local(dt).strftime("%Y%m%d")


def business_day_bounds(dt: datetime) -> tuple[datetime, datetime]:
    """UTC [start, end) of the business-timezone calendar day containing dt."""
    local = to_local(dt)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return to_utc(start), to_utc(end)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Accepts a trailing 'Z'. Raises ValueError if string has no timezone info.
    """
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+08:00')."
        )
    return to_utc(dt)
