"""
Centralized datetime utilities for CAIRN.

All datetimes are handled in UTC. Response timestamps and error timestamps go
through these helpers so they share one format.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure datetime is in UTC timezone.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    elif dt.tzinfo == timezone.utc:
        return dt
    else:
        return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: str) -> datetime:
    """
    Parse ISO datetime string to datetime object.

    Handles the 'Z' suffix as well as explicit offsets.

    Raises:
        ValueError: If string cannot be parsed as ISO datetime
    """
    if iso_string.endswith('Z'):
        iso_string = iso_string[:-1] + '+00:00'

    try:
        return ensure_utc(datetime.fromisoformat(iso_string))
    except ValueError as e:
        raise ValueError(f"Invalid ISO datetime string: {iso_string}") from e


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO string with Z suffix.

    Example: "2024-01-15T10:30:45.123456Z"
    """
    return ensure_utc(dt).isoformat().replace('+00:00', 'Z')


def utc_now_iso() -> str:
    """Current UTC datetime as ISO string with 'Z' suffix."""
    return format_iso(utc_now())


# For testing and mocking
_mock_time: Optional[datetime] = None


def set_mock_time(dt: Optional[datetime]) -> None:
    """
    Set mock time for testing.

    Example:
        set_mock_time(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))
        ...
        set_mock_time(None)
    """
    global _mock_time
    _mock_time = ensure_utc(dt) if dt else None


def utc_now_testable() -> datetime:
    """
    Get current time, honouring set_mock_time().

    Returns:
        Mock time if set, otherwise current UTC time
    """
    return _mock_time if _mock_time else utc_now()
