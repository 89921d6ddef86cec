"""
Timestamp Formatting Utilities

Renders timestamps in one fixed, sortable ISO-8601 profile so that
every payload carrying a time (device clock values, JSON envelopes)
compares lexically in chronological order.

Example:
    2024-01-15 10:30:00.5 UTC -> "2024-01-15T10:30:00.500Z"
"""

from datetime import datetime, timezone


def to_utc(ts: datetime) -> datetime:
    """
    Normalise a datetime to UTC.

    Naive datetimes are assumed to already be UTC (the device clock is
    read without a zone); aware datetimes are converted.
    """
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def format_timestamp_iso(ts: datetime) -> str:
    """
    Format a timestamp as UTC ISO-8601 with millisecond precision.

    Args:
        ts: The timestamp to format (naive values are taken as UTC)

    Returns:
        String such as "2024-01-15T10:30:00.500Z"
    """
    utc = to_utc(ts)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def utc_now() -> datetime:
    """Current UTC time (timezone-aware)"""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time as a formatted ISO string"""
    return format_timestamp_iso(utc_now())
