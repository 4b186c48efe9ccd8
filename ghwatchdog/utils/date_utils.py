"""Date and time utilities for GitHub Watchdog."""

import datetime
from typing import Optional

from dateutil.parser import parse as parse_date


def utcnow() -> datetime.datetime:
    """Current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def to_utc(dt: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Convert a datetime to aware UTC; naive values are assumed to be UTC already."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc)


def make_naive_datetime(dt: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Convert a datetime to naive UTC (the form stored in the ledger)."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return dt


def parse_github_datetime(value: Optional[str]) -> Optional[datetime.datetime]:
    """
    Parse an ISO-8601 timestamp as returned by the GitHub API.

    Returns:
        Aware UTC datetime, or None for empty input

    Raises:
        ValueError: If the value cannot be parsed
    """
    if not value:
        return None
    return to_utc(parse_date(value))


def format_query_timestamp(dt: datetime.datetime) -> str:
    """Render a datetime for a search qualifier, e.g. ``2025-02-01T10:00:00Z``."""
    return to_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")
