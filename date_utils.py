"""
Centralized date and time utilities for the application.

All timestamps are handled as timezone-aware datetime objects in UTC. Trip
dates arrive from forms as calendar dates ("2024-01-03") or ISO timestamps and
are normalized here before any comparison, because MongoDB hands back naive
datetimes unless the client is configured otherwise.
"""

import logging
from datetime import UTC, date, datetime, timedelta

from dateutil import parser

logger = logging.getLogger(__name__)


def get_current_utc_time() -> datetime:
    """Return the current time as a timezone-aware datetime object in UTC."""
    return datetime.now(UTC)


def parse_timestamp(ts: str | datetime) -> datetime | None:
    """
    Parse a timestamp string (or datetime object) and ensure it is
    timezone-aware, defaulting to UTC.

    Args:
        ts: The timestamp to parse, either as an ISO 8601 string or a
            datetime object.

    Returns:
        A timezone-aware datetime object, or None if parsing fails.
    """
    if not ts:
        logger.debug("Received empty timestamp; returning None.")
        return None

    if isinstance(ts, datetime):
        # If the datetime object is naive, assume UTC.
        if ts.tzinfo is None:
            return ts.replace(tzinfo=UTC)
        return ts.astimezone(UTC)

    try:
        parsed_time = parser.isoparse(ts)
        if parsed_time.tzinfo is None:
            return parsed_time.replace(tzinfo=UTC)
        return parsed_time.astimezone(UTC)
    except (ValueError, TypeError) as e:
        logger.warning("Failed to parse timestamp '%s': %s", ts, e)
        return None


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Return the datetime as an explicit UTC-aware value."""

    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)

    return dt.astimezone(UTC)


def normalize_to_utc_datetime(value: str | datetime | date | None) -> datetime | None:
    """Normalize arbitrary date/datetime inputs to a UTC-aware datetime."""

    if value is None:
        return None

    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time(), tzinfo=UTC)

    if isinstance(value, str):
        parsed = parse_timestamp(value)
        if parsed:
            return ensure_utc(parsed)
        return None

    logger.warning("Unsupported datetime input type '%s'", type(value))
    return None


def days_between(start: datetime | None, end: datetime | None) -> float | None:
    """Elapsed days from ``start`` to ``end``, or None when either is missing."""
    start_utc = ensure_utc(start)
    end_utc = ensure_utc(end)
    if start_utc is None or end_utc is None:
        return None
    return (end_utc - start_utc).total_seconds() / 86400.0


def is_calendar_date(value: str | datetime | date | None) -> bool:
    """True for a bare date or a ``YYYY-MM-DD`` string, without a time part."""
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and len(value.strip()) == 10


def end_of_day(dt: datetime) -> datetime:
    """Last representable instant of ``dt``'s UTC calendar day."""
    start = ensure_utc(dt).replace(hour=0, minute=0, second=0, microsecond=0)
    return start + timedelta(days=1) - timedelta(microseconds=1)


def month_bounds(year: int, month: int | None = None) -> tuple[datetime, datetime]:
    """Inclusive UTC bounds of a calendar month, or of the whole year."""
    if month is None:
        start = datetime(year, 1, 1, tzinfo=UTC)
        following = datetime(year + 1, 1, 1, tzinfo=UTC)
    else:
        start = datetime(year, month, 1, tzinfo=UTC)
        following = (
            datetime(year + 1, 1, 1, tzinfo=UTC)
            if month == 12
            else datetime(year, month + 1, 1, tzinfo=UTC)
        )
    return start, following - timedelta(microseconds=1)
