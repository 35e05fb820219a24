from __future__ import annotations

from datetime import datetime, timezone

UTC = timezone.utc


def utc_now() -> datetime:
    """Return a tz-aware UTC timestamp."""
    return datetime.now(UTC)


def is_tz_aware(value: datetime) -> bool:
    """True if a datetime is timezone-aware (has a non-None UTC offset)."""
    return value.tzinfo is not None and value.utcoffset() is not None


def coerce_utc(value: datetime, *, assume_naive_is_utc: bool = True) -> datetime:
    """Coerce any datetime to tz-aware UTC.

    Chat transports hand us epoch seconds or naive datetimes; adapters call
    this before timestamps enter a batch.
    """
    if is_tz_aware(value):
        return value.astimezone(UTC)

    if not assume_naive_is_utc:
        raise ValueError("Naive datetime cannot be coerced without an explicit assumption")

    return value.replace(tzinfo=UTC)


def from_epoch_seconds(value: float) -> datetime:
    """Convert a transport epoch timestamp (seconds) to tz-aware UTC."""
    return datetime.fromtimestamp(float(value), UTC)


def days_between(start: datetime, end: datetime) -> int:
    """Whole calendar days between two timestamps, never less than one."""
    start_day = coerce_utc(start).date()
    end_day = coerce_utc(end).date()
    return max(1, (end_day - start_day).days)
