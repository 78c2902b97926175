"""Timestamp utilities (UTC with timezone)."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware. SQLite returns naive datetimes."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        # Naive datetime from SQLite - treat as UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def age_seconds(dt: datetime, now: datetime | None = None) -> float:
    """Seconds elapsed since `dt` (negative if `dt` is in the future)."""
    current = now or utc_now()
    return (ensure_utc(current) - ensure_utc(dt)).total_seconds()


def is_stale(
    last_calculated_at: datetime | None,
    max_age_seconds: int,
    now: datetime | None = None,
) -> bool:
    """True when a cached value is missing or older than `max_age_seconds`."""
    if last_calculated_at is None:
        return True
    return age_seconds(last_calculated_at, now) > max_age_seconds


def iso_utc(dt: datetime | None) -> str | None:
    """Convert datetime to ISO string with UTC timezone."""
    utc_dt = ensure_utc(dt)
    return utc_dt.isoformat() if utc_dt else None


def floor_to_interval(dt: datetime, minutes: int) -> datetime:
    """Floor a datetime to the start of its `minutes`-long bucket."""
    dt = ensure_utc(dt)
    day_start = dt.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = int((dt - day_start).total_seconds() // 60)
    return day_start + timedelta(minutes=elapsed - elapsed % minutes)
