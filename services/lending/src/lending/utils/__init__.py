"""Utility modules."""

from services.lending.src.lending.utils.timestamps import (
    age_seconds,
    ensure_utc,
    floor_to_interval,
    is_stale,
    iso_utc,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "age_seconds",
    "is_stale",
    "iso_utc",
    "floor_to_interval",
]
