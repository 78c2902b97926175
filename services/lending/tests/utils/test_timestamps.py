from datetime import datetime, timedelta, timezone

from services.lending.src.lending.utils.timestamps import (
    age_seconds,
    ensure_utc,
    floor_to_interval,
    is_stale,
    iso_utc,
)

NOW = datetime(2026, 1, 15, 12, 37, 42, tzinfo=timezone.utc)


class TestEnsureUtc:
    def test_naive_is_treated_as_utc(self):
        result = ensure_utc(datetime(2026, 1, 15, 12, 0))
        assert result == datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_converts_other_timezones(self):
        plus_two = timezone(timedelta(hours=2))
        result = ensure_utc(datetime(2026, 1, 15, 14, 0, tzinfo=plus_two))
        assert result == datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc

    def test_none(self):
        assert ensure_utc(None) is None


class TestIsStale:
    def test_missing_value_is_stale(self):
        assert is_stale(None, 3600, now=NOW)

    def test_fresh_value(self):
        assert not is_stale(NOW - timedelta(minutes=30), 3600, now=NOW)

    def test_old_value(self):
        assert is_stale(NOW - timedelta(hours=2), 3600, now=NOW)

    def test_exact_max_age_is_fresh(self):
        assert not is_stale(NOW - timedelta(seconds=3600), 3600, now=NOW)

    def test_naive_timestamp_from_sqlite(self):
        naive = (NOW - timedelta(minutes=5)).replace(tzinfo=None)
        assert age_seconds(naive, now=NOW) == 300


class TestFloorToInterval:
    def test_fifteen_minute_bucket(self):
        assert floor_to_interval(NOW, 15) == datetime(2026, 1, 15, 12, 30, tzinfo=timezone.utc)

    def test_hour_bucket(self):
        assert floor_to_interval(NOW, 60) == datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_same_bucket_for_nearby_times(self):
        a = floor_to_interval(NOW, 15)
        b = floor_to_interval(NOW + timedelta(minutes=5), 15)
        assert a == b


class TestIsoUtc:
    def test_formats_with_offset(self):
        assert iso_utc(datetime(2026, 1, 15, 12, 0)) == "2026-01-15T12:00:00+00:00"
