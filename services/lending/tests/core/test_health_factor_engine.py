from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from services.lending.src.lending.core.health_factor_engine import (
    STATUS_OK,
    STATUS_STALE,
    HealthFactorEngine,
)

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def engine(sqlite_engine, clock):
    return HealthFactorEngine(sqlite_engine, clock=clock)


class TestRecalculate:
    def test_no_positions_gives_sentinel(self, engine, health_factors):
        result = engine.recalculate("alice", "ethereum")

        assert result.ok
        assert result.status == STATUS_OK
        assert result.record.health_factor == Decimal("999")
        assert health_factors.get("alice", "ethereum").health_factor == Decimal("999")

    def test_healthy_scenario(self, engine, positions, stable_pools):
        positions.record_supply("alice", stable_pools["USDC"], Decimal("1000"))
        positions.record_borrow("alice", stable_pools["USDC"], Decimal("500"), "variable")

        record = engine.recalculate("alice", "ethereum").record

        assert float(record.health_factor) == pytest.approx(1.7)
        assert float(record.available_borrow_usd) == pytest.approx(300)
        assert float(record.ltv) == pytest.approx(0.5)
        assert float(record.liquidation_threshold) == pytest.approx(0.85)
        assert record.last_calculated_at == NOW

    def test_unhealthy_scenario(self, engine, positions, stable_pools):
        positions.record_supply("alice", stable_pools["USDC"], Decimal("1000"))
        positions.record_borrow("alice", stable_pools["DAI"], Decimal("900"), "variable")

        record = engine.recalculate("alice", "ethereum").record

        assert float(record.health_factor) == pytest.approx(0.9444, abs=1e-4)
        assert record.available_borrow_usd == 0
        assert record.health_factor < 1

    def test_disabled_collateral_is_ignored(self, engine, positions, stable_pools):
        positions.record_supply("alice", stable_pools["USDC"], Decimal("1000"))
        positions.record_supply("alice", stable_pools["DAI"], Decimal("1000"))
        positions.set_collateral_usage("alice", "DAI", "ethereum", False)

        record = engine.recalculate("alice", "ethereum").record
        assert record.total_collateral_usd == Decimal("1000")

    def test_recompute_is_idempotent(self, engine, clock, positions, stable_pools, health_factors):
        positions.record_supply("alice", stable_pools["USDC"], Decimal("1000"))
        positions.record_borrow("alice", stable_pools["USDC"], Decimal("500"), "variable")

        engine.recalculate("alice", "ethereum")
        first = health_factors.get("alice", "ethereum")
        clock.now = NOW + timedelta(minutes=10)
        engine.recalculate("alice", "ethereum")
        second = health_factors.get("alice", "ethereum")

        assert second.health_factor == first.health_factor
        assert second.total_collateral_usd == first.total_collateral_usd
        assert second.total_debt_usd == first.total_debt_usd
        assert second.available_borrow_usd == first.available_borrow_usd
        assert second.ltv == first.ltv
        assert second.liquidation_threshold == first.liquidation_threshold
        assert second.last_calculated_at == NOW + timedelta(minutes=10)

    def test_failure_is_reported_as_stale(self, engine, health_factors, monkeypatch, caplog):
        health_factors.upsert(
            engine.build_profile("alice", "ethereum").to_record(NOW)
        )

        def broken_upsert(record):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(engine.health_factors, "upsert", broken_upsert)
        result = engine.recalculate("alice", "ethereum")

        assert not result.ok
        assert result.status == STATUS_STALE
        assert result.error == "database unavailable"
        assert result.record is None
        assert any(
            getattr(r, "event", None) == "health_factor.recalculation_failed"
            for r in caplog.records
        )
        # Previous record is still in place
        assert health_factors.get("alice", "ethereum").last_calculated_at == NOW


class TestGetCached:
    def test_returns_none_before_first_recalculation(self, engine):
        assert engine.get_cached("alice", "ethereum") is None

    def test_returns_record(self, engine):
        engine.recalculate("alice", "ethereum")
        assert engine.get_cached("alice", "ethereum").user_id == "alice"
