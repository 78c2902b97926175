from decimal import Decimal

import pytest
from sqlalchemy import func, select

from services.lending.src.lending.db.liquidation_repository import (
    LiquidationRepository,
    new_liquidation_call,
)
from services.lending.src.lending.db.models import liquidation_calls
from services.lending.src.lending.domain.errors import ValidationError


@pytest.fixture
def repository(sqlite_engine):
    return LiquidationRepository(sqlite_engine)


@pytest.fixture
def indebted_user(positions, stable_pools):
    positions.record_supply("alice", stable_pools["USDC"], Decimal("1000"))
    positions.record_borrow("alice", stable_pools["DAI"], Decimal("800"), "variable")


def make_call(debt="400", collateral="420", liquidator="bob"):
    return new_liquidation_call(
        target_user_id="alice",
        liquidator_id=liquidator,
        collateral_asset="USDC",
        debt_asset="DAI",
        chain="ethereum",
        debt_to_cover=Decimal(debt),
        liquidated_collateral=Decimal(collateral),
        liquidation_bonus_amount=Decimal(collateral) - Decimal(debt),
        health_factor_before=Decimal("0.875"),
    )


def count_calls(engine) -> int:
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(liquidation_calls)).scalar()


class TestApplyLiquidation:
    def test_moves_balances_and_completes(self, repository, positions, indebted_user):
        call = repository.apply_liquidation(make_call(), "variable")

        assert call.status == "completed"
        assert call.tx_ref.startswith(f"liquidation_{call.id}_")
        assert call.completed_at is not None
        assert positions.get_supply("alice", "USDC", "ethereum").supplied_amount == Decimal("580")
        assert positions.get_borrow("alice", "DAI", "ethereum", "variable").borrowed_amount == Decimal("400")

        stored = repository.get(call.id)
        assert stored.status == "completed"
        assert stored.liquidator_id == "bob"
        assert stored.tx_ref == call.tx_ref

    def test_updates_pool_totals(self, repository, positions, indebted_user):
        repository.apply_liquidation(make_call(), "variable")

        dai = positions.get_pool_reserve("DAI", "ethereum")
        usdc = positions.get_pool_reserve("USDC", "ethereum")
        assert dai.total_borrowed == Decimal("400")
        assert usdc.total_supply == Decimal("1000580")

    def test_insufficient_collateral_rolls_back(self, repository, positions, sqlite_engine, indebted_user):
        with pytest.raises(ValidationError, match="Insufficient collateral"):
            repository.apply_liquidation(make_call(collateral="1500"), "variable")

        assert count_calls(sqlite_engine) == 0
        assert positions.get_supply("alice", "USDC", "ethereum").supplied_amount == Decimal("1000")

    def test_excess_debt_rolls_back_collateral_too(self, repository, positions, sqlite_engine, indebted_user):
        with pytest.raises(ValidationError, match="exceeds user borrowed amount"):
            repository.apply_liquidation(make_call(debt="900", collateral="945"), "variable")

        assert count_calls(sqlite_engine) == 0
        assert positions.get_supply("alice", "USDC", "ethereum").supplied_amount == Decimal("1000")
        assert positions.get_borrow("alice", "DAI", "ethereum", "variable").borrowed_amount == Decimal("800")

    def test_fully_covered_debt_row_is_deleted(self, repository, positions, indebted_user):
        repository.apply_liquidation(make_call(debt="800", collateral="840"), "variable")

        assert positions.get_borrow("alice", "DAI", "ethereum", "variable") is None
        assert positions.get_supply("alice", "USDC", "ethereum").supplied_amount == Decimal("160")

    def test_debt_left_at_dust_is_closed(self, repository, positions, indebted_user):
        repository.apply_liquidation(make_call(debt="799.995", collateral="840"), "variable")

        assert positions.get_borrow("alice", "DAI", "ethereum", "variable") is None

    def test_seized_supply_at_zero_is_deleted(self, repository, positions, indebted_user):
        repository.apply_liquidation(make_call(debt="400", collateral="1000"), "variable")

        assert positions.get_supply("alice", "USDC", "ethereum") is None

    def test_wrong_rate_mode_fails(self, repository, indebted_user):
        with pytest.raises(ValidationError):
            repository.apply_liquidation(make_call(), "stable")


class TestFailuresAndHistory:
    def test_record_failure(self, repository):
        call = repository.record_failure(make_call(), "Insufficient collateral to liquidate")

        stored = repository.get(call.id)
        assert stored.status == "failed"
        assert stored.error == "Insufficient collateral to liquidate"
        assert stored.completed_at is None

    def test_set_health_factor_after(self, repository, indebted_user):
        call = repository.apply_liquidation(make_call(), "variable")
        repository.set_health_factor_after(call.id, Decimal("1.23"))

        assert float(repository.get(call.id).health_factor_after) == pytest.approx(1.23)

    def test_history_as_target_or_liquidator(self, repository):
        repository.record_failure(make_call(liquidator="bob"), "x")
        repository.record_failure(make_call(liquidator="carol"), "y")

        assert len(repository.get_history()) == 2
        assert len(repository.get_history("alice")) == 2
        assert [c.liquidator_id for c in repository.get_history("carol")] == ["carol"]
        assert repository.get_history("dave") == []

    def test_history_limit(self, repository):
        for _ in range(3):
            repository.record_failure(make_call(), "x")
        assert len(repository.get_history(limit=2)) == 2
