from decimal import Decimal

from services.lending.src.lending.domain.errors import (
    AuthenticationError,
    InfrastructureError,
    LendingError,
    NotFoundError,
    ValidationError,
)
from services.lending.src.lending.domain.models import (
    LiquidationOpportunity,
    LiquidationPlan,
    PoolReserve,
)


class TestPoolReserve:
    def test_borrow_rate_by_mode(self):
        pool = PoolReserve(
            id="p1",
            asset="USDC",
            chain="ethereum",
            ltv=Decimal("0.8"),
            liquidation_threshold=Decimal("0.85"),
            liquidation_bonus=Decimal("0.05"),
            borrow_rate_variable=Decimal("0.055"),
            borrow_rate_stable=Decimal("0.065"),
        )
        assert pool.borrow_rate("variable") == Decimal("0.055")
        assert pool.borrow_rate("stable") == Decimal("0.065")

    def test_defaults(self):
        pool = PoolReserve(
            id="p1",
            asset="USDC",
            chain="ethereum",
            ltv=Decimal("0.8"),
            liquidation_threshold=Decimal("0.85"),
            liquidation_bonus=Decimal("0.05"),
        )
        assert pool.is_active
        assert not pool.is_frozen
        assert pool.borrowing_enabled
        assert pool.available_liquidity == 0


class TestLiquidationOpportunity:
    def test_potential_profit(self):
        opportunity = LiquidationOpportunity(
            user_id="alice",
            chain="ethereum",
            health_factor=Decimal("0.9"),
            total_debt_usd=Decimal("800"),
            total_collateral_usd=Decimal("1000"),
            liquidation_bonus=Decimal("0.05"),
            max_liquidation_amount=Decimal("400"),
        )
        assert opportunity.potential_profit == Decimal("20")


class TestLiquidationPlan:
    def test_was_clamped(self):
        plan = LiquidationPlan(
            debt_to_cover=Decimal("400"),
            collateral_received=Decimal("420"),
            liquidation_bonus_amount=Decimal("20"),
            requested_debt_to_cover=Decimal("500"),
        )
        assert plan.was_clamped


class TestErrors:
    def test_status_codes(self):
        assert ValidationError("x").status_code == 400
        assert AuthenticationError("x").status_code == 401
        assert NotFoundError("x").status_code == 404
        assert InfrastructureError("x").status_code == 500

    def test_message_is_kept(self):
        error = ValidationError("Insufficient supplied amount")
        assert isinstance(error, LendingError)
        assert error.message == "Insufficient supplied amount"
        assert str(error) == "Insufficient supplied amount"
