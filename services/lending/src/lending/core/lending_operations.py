"""Supply, withdraw, borrow and repay against the lending pools."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.engine import Engine

from services.lending.src.lending.core.health_factor_engine import (
    HealthFactorEngine,
    RecalculationResult,
)
from services.lending.src.lending.db.positions_repository import PositionsRepository
from services.lending.src.lending.domain.errors import ValidationError
from services.lending.src.lending.domain.models import RATE_MODES, PoolReserve
from services.lending.src.lending.utils.log_events import log_event

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    action: str
    asset: str
    chain: str
    amount: Decimal  # amount actually applied (repay may be less than requested)
    position_balance: Decimal  # position size after the operation
    health_factor: RecalculationResult

    @property
    def message(self) -> str:
        return f"{self.action} operation completed successfully"


class LendingOperations:
    """
    Balance-changing operations for a user.

    Validation happens before any mutation. After the mutation commits, the
    user's health factor is recomputed; a failed recompute does not undo the
    operation and is reported through `OperationResult.health_factor`.
    """

    def __init__(self, engine: Engine, health_engine: HealthFactorEngine | None = None):
        self.positions = PositionsRepository(engine)
        self.health_engine = health_engine or HealthFactorEngine(engine)

    def _get_pool(self, asset: str, chain: str) -> PoolReserve:
        pool = self.positions.get_pool_reserve(asset, chain)
        if pool is None:
            raise ValidationError(f"Pool reserve not found for {asset} on {chain}")
        if not pool.is_active:
            raise ValidationError(f"Pool for {asset} is currently inactive")
        return pool

    @staticmethod
    def _require_positive(amount: Decimal) -> None:
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")

    @staticmethod
    def _require_rate_mode(rate_mode: str) -> None:
        if rate_mode not in RATE_MODES:
            raise ValidationError(f"Invalid rate mode: {rate_mode}")

    def _finish(
        self,
        action: str,
        user_id: str,
        pool: PoolReserve,
        amount: Decimal,
        balance: Decimal,
    ) -> OperationResult:
        recalculation = self.health_engine.recalculate(user_id, pool.chain)
        log_event(
            logger,
            logging.INFO,
            f"lending.{action}",
            f"{action} {amount} {pool.asset} on {pool.chain} for {user_id}",
            user_id=user_id,
            asset=pool.asset,
            chain=pool.chain,
            amount=str(amount),
            health_factor_status=recalculation.status,
        )
        return OperationResult(
            action=action,
            asset=pool.asset,
            chain=pool.chain,
            amount=amount,
            position_balance=balance,
            health_factor=recalculation,
        )

    def supply(self, user_id: str, asset: str, amount: Decimal, chain: str) -> OperationResult:
        self._require_positive(amount)
        pool = self._get_pool(asset, chain)
        if pool.is_frozen:
            raise ValidationError(f"Pool for {asset} is frozen")

        balance = self.positions.record_supply(user_id, pool, amount)
        return self._finish("supply", user_id, pool, amount, balance)

    def withdraw(self, user_id: str, asset: str, amount: Decimal, chain: str) -> OperationResult:
        self._require_positive(amount)
        pool = self._get_pool(asset, chain)

        supply = self.positions.get_supply(user_id, asset, chain)
        if supply is None:
            raise ValidationError("No supply position found for this asset")
        if amount > supply.supplied_amount:
            raise ValidationError("Insufficient supplied amount")

        if supply.used_as_collateral:
            profile = self.health_engine.build_profile(user_id, chain)
            if not profile.can_withdraw(asset, amount):
                raise ValidationError(
                    "Withdrawal would put your position at risk of liquidation"
                )

        remaining = self.positions.record_withdraw(user_id, pool, amount)
        return self._finish("withdraw", user_id, pool, amount, remaining)

    def borrow(
        self,
        user_id: str,
        asset: str,
        amount: Decimal,
        chain: str,
        rate_mode: str = "variable",
    ) -> OperationResult:
        self._require_positive(amount)
        self._require_rate_mode(rate_mode)
        pool = self._get_pool(asset, chain)
        if pool.is_frozen:
            raise ValidationError(f"Pool for {asset} is frozen")
        if not pool.borrowing_enabled:
            raise ValidationError(f"Borrowing is disabled for {asset}")
        if amount > pool.available_liquidity:
            raise ValidationError(
                f"Insufficient liquidity. Available: {pool.available_liquidity}"
            )

        profile = self.health_engine.build_profile(user_id, chain)
        if profile.available_borrow_usd < amount:
            raise ValidationError(
                "Insufficient borrowing power. Please add more collateral."
            )

        balance = self.positions.record_borrow(user_id, pool, amount, rate_mode)
        return self._finish("borrow", user_id, pool, amount, balance)

    def repay(
        self,
        user_id: str,
        asset: str,
        amount: Decimal,
        chain: str,
        rate_mode: str = "variable",
    ) -> OperationResult:
        self._require_positive(amount)
        self._require_rate_mode(rate_mode)
        pool = self._get_pool(asset, chain)

        repaid = self.positions.record_repay(user_id, pool, amount, rate_mode)
        borrow = self.positions.get_borrow(user_id, asset, chain, rate_mode)
        balance = borrow.borrowed_amount if borrow is not None else Decimal(0)
        return self._finish("repay", user_id, pool, repaid, balance)

    def set_collateral_usage(
        self, user_id: str, asset: str, chain: str, used_as_collateral: bool
    ) -> RecalculationResult:
        """Toggle whether a supply counts as collateral; disabling is refused if unsafe."""
        supply = self.positions.get_supply(user_id, asset, chain)
        if supply is None:
            raise ValidationError("No supply position found for this asset")

        if supply.used_as_collateral and not used_as_collateral:
            profile = self.health_engine.build_profile(user_id, chain)
            if not profile.can_withdraw(asset, supply.supplied_amount):
                raise ValidationError(
                    "Disabling this collateral would put your position at risk of liquidation"
                )

        self.positions.set_collateral_usage(user_id, asset, chain, used_as_collateral)
        return self.health_engine.recalculate(user_id, chain)
