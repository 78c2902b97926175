"""Liquidation target scanning and execution."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from services.lending.src.lending.config import settings
from services.lending.src.lending.core.health_factor_engine import (
    HealthFactorEngine,
    RecalculationResult,
)
from services.lending.src.lending.db.health_factor_repository import HealthFactorRepository
from services.lending.src.lending.db.liquidation_repository import (
    LiquidationRepository,
    new_liquidation_call,
)
from services.lending.src.lending.db.positions_repository import PositionsRepository
from services.lending.src.lending.domain.errors import (
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from services.lending.src.lending.domain.health_factor import (
    classify_risk_level,
    evaluate_eligibility,
    plan_liquidation,
)
from services.lending.src.lending.domain.models import (
    RATE_MODES,
    HealthFactorRecord,
    LiquidationCall,
    LiquidationEligibility,
    LiquidationOpportunity,
    LiquidationPlan,
)
from services.lending.src.lending.utils.log_events import log_event
from services.lending.src.lending.utils.timestamps import is_stale

logger = logging.getLogger(__name__)


@dataclass
class LiquidationOutcome:
    call: LiquidationCall
    plan: LiquidationPlan
    health_factor: RecalculationResult


@dataclass
class UserHealthStatus:
    record: HealthFactorRecord
    risk_level: str
    is_liquidatable: bool
    is_stale: bool


class LiquidationService:
    def __init__(
        self,
        engine: Engine,
        health_engine: HealthFactorEngine | None = None,
        max_age_seconds: int | None = None,
    ):
        self.positions = PositionsRepository(engine)
        self.health_factors = HealthFactorRepository(engine)
        self.liquidations = LiquidationRepository(engine)
        self.health_engine = health_engine or HealthFactorEngine(engine)
        self.max_age_seconds = (
            max_age_seconds
            if max_age_seconds is not None
            else settings.health_factor_max_age_seconds
        )

    def check_eligibility(self, user_id: str, chain: str) -> LiquidationEligibility | None:
        """
        Eligibility of a user from the cached health factor.

        Returns:
            None when the user has no cached record
        """
        record = self.health_factors.get(user_id, chain)
        if record is None:
            return None
        avg_bonus, avg_ratio = self.health_factors.get_liquidation_parameters(chain)
        return evaluate_eligibility(record, avg_bonus, avg_ratio)

    def scan_targets(self, chain: str | None = None) -> list[LiquidationOpportunity]:
        """Liquidatable users ranked by potential profit (max amount x bonus), highest first."""
        candidates = self.health_factors.list_liquidation_candidates(chain)
        params_by_chain: dict[str, tuple[Decimal | None, Decimal | None]] = {}

        opportunities = []
        for record in candidates:
            if record.chain not in params_by_chain:
                params_by_chain[record.chain] = (
                    self.health_factors.get_liquidation_parameters(record.chain)
                )
            avg_bonus, avg_ratio = params_by_chain[record.chain]
            eligibility = evaluate_eligibility(record, avg_bonus, avg_ratio)
            if not eligibility.liquidatable:
                continue
            opportunities.append(
                LiquidationOpportunity(
                    user_id=record.user_id,
                    chain=record.chain,
                    health_factor=record.health_factor,
                    total_debt_usd=record.total_debt_usd,
                    total_collateral_usd=record.total_collateral_usd,
                    liquidation_bonus=eligibility.liquidation_bonus,
                    max_liquidation_amount=eligibility.max_liquidation_amount,
                )
            )

        opportunities.sort(key=lambda o: o.potential_profit, reverse=True)
        log_event(
            logger,
            logging.INFO,
            "liquidation.scan_completed",
            f"Found {len(opportunities)} liquidation opportunities",
            chain=chain or "all",
            candidates=len(candidates),
            opportunities=len(opportunities),
        )
        return opportunities

    def execute(
        self,
        liquidator_id: str,
        target_user_id: str,
        collateral_asset: str,
        debt_asset: str,
        debt_to_cover: Decimal,
        chain: str,
        debt_rate_mode: str = "variable",
    ) -> LiquidationOutcome:
        """
        Liquidate part of a target's debt in exchange for collateral plus bonus.

        Every check runs before any balance moves. The audit row and both
        balance decrements commit together; if that transaction fails a
        separate `failed` audit row is written and the error is re-raised.

        Args:
            liquidator_id: Authenticated user repaying the debt
            target_user_id: Owner of the unhealthy position
            collateral_asset: Asset seized from the target's supply
            debt_asset: Asset of the borrow being repaid
            debt_to_cover: Requested amount; clamped to the eligible maximum
            chain: Chain of both positions
            debt_rate_mode: Rate mode of the borrow row to reduce

        Returns:
            LiquidationOutcome with the completed audit row and the target's new health factor
        """
        if liquidator_id == target_user_id:
            raise ValidationError("Cannot liquidate your own position")
        if debt_to_cover <= 0:
            raise ValidationError("Debt to cover must be positive")
        if debt_rate_mode not in RATE_MODES:
            raise ValidationError(f"Invalid rate mode: {debt_rate_mode}")

        for asset in {collateral_asset, debt_asset}:
            if self.positions.get_pool_reserve(asset, chain) is None:
                raise ValidationError(f"Pool reserve not found for {asset} on {chain}")

        # Eligibility is decided on a fresh snapshot, not on a possibly stale cache
        refreshed = self.health_engine.recalculate(target_user_id, chain)
        if not refreshed.ok:
            raise InfrastructureError(
                "Could not refresh health factor for liquidation target"
            )

        eligibility = self.check_eligibility(target_user_id, chain)
        if eligibility is None:
            raise ValidationError("User is not eligible for liquidation")
        plan = plan_liquidation(eligibility, debt_to_cover)

        supply = self.positions.get_supply(target_user_id, collateral_asset, chain)
        if supply is None or supply.supplied_amount < plan.collateral_received:
            raise ValidationError("Insufficient collateral to liquidate")
        borrow = self.positions.get_borrow(
            target_user_id, debt_asset, chain, debt_rate_mode
        )
        if borrow is None or borrow.borrowed_amount < plan.debt_to_cover:
            raise ValidationError("Debt amount exceeds user borrowed amount")

        call = new_liquidation_call(
            target_user_id=target_user_id,
            liquidator_id=liquidator_id,
            collateral_asset=collateral_asset,
            debt_asset=debt_asset,
            chain=chain,
            debt_to_cover=plan.debt_to_cover,
            liquidated_collateral=plan.collateral_received,
            liquidation_bonus_amount=plan.liquidation_bonus_amount,
            health_factor_before=eligibility.health_factor,
        )

        try:
            call = self.liquidations.apply_liquidation(call, debt_rate_mode)
        except ValidationError as e:
            self._record_failure(call, str(e))
            raise
        except SQLAlchemyError as e:
            self._record_failure(call, str(e))
            raise InfrastructureError("Liquidation failed") from e

        after = self.health_engine.recalculate(target_user_id, chain)
        if after.ok:
            self.liquidations.set_health_factor_after(
                call.id, after.record.health_factor
            )
            call.health_factor_after = after.record.health_factor

        log_event(
            logger,
            logging.INFO,
            "liquidation.completed",
            f"Liquidated {plan.debt_to_cover} {debt_asset} of {target_user_id} on {chain}",
            call_id=call.id,
            liquidator_id=liquidator_id,
            target_user_id=target_user_id,
            debt_to_cover=str(plan.debt_to_cover),
            collateral_received=str(plan.collateral_received),
            clamped=plan.was_clamped,
        )
        return LiquidationOutcome(call=call, plan=plan, health_factor=after)

    def _record_failure(self, call: LiquidationCall, error: str) -> None:
        log_event(
            logger,
            logging.ERROR,
            "liquidation.failed",
            f"Liquidation {call.id} of {call.user_id} failed: {error}",
            call_id=call.id,
            target_user_id=call.user_id,
            chain=call.chain,
        )
        try:
            self.liquidations.record_failure(call, error)
        except SQLAlchemyError:
            logger.exception(f"Could not record failed liquidation {call.id}")

    def check_user_health(self, user_id: str, chain: str) -> UserHealthStatus:
        record = self.health_factors.get(user_id, chain)
        if record is None:
            raise NotFoundError("Health factor not found")
        eligibility = self.check_eligibility(user_id, chain)
        return UserHealthStatus(
            record=record,
            risk_level=classify_risk_level(record.health_factor),
            is_liquidatable=bool(eligibility and eligibility.liquidatable),
            is_stale=is_stale(record.last_calculated_at, self.max_age_seconds),
        )

    def get_history(self, user_id: str | None = None, limit: int = 100) -> list[LiquidationCall]:
        return self.liquidations.get_history(user_id, limit)
