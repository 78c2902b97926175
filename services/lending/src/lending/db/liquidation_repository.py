"""Repository for liquidation execution and its audit trail."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import delete, or_, select, update
from sqlalchemy.engine import Engine

from services.lending.src.lending.db.models import (
    liquidation_calls,
    pool_reserves,
    user_borrows,
    user_supplies,
)
from services.lending.src.lending.db.positions_repository import BORROW_DUST
from services.lending.src.lending.domain.errors import ValidationError
from services.lending.src.lending.domain.models import LiquidationCall
from services.lending.src.lending.utils.timestamps import ensure_utc, utc_now


def _row_to_call(row) -> LiquidationCall:
    return LiquidationCall(
        id=row.id,
        user_id=row.user_id,
        liquidator_id=row.liquidator_id,
        collateral_asset=row.collateral_asset,
        debt_asset=row.debt_asset,
        chain=row.chain,
        debt_to_cover=row.debt_to_cover,
        liquidated_collateral=row.liquidated_collateral,
        liquidation_bonus_amount=row.liquidation_bonus_amount,
        health_factor_before=row.health_factor_before,
        status=row.status,
        created_at=ensure_utc(row.created_at),
        health_factor_after=row.health_factor_after,
        tx_ref=row.tx_ref,
        error=row.error,
        completed_at=ensure_utc(row.completed_at),
    )


def _call_to_row(call: LiquidationCall) -> dict:
    return {
        "id": call.id,
        "user_id": call.user_id,
        "liquidator_id": call.liquidator_id,
        "collateral_asset": call.collateral_asset,
        "debt_asset": call.debt_asset,
        "chain": call.chain,
        "debt_to_cover": call.debt_to_cover,
        "liquidated_collateral": call.liquidated_collateral,
        "liquidation_bonus_amount": call.liquidation_bonus_amount,
        "health_factor_before": call.health_factor_before,
        "health_factor_after": call.health_factor_after,
        "tx_ref": call.tx_ref,
        "status": call.status,
        "error": call.error,
        "created_at": call.created_at,
        "completed_at": call.completed_at,
    }


class LiquidationRepository:
    def __init__(self, engine: Engine):
        self.engine = engine

    def apply_liquidation(self, call: LiquidationCall, rate_mode: str) -> LiquidationCall:
        """
        Record the audit row and move balances in a single transaction.

        The supply and borrow decrements are guarded by the current balances;
        if either guard fails the whole transaction rolls back, including the
        audit row, and ValidationError is raised. A supply left at zero and a
        borrow left at dust are deleted.

        Returns:
            The completed LiquidationCall
        """
        completed_at = utc_now()
        tx_ref = f"liquidation_{call.id}_{int(completed_at.timestamp() * 1000)}"

        with self.engine.begin() as conn:
            conn.execute(liquidation_calls.insert().values(_call_to_row(call)))

            s = user_supplies.c
            supply_result = conn.execute(
                update(user_supplies)
                .where(s.user_id == call.user_id)
                .where(s.asset == call.collateral_asset)
                .where(s.chain == call.chain)
                .where(s.supplied_amount >= call.liquidated_collateral)
                .values(
                    supplied_amount=s.supplied_amount - call.liquidated_collateral,
                    last_interest_update=completed_at,
                )
            )
            if supply_result.rowcount == 0:
                raise ValidationError("Insufficient collateral to liquidate")
            conn.execute(
                delete(user_supplies)
                .where(s.user_id == call.user_id)
                .where(s.asset == call.collateral_asset)
                .where(s.chain == call.chain)
                .where(s.supplied_amount <= 0)
            )

            b = user_borrows.c
            borrow_result = conn.execute(
                update(user_borrows)
                .where(b.user_id == call.user_id)
                .where(b.asset == call.debt_asset)
                .where(b.chain == call.chain)
                .where(b.rate_mode == rate_mode)
                .where(b.borrowed_amount >= call.debt_to_cover)
                .values(
                    borrowed_amount=b.borrowed_amount - call.debt_to_cover,
                    last_interest_update=completed_at,
                )
            )
            if borrow_result.rowcount == 0:
                raise ValidationError("Debt amount exceeds user borrowed amount")
            conn.execute(
                delete(user_borrows)
                .where(b.user_id == call.user_id)
                .where(b.asset == call.debt_asset)
                .where(b.chain == call.chain)
                .where(b.rate_mode == rate_mode)
                .where(b.borrowed_amount <= BORROW_DUST)
            )

            # Repaid debt returns to the debt pool; seized collateral leaves the user's supply
            p = pool_reserves.c
            conn.execute(
                update(pool_reserves)
                .where(p.asset == call.debt_asset)
                .where(p.chain == call.chain)
                .values(
                    total_borrowed=p.total_borrowed - call.debt_to_cover,
                    available_liquidity=p.available_liquidity + call.debt_to_cover,
                    last_update_timestamp=completed_at,
                )
            )
            conn.execute(
                update(pool_reserves)
                .where(p.asset == call.collateral_asset)
                .where(p.chain == call.chain)
                .values(
                    total_supply=p.total_supply - call.liquidated_collateral,
                    available_liquidity=p.available_liquidity - call.liquidated_collateral,
                    last_update_timestamp=completed_at,
                )
            )

            conn.execute(
                update(liquidation_calls)
                .where(liquidation_calls.c.id == call.id)
                .values(status="completed", completed_at=completed_at, tx_ref=tx_ref)
            )

        call.status = "completed"
        call.completed_at = completed_at
        call.tx_ref = tx_ref
        return call

    def record_failure(self, call: LiquidationCall, error: str) -> LiquidationCall:
        """Persist a failed attempt for reconciliation (after the main transaction rolled back)."""
        call.status = "failed"
        call.error = error[:500]
        with self.engine.begin() as conn:
            conn.execute(liquidation_calls.insert().values(_call_to_row(call)))
        return call

    def set_health_factor_after(self, call_id: str, health_factor: Decimal) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                update(liquidation_calls)
                .where(liquidation_calls.c.id == call_id)
                .values(health_factor_after=health_factor)
            )

    def get(self, call_id: str) -> LiquidationCall | None:
        stmt = select(liquidation_calls).where(liquidation_calls.c.id == call_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
            return _row_to_call(row) if row is not None else None

    def get_history(
        self, user_id: str | None = None, limit: int = 100
    ) -> list[LiquidationCall]:
        """Most recent calls, optionally where the user was the target or the liquidator."""
        stmt = select(liquidation_calls)
        if user_id:
            stmt = stmt.where(
                or_(
                    liquidation_calls.c.user_id == user_id,
                    liquidation_calls.c.liquidator_id == user_id,
                )
            )
        stmt = stmt.order_by(liquidation_calls.c.created_at.desc()).limit(limit)

        with self.engine.connect() as conn:
            return [_row_to_call(row) for row in conn.execute(stmt)]


def new_liquidation_call(
    target_user_id: str,
    liquidator_id: str | None,
    collateral_asset: str,
    debt_asset: str,
    chain: str,
    debt_to_cover: Decimal,
    liquidated_collateral: Decimal,
    liquidation_bonus_amount: Decimal,
    health_factor_before: Decimal,
    created_at: datetime | None = None,
) -> LiquidationCall:
    return LiquidationCall(
        id=str(uuid.uuid4()),
        user_id=target_user_id,
        liquidator_id=liquidator_id,
        collateral_asset=collateral_asset,
        debt_asset=debt_asset,
        chain=chain,
        debt_to_cover=debt_to_cover,
        liquidated_collateral=liquidated_collateral,
        liquidation_bonus_amount=liquidation_bonus_amount,
        health_factor_before=health_factor_before,
        status="pending",
        created_at=created_at or utc_now(),
    )
