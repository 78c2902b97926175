"""Liquidation scanning, execution and history endpoints."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.engine import Engine

from services.lending.src.lending.config import settings
from services.lending.src.lending.core.liquidations import LiquidationService
from services.lending.src.lending.routes.dependencies import get_current_user, get_db_engine
from services.lending.src.lending.routes.health_factors import status_to_response
from services.lending.src.lending.schemas.requests import ExecuteLiquidationRequest
from services.lending.src.lending.schemas.responses import (
    ExecuteLiquidationResponse,
    LiquidationCallResponse,
    LiquidationHistoryResponse,
    LiquidationOpportunityResponse,
    LiquidationTargetsResponse,
    UserHealthResponse,
)

router = APIRouter(prefix="/liquidations", tags=["liquidations"])


@router.get("/targets", response_model=LiquidationTargetsResponse)
def get_liquidation_targets(
    chain: str | None = Query(default=None),
    engine: Engine = Depends(get_db_engine),
) -> LiquidationTargetsResponse:
    """Liquidatable users ranked by potential profit."""
    opportunities = LiquidationService(engine).scan_targets(chain)
    return LiquidationTargetsResponse(
        count=len(opportunities),
        targets=[LiquidationOpportunityResponse.model_validate(o) for o in opportunities],
    )


@router.post("/execute", response_model=ExecuteLiquidationResponse)
def execute_liquidation(
    request: ExecuteLiquidationRequest,
    liquidator_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_db_engine),
) -> ExecuteLiquidationResponse:
    outcome = LiquidationService(engine).execute(
        liquidator_id=liquidator_id,
        target_user_id=request.target_user_id,
        collateral_asset=request.collateral_asset,
        debt_asset=request.debt_asset,
        debt_to_cover=request.debt_to_cover,
        chain=request.chain,
        debt_rate_mode=request.debt_rate_mode,
    )
    return ExecuteLiquidationResponse(
        message="Liquidation executed successfully",
        liquidation=LiquidationCallResponse.model_validate(outcome.call),
        debt_covered=outcome.plan.debt_to_cover,
        collateral_received=outcome.plan.collateral_received,
        was_clamped=outcome.plan.was_clamped,
        health_factor_status=outcome.health_factor.status,
    )


@router.get("/users/{user_id}/health", response_model=UserHealthResponse)
def check_user_health(
    user_id: str,
    chain: str = Query(default=settings.default_chain),
    engine: Engine = Depends(get_db_engine),
) -> UserHealthResponse:
    status = LiquidationService(engine).check_user_health(user_id, chain)
    return UserHealthResponse(health_factor=status_to_response(status))


@router.get("/history", response_model=LiquidationHistoryResponse)
def get_liquidation_history(
    user_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    engine: Engine = Depends(get_db_engine),
) -> LiquidationHistoryResponse:
    """Latest liquidations, optionally where `user_id` was target or liquidator."""
    calls = LiquidationService(engine).get_history(user_id, limit)
    return LiquidationHistoryResponse(
        liquidations=[LiquidationCallResponse.model_validate(c) for c in calls],
    )
