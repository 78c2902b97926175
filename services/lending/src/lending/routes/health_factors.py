"""Cached health factor and risk alert API routes."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.engine import Engine

from services.lending.src.lending.config import settings
from services.lending.src.lending.core.health_factor_engine import HealthFactorEngine
from services.lending.src.lending.core.liquidations import UserHealthStatus
from services.lending.src.lending.db.health_factor_repository import HealthFactorRepository
from services.lending.src.lending.domain.health_factor import (
    classify_risk_level,
    is_liquidatable,
)
from services.lending.src.lending.domain.models import HealthFactorRecord
from services.lending.src.lending.routes.dependencies import get_current_user, get_db_engine
from services.lending.src.lending.schemas.responses import (
    HealthFactorResponse,
    RecalculationResponse,
    RiskAlertResponse,
    RiskAlertsResponse,
)
from services.lending.src.lending.utils.timestamps import is_stale

router = APIRouter(prefix="/health-factors", tags=["health-factors"])


def _to_response(
    record: HealthFactorRecord, risk_level: str, liquidatable: bool, stale: bool
) -> HealthFactorResponse:
    return HealthFactorResponse(
        user_id=record.user_id,
        chain=record.chain,
        health_factor=record.health_factor,
        total_collateral_usd=record.total_collateral_usd,
        total_debt_usd=record.total_debt_usd,
        available_borrow_usd=record.available_borrow_usd,
        ltv=record.ltv,
        liquidation_threshold=record.liquidation_threshold,
        last_calculated_at=record.last_calculated_at,
        risk_level=risk_level,
        is_liquidatable=liquidatable,
        is_stale=stale,
    )


def record_to_response(record: HealthFactorRecord) -> HealthFactorResponse:
    return _to_response(
        record,
        risk_level=classify_risk_level(record.health_factor),
        liquidatable=is_liquidatable(record.health_factor) and record.total_debt_usd > 0,
        stale=is_stale(record.last_calculated_at, settings.health_factor_max_age_seconds),
    )


def status_to_response(status: UserHealthStatus) -> HealthFactorResponse:
    """Response from an already evaluated health status."""
    return _to_response(
        status.record,
        risk_level=status.risk_level,
        liquidatable=status.is_liquidatable,
        stale=status.is_stale,
    )


@router.get("/{chain}/alerts", response_model=RiskAlertsResponse)
def get_risk_alerts(
    chain: str,
    user_id: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    engine: Engine = Depends(get_db_engine),
) -> RiskAlertsResponse:
    """Most recent risk alerts for a chain, newest first."""
    alerts = HealthFactorRepository(engine).list_alerts(chain, user_id, limit)
    return RiskAlertsResponse(
        chain=chain,
        alerts=[RiskAlertResponse.model_validate(a) for a in alerts],
    )


@router.get("/{chain}/{user_id}", response_model=HealthFactorResponse)
def get_health_factor(
    chain: str,
    user_id: str,
    engine: Engine = Depends(get_db_engine),
) -> HealthFactorResponse:
    record = HealthFactorRepository(engine).get(user_id, chain)
    if record is None:
        raise HTTPException(status_code=404, detail="Health factor not found")
    return record_to_response(record)


@router.post("/{chain}/{user_id}/recalculate", response_model=RecalculationResponse)
def recalculate_health_factor(
    chain: str,
    user_id: str,
    _caller: str = Depends(get_current_user),
    engine: Engine = Depends(get_db_engine),
) -> RecalculationResponse:
    """Recompute the cached health factor now; `status` is 'stale' if that failed."""
    result = HealthFactorEngine(engine).recalculate(user_id, chain)
    return RecalculationResponse(
        success=result.ok,
        status=result.status,
        error=result.error,
        health_factor=record_to_response(result.record) if result.record else None,
    )
