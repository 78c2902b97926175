from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class HealthFactorResponse(BaseModel):
    """Cached health factor for a (user, chain) pair."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    chain: str
    health_factor: Decimal
    total_collateral_usd: Decimal
    total_debt_usd: Decimal
    available_borrow_usd: Decimal
    ltv: Decimal
    liquidation_threshold: Decimal
    last_calculated_at: datetime
    risk_level: str
    is_liquidatable: bool
    is_stale: bool


class OperationResponse(BaseModel):
    """Result of supply, withdraw, borrow or repay."""

    success: bool = True
    message: str
    action: str
    asset: str
    chain: str
    amount: Decimal
    position_balance: Decimal
    # 'ok' when the cached health factor was refreshed, 'stale' otherwise
    health_factor_status: str
    health_factor: Decimal | None = None


class RecalculationResponse(BaseModel):
    success: bool
    status: str
    error: str | None = None
    health_factor: HealthFactorResponse | None = None


class LiquidationOpportunityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    chain: str
    health_factor: Decimal
    total_debt_usd: Decimal
    total_collateral_usd: Decimal
    liquidation_bonus: Decimal
    max_liquidation_amount: Decimal
    potential_profit: Decimal


class LiquidationTargetsResponse(BaseModel):
    success: bool = True
    count: int
    targets: list[LiquidationOpportunityResponse]


class LiquidationCallResponse(BaseModel):
    """Audit row of a liquidation attempt."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    liquidator_id: str | None = None
    collateral_asset: str
    debt_asset: str
    chain: str
    debt_to_cover: Decimal
    liquidated_collateral: Decimal
    liquidation_bonus_amount: Decimal
    health_factor_before: Decimal
    health_factor_after: Decimal | None = None
    status: str
    tx_ref: str | None = None
    error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class ExecuteLiquidationResponse(BaseModel):
    success: bool = True
    message: str
    liquidation: LiquidationCallResponse
    debt_covered: Decimal
    collateral_received: Decimal
    was_clamped: bool
    health_factor_status: str


class LiquidationHistoryResponse(BaseModel):
    success: bool = True
    liquidations: list[LiquidationCallResponse]


class UserHealthResponse(BaseModel):
    success: bool = True
    health_factor: HealthFactorResponse


class RiskAlertResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    chain: str
    alert_type: str
    severity: str
    message: str
    health_factor: Decimal
    acknowledged: bool
    created_at: datetime


class RiskAlertsResponse(BaseModel):
    chain: str
    alerts: list[RiskAlertResponse]
