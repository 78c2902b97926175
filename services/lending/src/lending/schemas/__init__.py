from services.lending.src.lending.schemas.requests import (
    BorrowRepayRequest,
    CollateralUsageRequest,
    ExecuteLiquidationRequest,
    SupplyWithdrawRequest,
)
from services.lending.src.lending.schemas.responses import (
    ExecuteLiquidationResponse,
    HealthFactorResponse,
    LiquidationCallResponse,
    LiquidationHistoryResponse,
    LiquidationOpportunityResponse,
    LiquidationTargetsResponse,
    OperationResponse,
    RecalculationResponse,
    RiskAlertResponse,
    RiskAlertsResponse,
    UserHealthResponse,
)

__all__ = [
    "BorrowRepayRequest",
    "CollateralUsageRequest",
    "ExecuteLiquidationRequest",
    "SupplyWithdrawRequest",
    "ExecuteLiquidationResponse",
    "HealthFactorResponse",
    "LiquidationCallResponse",
    "LiquidationHistoryResponse",
    "LiquidationOpportunityResponse",
    "LiquidationTargetsResponse",
    "OperationResponse",
    "RecalculationResponse",
    "RiskAlertResponse",
    "RiskAlertsResponse",
    "UserHealthResponse",
]
