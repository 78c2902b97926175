"""Supply, withdraw, borrow and repay endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.engine import Engine

from services.lending.src.lending.core.lending_operations import (
    LendingOperations,
    OperationResult,
)
from services.lending.src.lending.routes.dependencies import get_current_user, get_db_engine
from services.lending.src.lending.routes.health_factors import record_to_response
from services.lending.src.lending.schemas.requests import (
    BorrowRepayRequest,
    CollateralUsageRequest,
    SupplyWithdrawRequest,
)
from services.lending.src.lending.schemas.responses import (
    OperationResponse,
    RecalculationResponse,
)

router = APIRouter(tags=["lending"])


def result_to_response(result: OperationResult) -> OperationResponse:
    record = result.health_factor.record
    return OperationResponse(
        message=result.message,
        action=result.action,
        asset=result.asset,
        chain=result.chain,
        amount=result.amount,
        position_balance=result.position_balance,
        health_factor_status=result.health_factor.status,
        health_factor=record.health_factor if record is not None else None,
    )


@router.post("/supply-withdraw", response_model=OperationResponse)
def supply_withdraw(
    request: SupplyWithdrawRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_db_engine),
) -> OperationResponse:
    operations = LendingOperations(engine)
    if request.action == "supply":
        result = operations.supply(user_id, request.asset, request.amount, request.chain)
    else:
        result = operations.withdraw(user_id, request.asset, request.amount, request.chain)
    return result_to_response(result)


@router.post("/borrow-repay", response_model=OperationResponse)
def borrow_repay(
    request: BorrowRepayRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_db_engine),
) -> OperationResponse:
    operations = LendingOperations(engine)
    if request.action == "borrow":
        result = operations.borrow(
            user_id, request.asset, request.amount, request.chain, request.rate_mode
        )
    else:
        result = operations.repay(
            user_id, request.asset, request.amount, request.chain, request.rate_mode
        )
    return result_to_response(result)


@router.post("/collateral", response_model=RecalculationResponse)
def set_collateral_usage(
    request: CollateralUsageRequest,
    user_id: str = Depends(get_current_user),
    engine: Engine = Depends(get_db_engine),
) -> RecalculationResponse:
    """Enable or disable a supply as collateral."""
    result = LendingOperations(engine).set_collateral_usage(
        user_id, request.asset, request.chain, request.use_as_collateral
    )
    return RecalculationResponse(
        success=True,
        status=result.status,
        error=result.error,
        health_factor=record_to_response(result.record) if result.record else None,
    )
