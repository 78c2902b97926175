from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from services.lending.src.lending.config import settings


class SupplyWithdrawRequest(BaseModel):
    action: Literal["supply", "withdraw"]
    asset: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    chain: str = settings.default_chain


class BorrowRepayRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["borrow", "repay"]
    asset: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    rate_mode: Literal["variable", "stable"] = Field("variable", alias="rateMode")
    chain: str = settings.default_chain


class CollateralUsageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    asset: str = Field(..., min_length=1)
    use_as_collateral: bool = Field(..., alias="useAsCollateral")
    chain: str = settings.default_chain


class ExecuteLiquidationRequest(BaseModel):
    """Liquidator is the authenticated caller."""

    target_user_id: str = Field(..., min_length=1)
    collateral_asset: str = Field(..., min_length=1)
    debt_asset: str = Field(..., min_length=1)
    debt_to_cover: Decimal = Field(..., gt=0)
    chain: str = settings.default_chain
    debt_rate_mode: Literal["variable", "stable"] = "variable"
