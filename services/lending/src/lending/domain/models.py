from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

RATE_MODES = ("variable", "stable")


@dataclass
class PoolReserve:
    """Pool accounting plus the asset's risk parameters for one chain."""

    id: str
    asset: str
    chain: str
    ltv: Decimal
    liquidation_threshold: Decimal
    liquidation_bonus: Decimal
    total_supply: Decimal = Decimal(0)
    total_borrowed: Decimal = Decimal(0)
    available_liquidity: Decimal = Decimal(0)
    utilization_rate: Decimal = Decimal(0)
    supply_rate: Decimal = Decimal(0)
    borrow_rate_variable: Decimal = Decimal(0)
    borrow_rate_stable: Decimal = Decimal(0)
    is_active: bool = True
    is_frozen: bool = False
    borrowing_enabled: bool = True
    last_update_timestamp: Optional[datetime] = None

    def borrow_rate(self, rate_mode: str) -> Decimal:
        if rate_mode == "stable":
            return self.borrow_rate_stable
        return self.borrow_rate_variable


@dataclass
class SupplyPosition:
    user_id: str
    asset: str
    chain: str
    supplied_amount: Decimal
    used_as_collateral: bool = True
    supply_rate_at_deposit: Decimal = Decimal(0)
    last_interest_update: Optional[datetime] = None


@dataclass
class BorrowPosition:
    user_id: str
    asset: str
    chain: str
    borrowed_amount: Decimal
    rate_mode: str = "variable"
    borrow_rate_at_creation: Decimal = Decimal(0)
    last_interest_update: Optional[datetime] = None


@dataclass
class HealthFactorRecord:
    """Cached risk snapshot for a (user, chain) pair."""

    user_id: str
    chain: str
    health_factor: Decimal
    total_collateral_usd: Decimal
    total_debt_usd: Decimal
    available_borrow_usd: Decimal
    ltv: Decimal  # current debt / collateral
    liquidation_threshold: Decimal  # collateral-weighted average
    last_calculated_at: datetime


@dataclass
class LiquidationEligibility:
    user_id: str
    chain: str
    health_factor: Decimal
    total_debt_usd: Decimal
    total_collateral_usd: Decimal
    liquidatable: bool
    liquidation_bonus: Decimal  # e.g., 0.05 = 5% extra collateral
    max_liquidation_amount: Decimal


@dataclass
class LiquidationOpportunity:
    user_id: str
    chain: str
    health_factor: Decimal
    total_debt_usd: Decimal
    total_collateral_usd: Decimal
    liquidation_bonus: Decimal
    max_liquidation_amount: Decimal

    @property
    def potential_profit(self) -> Decimal:
        return self.max_liquidation_amount * self.liquidation_bonus


@dataclass
class LiquidationPlan:
    """Amounts for one liquidation call after clamping to the eligible maximum."""

    debt_to_cover: Decimal
    collateral_received: Decimal
    liquidation_bonus_amount: Decimal
    requested_debt_to_cover: Decimal

    @property
    def was_clamped(self) -> bool:
        return self.debt_to_cover < self.requested_debt_to_cover


@dataclass
class LiquidationCall:
    """Audit row for an attempted liquidation."""

    id: str
    user_id: str
    liquidator_id: Optional[str]
    collateral_asset: str
    debt_asset: str
    chain: str
    debt_to_cover: Decimal
    liquidated_collateral: Decimal
    liquidation_bonus_amount: Decimal
    health_factor_before: Decimal
    status: str  # 'pending', 'completed', 'failed'
    created_at: datetime
    health_factor_after: Optional[Decimal] = None
    tx_ref: Optional[str] = None
    error: Optional[str] = None
    completed_at: Optional[datetime] = None


@dataclass
class RiskAlert:
    id: str
    user_id: str
    chain: str
    alert_type: str  # 'health_factor_warning', 'liquidation_risk'
    severity: str  # 'high', 'critical'
    message: str
    health_factor: Decimal
    created_at: datetime
    acknowledged: bool = False
