"""Health factor calculation and liquidation eligibility."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from services.lending.src.lending.domain.errors import ValidationError
from services.lending.src.lending.domain.models import (
    BorrowPosition,
    HealthFactorRecord,
    LiquidationEligibility,
    LiquidationPlan,
)

# Reported when there is no debt or no collateral ("no liquidation risk")
HEALTH_FACTOR_SENTINEL = Decimal("999")
LIQUIDATION_HEALTH_FACTOR = Decimal("1.0")

# Fallbacks when no liquidation_thresholds rows exist for a chain
DEFAULT_LIQUIDATION_BONUS = Decimal("0.05")
DEFAULT_MAX_LIQUIDATION_RATIO = Decimal("0.5")

# Risk level upper bounds (exclusive)
DANGER_HEALTH_FACTOR = Decimal("1.1")
WARNING_HEALTH_FACTOR = Decimal("1.3")


@dataclass
class CollateralPosition:
    """A supply row used as collateral, joined with its asset risk parameters."""

    asset: str
    amount: Decimal
    ltv: Decimal  # 0.80 = 80%
    liquidation_threshold: Decimal

    @property
    def usd_value(self) -> Decimal:
        # Amounts are treated as USD-pegged; no oracle lookup on this path
        return self.amount


@dataclass
class UserRiskProfile:
    """Aggregated borrowing risk for a user on one chain."""

    user_id: str
    chain: str
    collateral: list[CollateralPosition] = field(default_factory=list)
    debts: list[BorrowPosition] = field(default_factory=list)

    @property
    def total_collateral_usd(self) -> Decimal:
        return sum((p.usd_value for p in self.collateral), Decimal(0))

    @property
    def weighted_ltv(self) -> Decimal:
        """Σ(collateral_i × ltv_i)."""
        return sum((p.usd_value * p.ltv for p in self.collateral), Decimal(0))

    @property
    def weighted_liquidation_threshold(self) -> Decimal:
        """Σ(collateral_i × liquidationThreshold_i)."""
        return sum(
            (p.usd_value * p.liquidation_threshold for p in self.collateral),
            Decimal(0),
        )

    @property
    def total_debt_usd(self) -> Decimal:
        return sum((d.borrowed_amount for d in self.debts), Decimal(0))

    @property
    def avg_ltv(self) -> Decimal:
        if self.total_collateral_usd == 0:
            return Decimal(0)
        return self.weighted_ltv / self.total_collateral_usd

    @property
    def avg_liquidation_threshold(self) -> Decimal:
        if self.total_collateral_usd == 0:
            return Decimal(0)
        return self.weighted_liquidation_threshold / self.total_collateral_usd

    @property
    def health_factor(self) -> Decimal:
        """
        Calculate health factor.

        HF = (collateral × avgLiquidationThreshold) / debt

        Returns HEALTH_FACTOR_SENTINEL when debt or collateral is zero.
        """
        collateral = self.total_collateral_usd
        debt = self.total_debt_usd
        if debt > 0 and collateral > 0:
            return collateral * self.avg_liquidation_threshold / debt
        return HEALTH_FACTOR_SENTINEL

    @property
    def available_borrow_usd(self) -> Decimal:
        borrowable = self.total_collateral_usd * self.avg_ltv - self.total_debt_usd
        return max(Decimal(0), borrowable)

    @property
    def current_ltv(self) -> Decimal:
        """Debt as a fraction of collateral (0 without debt or collateral)."""
        collateral = self.total_collateral_usd
        debt = self.total_debt_usd
        if debt > 0 and collateral > 0:
            return debt / collateral
        return Decimal(0)

    @property
    def is_liquidatable(self) -> bool:
        return is_liquidatable(self.health_factor)

    @property
    def risk_level(self) -> str:
        return classify_risk_level(self.health_factor)

    def with_collateral_change(self, asset: str, delta: Decimal) -> "UserRiskProfile":
        """Return a copy with `delta` added to the collateral held in `asset`."""
        new_collateral = []
        for p in self.collateral:
            if p.asset == asset:
                new_collateral.append(
                    CollateralPosition(
                        asset=p.asset,
                        amount=p.amount + delta,
                        ltv=p.ltv,
                        liquidation_threshold=p.liquidation_threshold,
                    )
                )
            else:
                new_collateral.append(p)
        return UserRiskProfile(
            user_id=self.user_id,
            chain=self.chain,
            collateral=new_collateral,
            debts=list(self.debts),
        )

    def can_withdraw(self, asset: str, amount: Decimal) -> bool:
        """False if removing `amount` of `asset` collateral would expose the debt to liquidation."""
        if self.total_debt_usd == 0:
            return True
        after = self.with_collateral_change(asset, -amount)
        if after.total_collateral_usd <= 0:
            return False
        return not after.is_liquidatable

    def to_record(self, calculated_at: datetime) -> HealthFactorRecord:
        return HealthFactorRecord(
            user_id=self.user_id,
            chain=self.chain,
            health_factor=self.health_factor,
            total_collateral_usd=self.total_collateral_usd,
            total_debt_usd=self.total_debt_usd,
            available_borrow_usd=self.available_borrow_usd,
            ltv=self.current_ltv,
            liquidation_threshold=self.avg_liquidation_threshold,
            last_calculated_at=calculated_at,
        )


def is_liquidatable(health_factor: Decimal) -> bool:
    """True if HF < 1 (strict: exactly 1.0 is safe)."""
    return health_factor < LIQUIDATION_HEALTH_FACTOR


def classify_risk_level(health_factor: Decimal) -> str:
    if health_factor < LIQUIDATION_HEALTH_FACTOR:
        return "liquidation"
    if health_factor < DANGER_HEALTH_FACTOR:
        return "danger"
    if health_factor < WARNING_HEALTH_FACTOR:
        return "warning"
    return "safe"


def evaluate_eligibility(
    record: HealthFactorRecord,
    avg_liquidation_bonus: Decimal | None = None,
    avg_max_liquidation_ratio: Decimal | None = None,
) -> LiquidationEligibility:
    """
    Decide whether a cached health factor record can be liquidated.

    Args:
        record: Cached health factor for the target
        avg_liquidation_bonus: Chain average bonus (None -> 5%)
        avg_max_liquidation_ratio: Chain average close factor (None -> 50%)

    Returns:
        LiquidationEligibility; bonus and max amount are zero when not liquidatable
    """
    if not is_liquidatable(record.health_factor):
        return LiquidationEligibility(
            user_id=record.user_id,
            chain=record.chain,
            health_factor=record.health_factor,
            total_debt_usd=record.total_debt_usd,
            total_collateral_usd=record.total_collateral_usd,
            liquidatable=False,
            liquidation_bonus=Decimal(0),
            max_liquidation_amount=Decimal(0),
        )

    bonus = (
        avg_liquidation_bonus
        if avg_liquidation_bonus is not None
        else DEFAULT_LIQUIDATION_BONUS
    )
    ratio = (
        avg_max_liquidation_ratio
        if avg_max_liquidation_ratio is not None
        else DEFAULT_MAX_LIQUIDATION_RATIO
    )

    return LiquidationEligibility(
        user_id=record.user_id,
        chain=record.chain,
        health_factor=record.health_factor,
        total_debt_usd=record.total_debt_usd,
        total_collateral_usd=record.total_collateral_usd,
        liquidatable=True,
        liquidation_bonus=bonus,
        max_liquidation_amount=record.total_debt_usd * ratio,
    )


def plan_liquidation(
    eligibility: LiquidationEligibility, debt_to_cover: Decimal
) -> LiquidationPlan:
    """Clamp the requested debt to the eligible maximum and size the collateral seized."""
    if not eligibility.liquidatable:
        raise ValidationError("User is not eligible for liquidation")
    if debt_to_cover <= 0:
        raise ValidationError("Debt to cover must be positive")

    covered = min(debt_to_cover, eligibility.max_liquidation_amount)
    return LiquidationPlan(
        debt_to_cover=covered,
        collateral_received=covered * (1 + eligibility.liquidation_bonus),
        liquidation_bonus_amount=covered * eligibility.liquidation_bonus,
        requested_debt_to_cover=debt_to_cover,
    )
