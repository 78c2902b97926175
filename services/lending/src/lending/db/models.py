from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
)

metadata = MetaData()

# Per-asset risk parameters and pool accounting (externally configured)
pool_reserves = Table(
    "pool_reserves",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("asset", String(20), nullable=False),
    Column("chain", String(32), nullable=False),
    Column("total_supply", Numeric(38, 18), nullable=False, default=0),
    Column("total_borrowed", Numeric(38, 18), nullable=False, default=0),
    Column("available_liquidity", Numeric(38, 18), nullable=False, default=0),
    Column("utilization_rate", Numeric(38, 18), nullable=False, default=0),
    # Rates as decimals (0.05 = 5% APR)
    Column("supply_rate", Numeric(38, 18), nullable=False, default=0),
    Column("borrow_rate_variable", Numeric(38, 18), nullable=False, default=0),
    Column("borrow_rate_stable", Numeric(38, 18), nullable=False, default=0),
    # Risk parameters as fractions (0.80 = 80%)
    Column("ltv", Numeric(38, 18), nullable=False),
    Column("liquidation_threshold", Numeric(38, 18), nullable=False),
    Column("liquidation_bonus", Numeric(38, 18), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("is_frozen", Boolean, nullable=False, default=False),
    Column("borrowing_enabled", Boolean, nullable=False, default=True),
    Column("last_update_timestamp", DateTime(timezone=True), nullable=True),
    UniqueConstraint("asset", "chain", name="uq_pool_reserve_key"),
)

user_supplies = Table(
    "user_supplies",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(64), nullable=False),
    Column("asset", String(20), nullable=False),
    Column("chain", String(32), nullable=False),
    Column("supplied_amount", Numeric(38, 18), nullable=False),
    Column("supply_rate_at_deposit", Numeric(38, 18), nullable=False, default=0),
    Column("used_as_collateral", Boolean, nullable=False, default=True),
    Column("last_interest_update", DateTime(timezone=True), nullable=True),
    UniqueConstraint("user_id", "asset", "chain", name="uq_user_supply_key"),
    Index("ix_supplies_user_chain", "user_id", "chain"),
)

user_borrows = Table(
    "user_borrows",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(64), nullable=False),
    Column("asset", String(20), nullable=False),
    Column("chain", String(32), nullable=False),
    Column("borrowed_amount", Numeric(38, 18), nullable=False),
    Column("rate_mode", String(10), nullable=False),  # 'variable' or 'stable'
    Column("borrow_rate_at_creation", Numeric(38, 18), nullable=False, default=0),
    Column("last_interest_update", DateTime(timezone=True), nullable=True),
    UniqueConstraint(
        "user_id", "asset", "chain", "rate_mode", name="uq_user_borrow_key"
    ),
    Index("ix_borrows_user_chain", "user_id", "chain"),
)

# Derived cache, fully overwritten after every balance change
user_health_factors = Table(
    "user_health_factors",
    metadata,
    Column("user_id", String(64), primary_key=True),
    Column("chain", String(32), primary_key=True),
    Column("health_factor", Numeric(38, 18), nullable=False),
    Column("total_collateral_usd", Numeric(38, 18), nullable=False),
    Column("total_debt_usd", Numeric(38, 18), nullable=False),
    Column("available_borrow_usd", Numeric(38, 18), nullable=False),
    Column("ltv", Numeric(38, 18), nullable=False),
    Column("liquidation_threshold", Numeric(38, 18), nullable=False),
    Column("last_calculated_at", DateTime(timezone=True), nullable=False),
    Index("ix_health_factors_hf", "chain", "health_factor"),
)

liquidation_thresholds = Table(
    "liquidation_thresholds",
    metadata,
    Column("asset", String(20), primary_key=True),
    Column("chain", String(32), primary_key=True),
    Column("liquidation_bonus", Numeric(38, 18), nullable=False),
    # Close factor: max share of debt repayable in one liquidation
    Column("max_liquidation_ratio", Numeric(38, 18), nullable=False),
)

liquidation_calls = Table(
    "liquidation_calls",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(64), nullable=False),  # liquidated user
    Column("liquidator_id", String(64), nullable=True),
    Column("collateral_asset", String(20), nullable=False),
    Column("debt_asset", String(20), nullable=False),
    Column("chain", String(32), nullable=False),
    Column("debt_to_cover", Numeric(38, 18), nullable=False),
    Column("liquidated_collateral", Numeric(38, 18), nullable=False),
    Column("liquidation_bonus_amount", Numeric(38, 18), nullable=False),
    Column("health_factor_before", Numeric(38, 18), nullable=False),
    Column("health_factor_after", Numeric(38, 18), nullable=True),
    Column("tx_ref", String(100), nullable=True),
    Column("status", String(12), nullable=False),  # pending, completed, failed
    Column("error", String(500), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Index("idx_liquidations_user", "user_id", "created_at"),
    Index("idx_liquidations_liquidator", "liquidator_id", "created_at"),
)

risk_alerts = Table(
    "risk_alerts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(64), nullable=False),
    Column("chain", String(32), nullable=False),
    Column("alert_type", String(32), nullable=False),
    Column("severity", String(12), nullable=False),
    Column("message", String(500), nullable=False),
    Column("health_factor", Numeric(38, 18), nullable=False),
    Column("acknowledged", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("idx_alerts_user", "user_id", "created_at"),
)

api_tokens = Table(
    "api_tokens",
    metadata,
    # sha256 hex digest of the bearer token
    Column("token_hash", String(64), primary_key=True),
    Column("user_id", String(64), nullable=False),
    Column("revoked", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)
