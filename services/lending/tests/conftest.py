from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from services.lending.src.lending.db.engine import init_db
from services.lending.src.lending.db.health_factor_repository import HealthFactorRepository
from services.lending.src.lending.db.positions_repository import PositionsRepository
from services.lending.src.lending.domain.models import PoolReserve


def make_pool(
    asset: str = "USDC",
    chain: str = "ethereum",
    ltv: str = "0.8",
    liquidation_threshold: str = "0.85",
    liquidation_bonus: str = "0.05",
    liquidity: str = "1000000",
    **kwargs,
) -> PoolReserve:
    amount = Decimal(liquidity)
    return PoolReserve(
        id="",
        asset=asset,
        chain=chain,
        ltv=Decimal(ltv),
        liquidation_threshold=Decimal(liquidation_threshold),
        liquidation_bonus=Decimal(liquidation_bonus),
        total_supply=amount,
        available_liquidity=amount,
        **kwargs,
    )


@pytest.fixture
def sqlite_engine():
    # One shared connection so every thread (TestClient included) sees the same database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def positions(sqlite_engine):
    return PositionsRepository(sqlite_engine)


@pytest.fixture
def health_factors(sqlite_engine):
    return HealthFactorRepository(sqlite_engine)


@pytest.fixture
def stable_pools(positions, health_factors):
    """USDC and DAI on ethereum at LTV 0.8 / threshold 0.85, with liquidation parameters."""
    positions.upsert_pool_reserves([make_pool("USDC"), make_pool("DAI")])
    health_factors.upsert_liquidation_thresholds([
        ("USDC", "ethereum", Decimal("0.05"), Decimal("0.5")),
        ("DAI", "ethereum", Decimal("0.05"), Decimal("0.5")),
    ])
    return {
        "USDC": positions.get_pool_reserve("USDC", "ethereum"),
        "DAI": positions.get_pool_reserve("DAI", "ethereum"),
    }


@pytest.fixture
def pool_factory():
    return make_pool
