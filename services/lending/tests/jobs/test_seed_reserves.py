from decimal import Decimal

import pytest

from services.lending.src.lending.jobs.seed_reserves import seed_reserves
from services.lending.src.lending.reserves.config import (
    AssetRiskConfig,
    ChainReservesConfig,
    RiskConfig,
)


class TestSeedReserves:
    def test_seeds_all_chains(self, sqlite_engine, positions, health_factors):
        counts = seed_reserves(sqlite_engine)

        assert counts == {"pool_reserves": 7, "liquidation_thresholds": 7}
        usdc = positions.get_pool_reserve("USDC", "ethereum")
        assert float(usdc.ltv) == pytest.approx(0.85)
        assert float(usdc.liquidation_threshold) == pytest.approx(0.90)
        assert positions.get_pool_reserve("USDT", "base") is not None
        assert positions.get_pool_reserve("XAUT", "base") is None

        bonus, ratio = health_factors.get_liquidation_parameters("ethereum")
        assert float(bonus) == pytest.approx(0.08)
        assert float(ratio) == pytest.approx(0.44)

    def test_single_chain(self, sqlite_engine, positions):
        counts = seed_reserves(sqlite_engine, "base")

        assert counts == {"pool_reserves": 2, "liquidation_thresholds": 2}
        assert positions.get_pool_reserve("USDC", "ethereum") is None

    def test_unknown_chain(self, sqlite_engine):
        with pytest.raises(ValueError, match="Unknown chain"):
            seed_reserves(sqlite_engine, "solana")

    def test_rerun_keeps_pool_accounting(self, sqlite_engine, positions):
        config = RiskConfig(
            chains=[
                ChainReservesConfig(
                    chain_id="ethereum",
                    assets=[
                        AssetRiskConfig(
                            symbol="DAI",
                            ltv=Decimal("0.8"),
                            liquidation_threshold=Decimal("0.85"),
                            liquidation_bonus=Decimal("0.05"),
                            initial_supply=Decimal("1000"),
                        )
                    ],
                )
            ]
        )
        seed_reserves(sqlite_engine, config=config)
        positions.record_supply("alice", positions.get_pool_reserve("DAI", "ethereum"), Decimal("500"))

        config.chains[0].assets[0].ltv = Decimal("0.75")
        seed_reserves(sqlite_engine, config=config)

        dai = positions.get_pool_reserve("DAI", "ethereum")
        assert float(dai.ltv) == pytest.approx(0.75)
        assert dai.total_supply == Decimal("1500")
