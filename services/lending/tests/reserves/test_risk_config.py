from decimal import Decimal

import pytest
from pydantic import ValidationError

from services.lending.src.lending.reserves import get_default_risk_config
from services.lending.src.lending.reserves.config import (
    AssetRiskConfig,
    ChainReservesConfig,
    RiskConfig,
)


@pytest.fixture
def config():
    return get_default_risk_config()


class TestDefaultRiskConfig:
    def test_chains(self, config):
        assert [c.chain_id for c in config.chains] == ["ethereum", "base"]
        assert config.get_chain("polygon") is None

    def test_threshold_above_ltv(self, config):
        for chain in config.chains:
            for asset in chain.assets:
                assert asset.liquidation_threshold > asset.ltv, asset.symbol

    def test_riskier_assets_carry_larger_bonus(self, config):
        ethereum = config.get_chain("ethereum")
        usdc = ethereum.get_asset("USDC")
        auru = ethereum.get_asset("AURU")

        assert auru.liquidation_bonus == Decimal("0.15")
        assert auru.max_liquidation_ratio == Decimal("0.3")
        assert auru.liquidation_bonus > usdc.liquidation_bonus
        assert ethereum.get_asset("WBTC") is None


class TestPoolReserves:
    def test_accounting_derived_from_initial_amounts(self, config):
        reserves = {r.asset: r for r in config.pool_reserves("base")}

        usdc = reserves["USDC"]
        assert usdc.chain == "base"
        assert usdc.total_supply == Decimal("1200000")
        assert usdc.total_borrowed == Decimal("720000")
        assert usdc.available_liquidity == Decimal("480000")
        assert usdc.utilization_rate == Decimal("0.6")

    def test_all_chains(self, config):
        assert len(config.pool_reserves()) == 7

    def test_empty_pool_has_zero_utilization(self):
        asset = AssetRiskConfig(
            symbol="NEW",
            ltv=Decimal("0.5"),
            liquidation_threshold=Decimal("0.6"),
            liquidation_bonus=Decimal("0.1"),
        )
        reserves = RiskConfig(
            chains=[ChainReservesConfig(chain_id="ethereum", assets=[asset])]
        ).pool_reserves()
        assert reserves[0].utilization_rate == 0


class TestLiquidationThresholds:
    def test_rows(self, config):
        rows = config.liquidation_thresholds("ethereum")

        assert ("XAUT", "ethereum", Decimal("0.10"), Decimal("0.4")) in rows
        assert len(rows) == 5


class TestValidation:
    def test_ltv_out_of_range(self):
        with pytest.raises(ValidationError):
            AssetRiskConfig(
                symbol="BAD",
                ltv=Decimal("1.5"),
                liquidation_threshold=Decimal("0.9"),
                liquidation_bonus=Decimal("0.05"),
            )
