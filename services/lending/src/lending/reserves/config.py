from decimal import Decimal

from pydantic import BaseModel, Field

from services.lending.src.lending.domain.models import PoolReserve


class AssetRiskConfig(BaseModel):
    symbol: str
    ltv: Decimal = Field(..., ge=0, le=1, description="Max borrow per unit of collateral")
    liquidation_threshold: Decimal = Field(..., ge=0, le=1)
    liquidation_bonus: Decimal = Field(..., ge=0)
    max_liquidation_ratio: Decimal = Field(Decimal("0.5"), gt=0, le=1)
    supply_rate: Decimal = Decimal(0)
    borrow_rate_variable: Decimal = Decimal(0)
    borrow_rate_stable: Decimal = Decimal(0)
    initial_supply: Decimal = Decimal(0)
    initial_borrowed: Decimal = Decimal(0)
    borrowing_enabled: bool = True


class ChainReservesConfig(BaseModel):
    chain_id: str
    assets: list[AssetRiskConfig]

    def get_asset(self, symbol: str) -> AssetRiskConfig | None:
        for asset in self.assets:
            if asset.symbol == symbol:
                return asset
        return None


class RiskConfig(BaseModel):
    chains: list[ChainReservesConfig]

    def get_chain(self, chain_id: str) -> ChainReservesConfig | None:
        for chain in self.chains:
            if chain.chain_id == chain_id:
                return chain
        return None

    def pool_reserves(self, chain_id: str | None = None) -> list[PoolReserve]:
        reserves = []
        for chain in self.chains:
            if chain_id is not None and chain.chain_id != chain_id:
                continue
            for a in chain.assets:
                available = a.initial_supply - a.initial_borrowed
                utilization = (
                    a.initial_borrowed / a.initial_supply if a.initial_supply > 0 else Decimal(0)
                )
                reserves.append(
                    PoolReserve(
                        id="",
                        asset=a.symbol,
                        chain=chain.chain_id,
                        ltv=a.ltv,
                        liquidation_threshold=a.liquidation_threshold,
                        liquidation_bonus=a.liquidation_bonus,
                        total_supply=a.initial_supply,
                        total_borrowed=a.initial_borrowed,
                        available_liquidity=available,
                        utilization_rate=utilization,
                        supply_rate=a.supply_rate,
                        borrow_rate_variable=a.borrow_rate_variable,
                        borrow_rate_stable=a.borrow_rate_stable,
                        borrowing_enabled=a.borrowing_enabled,
                    )
                )
        return reserves

    def liquidation_thresholds(
        self, chain_id: str | None = None
    ) -> list[tuple[str, str, Decimal, Decimal]]:
        """(asset, chain, liquidation_bonus, max_liquidation_ratio) rows."""
        return [
            (a.symbol, chain.chain_id, a.liquidation_bonus, a.max_liquidation_ratio)
            for chain in self.chains
            if chain_id is None or chain.chain_id == chain_id
            for a in chain.assets
        ]


def _asset(symbol, ltv, lt, bonus, ratio, rates, supply, borrowed) -> AssetRiskConfig:
    supply_rate, variable, stable = rates
    return AssetRiskConfig(
        symbol=symbol,
        ltv=Decimal(ltv),
        liquidation_threshold=Decimal(lt),
        liquidation_bonus=Decimal(bonus),
        max_liquidation_ratio=Decimal(ratio),
        supply_rate=Decimal(supply_rate),
        borrow_rate_variable=Decimal(variable),
        borrow_rate_stable=Decimal(stable),
        initial_supply=Decimal(supply),
        initial_borrowed=Decimal(borrowed),
    )


def get_default_risk_config() -> RiskConfig:
    """Stablecoin and gold-backed reserves on Ethereum mainnet and Base."""
    return RiskConfig(
        chains=[
            ChainReservesConfig(
                chain_id="ethereum",
                assets=[
                    _asset("USDC", "0.85", "0.90", "0.05", "0.5", ("0.045", "0.055", "0.065"), 2500000, 1750000),
                    _asset("USDT", "0.85", "0.90", "0.05", "0.5", ("0.038", "0.048", "0.058"), 1800000, 1260000),
                    _asset("DAI", "0.80", "0.85", "0.05", "0.5", ("0.052", "0.062", "0.072"), 3200000, 1920000),
                    _asset("XAUT", "0.75", "0.80", "0.10", "0.4", ("0.088", "0.098", "0.108"), 950000, 665000),
                    _asset("AURU", "0.65", "0.70", "0.15", "0.3", ("0.125", "0.135", "0.145"), 500000, 200000),
                ],
            ),
            ChainReservesConfig(
                chain_id="base",
                assets=[
                    _asset("USDC", "0.85", "0.90", "0.05", "0.5", ("0.042", "0.052", "0.062"), 1200000, 720000),
                    _asset("USDT", "0.85", "0.90", "0.05", "0.5", ("0.035", "0.045", "0.055"), 800000, 480000),
                ],
            ),
        ],
    )
