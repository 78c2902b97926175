from services.lending.src.lending.reserves.config import (
    RiskConfig,
    get_default_risk_config,
)

__all__ = ["RiskConfig", "get_default_risk_config"]
