"""
Pool reserve and liquidation parameter seeding job.

Creates the tables if needed and upserts the default risk parameters for
each configured chain. Pool accounting of existing reserves is preserved.

Usage:
    python -m services.lending.src.lending.jobs.seed_reserves
    python -m services.lending.src.lending.jobs.seed_reserves --chain base
"""
import argparse
import logging
import sys

from sqlalchemy.engine import Engine

from services.lending.src.lending.db.engine import get_engine, init_db
from services.lending.src.lending.db.health_factor_repository import HealthFactorRepository
from services.lending.src.lending.db.positions_repository import PositionsRepository
from services.lending.src.lending.reserves.config import RiskConfig, get_default_risk_config
from services.lending.src.lending.utils.log_events import configure_logging

configure_logging()
logger = logging.getLogger(__name__)


def seed_reserves(
    engine: Engine,
    chain_id: str | None = None,
    config: RiskConfig | None = None,
) -> dict[str, int]:
    """
    Upsert pool reserves and liquidation thresholds.

    Args:
        engine: Target database engine (tables must exist)
        chain_id: Only seed this chain (default: all configured chains)
        config: Risk configuration (default: get_default_risk_config())

    Returns:
        Dict with counts of 'pool_reserves' and 'liquidation_thresholds' rows written
    """
    config = config or get_default_risk_config()
    if chain_id is not None and config.get_chain(chain_id) is None:
        raise ValueError(f"Unknown chain: {chain_id}")

    reserves = config.pool_reserves(chain_id)
    thresholds = config.liquidation_thresholds(chain_id)

    pool_count = PositionsRepository(engine).upsert_pool_reserves(reserves)
    threshold_count = HealthFactorRepository(engine).upsert_liquidation_thresholds(thresholds)

    logger.info(
        f"Seeded {len(reserves)} pool reserves and {len(thresholds)} liquidation thresholds"
        f" for {chain_id or 'all chains'}"
    )
    return {"pool_reserves": pool_count, "liquidation_thresholds": threshold_count}


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Seed pool reserves and liquidation parameters"
    )
    parser.add_argument(
        "--chain",
        type=str,
        help="Chain to seed (default: all chains)",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="Database URL (default: from settings)",
    )

    args = parser.parse_args()

    try:
        engine = get_engine(args.database_url)
        init_db(engine)
        seed_reserves(engine, args.chain)
        return 0
    except Exception as e:
        logger.error(f"Seeding failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
