"""
Liquidation scan job.

Enumerates users whose cached health factor is below 1.0 and logs the
opportunities ranked by potential profit. Read-only.

Usage:
    python -m services.lending.src.lending.jobs.scan_liquidations
    python -m services.lending.src.lending.jobs.scan_liquidations --chain ethereum
"""
import argparse
import logging
import sys

from sqlalchemy.engine import Engine

from services.lending.src.lending.core.liquidations import LiquidationService
from services.lending.src.lending.db.engine import get_engine, init_db
from services.lending.src.lending.domain.models import LiquidationOpportunity
from services.lending.src.lending.utils.log_events import configure_logging

configure_logging()
logger = logging.getLogger(__name__)


def scan_liquidations(
    engine: Engine, chain_id: str | None = None
) -> list[LiquidationOpportunity]:
    opportunities = LiquidationService(engine).scan_targets(chain_id)
    for o in opportunities:
        logger.info(
            f"{o.user_id} on {o.chain}: HF {o.health_factor:.4f}, "
            f"max {o.max_liquidation_amount:.2f}, profit {o.potential_profit:.2f}"
        )
    return opportunities


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Scan cached health factors for liquidation opportunities"
    )
    parser.add_argument(
        "--chain",
        type=str,
        help="Chain to scan (default: all chains)",
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
        scan_liquidations(engine, args.chain)
        return 0
    except Exception as e:
        logger.error(f"Liquidation scan failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
