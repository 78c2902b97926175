"""
Health factor monitor job.

Recomputes the cached health factor of every user holding a position and
raises risk alerts for positions in the danger or liquidation band. Alert
ids are derived from (user, chain, alert type, time bucket), so rerunning
within the same interval does not duplicate alerts.

Usage:
    python -m services.lending.src.lending.jobs.monitor_health_factors
    python -m services.lending.src.lending.jobs.monitor_health_factors --chain base
"""
import argparse
import logging
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy.engine import Engine

from services.lending.src.lending.config import settings
from services.lending.src.lending.core.health_factor_engine import HealthFactorEngine
from services.lending.src.lending.db.engine import get_engine, init_db
from services.lending.src.lending.db.health_factor_repository import HealthFactorRepository
from services.lending.src.lending.db.positions_repository import PositionsRepository
from services.lending.src.lending.domain.health_factor import classify_risk_level
from services.lending.src.lending.domain.models import RiskAlert
from services.lending.src.lending.utils.log_events import configure_logging, log_event
from services.lending.src.lending.utils.timestamps import floor_to_interval, utc_now

configure_logging()
logger = logging.getLogger(__name__)

ALERT_NAMESPACE = uuid.UUID("5b7e1f0c-3c1a-4d47-9a0e-6f1d2f1f7a01")


@dataclass
class MonitorSummary:
    users_checked: int = 0
    alerts_created: int = 0
    failures: int = 0
    risk_levels: dict[str, int] = field(default_factory=dict)


def build_alert(
    user_id: str,
    chain: str,
    health_factor: Decimal,
    risk_level: str,
    now: datetime,
    interval_minutes: int,
) -> RiskAlert | None:
    """Alert for the danger and liquidation bands; None otherwise."""
    if risk_level == "liquidation":
        alert_type, severity = "liquidation_risk", "critical"
        message = (
            "URGENT: Your position is at risk of liquidation. "
            f"Health factor: {health_factor:.3f}"
        )
    elif risk_level == "danger":
        alert_type, severity = "health_factor_warning", "high"
        message = (
            f"WARNING: Your health factor is low ({health_factor:.3f}). "
            "Consider reducing borrowed amounts."
        )
    else:
        return None

    bucket = floor_to_interval(now, interval_minutes)
    alert_id = uuid.uuid5(
        ALERT_NAMESPACE, f"{user_id}:{chain}:{alert_type}:{bucket.isoformat()}"
    )
    return RiskAlert(
        id=str(alert_id),
        user_id=user_id,
        chain=chain,
        alert_type=alert_type,
        severity=severity,
        message=message,
        health_factor=health_factor,
        created_at=now,
    )


def monitor_health_factors(
    engine: Engine,
    chain_id: str | None = None,
    interval_minutes: int | None = None,
) -> MonitorSummary:
    """
    Recompute every (user, chain) with a position and store risk alerts.

    Args:
        engine: Database engine
        chain_id: Restrict to one chain (default: all chains)
        interval_minutes: Alert de-duplication window (default: monitor interval)

    Returns:
        MonitorSummary with counts per risk level
    """
    interval = interval_minutes or settings.health_monitor_interval_minutes
    health_engine = HealthFactorEngine(engine)
    alerts_repo = HealthFactorRepository(engine)
    now = utc_now()

    summary = MonitorSummary()
    alerts: list[RiskAlert] = []

    for user_id, chain in PositionsRepository(engine).list_user_chains(chain_id):
        result = health_engine.recalculate(user_id, chain)
        summary.users_checked += 1
        if not result.ok:
            summary.failures += 1
            continue

        health_factor = result.record.health_factor
        level = classify_risk_level(health_factor)
        summary.risk_levels[level] = summary.risk_levels.get(level, 0) + 1

        alert = build_alert(user_id, chain, health_factor, level, now, interval)
        if alert is not None:
            alerts.append(alert)
            log_event(
                logger,
                logging.WARNING,
                "health_factor.alert",
                f"Generated {level} alert for user {user_id}: HF {health_factor:.3f}",
                user_id=user_id,
                chain=chain,
                alert_type=alert.alert_type,
            )

    summary.alerts_created = alerts_repo.insert_alerts(alerts)

    log_event(
        logger,
        logging.INFO,
        "health_factor.monitor_completed",
        f"Checked {summary.users_checked} positions, {summary.alerts_created} new alerts",
        chain=chain_id or "all",
        users_checked=summary.users_checked,
        alerts_created=summary.alerts_created,
        failures=summary.failures,
    )
    return summary


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Recompute health factors and raise risk alerts"
    )
    parser.add_argument(
        "--chain",
        type=str,
        help="Chain to monitor (default: all chains)",
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
        summary = monitor_health_factors(engine, args.chain)
        for level, count in sorted(summary.risk_levels.items()):
            logger.info(f"  {level}: {count}")
        return 0 if summary.failures == 0 else 1
    except Exception as e:
        logger.error(f"Health factor monitor failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
