"""Recompute and cache a user's health factor after every balance change."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from sqlalchemy.engine import Engine

from services.lending.src.lending.db.health_factor_repository import HealthFactorRepository
from services.lending.src.lending.db.positions_repository import PositionsRepository
from services.lending.src.lending.domain.health_factor import UserRiskProfile
from services.lending.src.lending.domain.models import HealthFactorRecord
from services.lending.src.lending.utils.log_events import log_event
from services.lending.src.lending.utils.timestamps import utc_now

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_STALE = "stale"


@dataclass
class RecalculationResult:
    """Outcome of a recompute. `stale` means the previous cached record is still in place."""

    user_id: str
    chain: str
    status: str
    record: HealthFactorRecord | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class HealthFactorEngine:
    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utc_now):
        self.positions = PositionsRepository(engine)
        self.health_factors = HealthFactorRepository(engine)
        self.clock = clock

    def build_profile(self, user_id: str, chain: str) -> UserRiskProfile:
        """Current collateral (joined with risk parameters) and debt for a user."""
        return UserRiskProfile(
            user_id=user_id,
            chain=chain,
            collateral=self.positions.list_collateral(user_id, chain),
            debts=self.positions.list_borrows(user_id, chain),
        )

    def recalculate(self, user_id: str, chain: str) -> RecalculationResult:
        """
        Recompute and upsert the cached health factor for (user, chain).

        Never raises: a read or write failure is logged and reported as a
        `stale` result so the triggering operation still succeeds.
        """
        try:
            profile = self.build_profile(user_id, chain)
            record = profile.to_record(self.clock())
            self.health_factors.upsert(record)
        except Exception as e:
            log_event(
                logger,
                logging.ERROR,
                "health_factor.recalculation_failed",
                f"Health factor recalculation failed for {user_id} on {chain}: {e}",
                exc_info=True,
                user_id=user_id,
                chain=chain,
            )
            return RecalculationResult(
                user_id=user_id, chain=chain, status=STATUS_STALE, error=str(e)
            )

        log_event(
            logger,
            logging.INFO,
            "health_factor.recalculated",
            f"Health factor for {user_id} on {chain}: {record.health_factor:.4f}",
            user_id=user_id,
            chain=chain,
            health_factor=str(record.health_factor),
            total_debt_usd=str(record.total_debt_usd),
        )
        return RecalculationResult(
            user_id=user_id, chain=chain, status=STATUS_OK, record=record
        )

    def get_cached(self, user_id: str, chain: str) -> HealthFactorRecord | None:
        return self.health_factors.get(user_id, chain)
