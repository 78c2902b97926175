"""Repository for the health factor cache, liquidation parameters and risk alerts."""

from decimal import Decimal
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine

from services.lending.src.lending.db.models import (
    liquidation_thresholds,
    risk_alerts,
    user_health_factors,
)
from services.lending.src.lending.domain.health_factor import LIQUIDATION_HEALTH_FACTOR
from services.lending.src.lending.domain.models import HealthFactorRecord, RiskAlert
from services.lending.src.lending.utils.timestamps import ensure_utc


def _row_to_record(row) -> HealthFactorRecord:
    return HealthFactorRecord(
        user_id=row.user_id,
        chain=row.chain,
        health_factor=row.health_factor,
        total_collateral_usd=row.total_collateral_usd,
        total_debt_usd=row.total_debt_usd,
        available_borrow_usd=row.available_borrow_usd,
        ltv=row.ltv,
        liquidation_threshold=row.liquidation_threshold,
        last_calculated_at=ensure_utc(row.last_calculated_at),
    )


class HealthFactorRepository:
    """Health factor cache: one row per (user, chain), last writer wins."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    def upsert(self, record: HealthFactorRecord) -> int:
        row = {
            "user_id": record.user_id,
            "chain": record.chain,
            "health_factor": record.health_factor,
            "total_collateral_usd": record.total_collateral_usd,
            "total_debt_usd": record.total_debt_usd,
            "available_borrow_usd": record.available_borrow_usd,
            "ltv": record.ltv,
            "liquidation_threshold": record.liquidation_threshold,
            "last_calculated_at": record.last_calculated_at,
        }

        with self.engine.begin() as conn:
            if self._is_sqlite:
                return self._upsert_sqlite(conn, [row])
            else:
                return self._upsert_postgres(conn, [row])

    def _upsert_postgres(self, conn: Connection, rows: list[dict]) -> int:
        stmt = pg_insert(user_health_factors).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "chain"],
            set_={
                "health_factor": stmt.excluded.health_factor,
                "total_collateral_usd": stmt.excluded.total_collateral_usd,
                "total_debt_usd": stmt.excluded.total_debt_usd,
                "available_borrow_usd": stmt.excluded.available_borrow_usd,
                "ltv": stmt.excluded.ltv,
                "liquidation_threshold": stmt.excluded.liquidation_threshold,
                "last_calculated_at": stmt.excluded.last_calculated_at,
            },
        )
        result = conn.execute(stmt)
        return result.rowcount

    def _upsert_sqlite(self, conn: Connection, rows: list[dict]) -> int:
        stmt = sqlite_insert(user_health_factors).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "chain"],
            set_={
                "health_factor": stmt.excluded.health_factor,
                "total_collateral_usd": stmt.excluded.total_collateral_usd,
                "total_debt_usd": stmt.excluded.total_debt_usd,
                "available_borrow_usd": stmt.excluded.available_borrow_usd,
                "ltv": stmt.excluded.ltv,
                "liquidation_threshold": stmt.excluded.liquidation_threshold,
                "last_calculated_at": stmt.excluded.last_calculated_at,
            },
        )
        result = conn.execute(stmt)
        return result.rowcount

    def get(self, user_id: str, chain: str) -> HealthFactorRecord | None:
        stmt = (
            select(user_health_factors)
            .where(user_health_factors.c.user_id == user_id)
            .where(user_health_factors.c.chain == chain)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
            return _row_to_record(row) if row is not None else None

    def list_liquidation_candidates(
        self, chain: str | None = None
    ) -> list[HealthFactorRecord]:
        """Records with HF < 1.0 and outstanding debt, lowest HF first."""
        c = user_health_factors.c
        stmt = (
            select(user_health_factors)
            .where(c.health_factor < LIQUIDATION_HEALTH_FACTOR)
            .where(c.total_debt_usd > 0)
            .order_by(c.health_factor.asc(), c.user_id)
        )
        if chain is not None:
            stmt = stmt.where(c.chain == chain)

        with self.engine.connect() as conn:
            return [_row_to_record(row) for row in conn.execute(stmt)]

    # Liquidation parameters

    def upsert_liquidation_thresholds(
        self, rows: Sequence[tuple[str, str, Decimal, Decimal]]
    ) -> int:
        """Rows are (asset, chain, liquidation_bonus, max_liquidation_ratio)."""
        if not rows:
            return 0

        values = [
            {
                "asset": asset,
                "chain": chain,
                "liquidation_bonus": bonus,
                "max_liquidation_ratio": ratio,
            }
            for asset, chain, bonus, ratio in rows
        ]
        insert = sqlite_insert if self._is_sqlite else pg_insert
        with self.engine.begin() as conn:
            stmt = insert(liquidation_thresholds).values(values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["asset", "chain"],
                set_={
                    "liquidation_bonus": stmt.excluded.liquidation_bonus,
                    "max_liquidation_ratio": stmt.excluded.max_liquidation_ratio,
                },
            )
            result = conn.execute(stmt)
            return result.rowcount

    def get_liquidation_parameters(
        self, chain: str
    ) -> tuple[Decimal | None, Decimal | None]:
        """
        Average liquidation bonus and close factor across a chain's assets.

        Returns:
            (avg_bonus, avg_max_ratio); both None if the chain has no rows
        """
        stmt = select(
            func.avg(liquidation_thresholds.c.liquidation_bonus).label("avg_bonus"),
            func.avg(liquidation_thresholds.c.max_liquidation_ratio).label("avg_ratio"),
        ).where(liquidation_thresholds.c.chain == chain)

        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
            if row is None:
                return (None, None)
            avg_bonus = Decimal(str(row.avg_bonus)) if row.avg_bonus is not None else None
            avg_ratio = Decimal(str(row.avg_ratio)) if row.avg_ratio is not None else None
            return (avg_bonus, avg_ratio)

    # Risk alerts

    def insert_alerts(self, alerts: Sequence[RiskAlert]) -> int:
        """
        Insert alerts, skipping ids that already exist.

        Returns:
            Number of rows inserted
        """
        if not alerts:
            return 0

        rows = [
            {
                "id": a.id,
                "user_id": a.user_id,
                "chain": a.chain,
                "alert_type": a.alert_type,
                "severity": a.severity,
                "message": a.message,
                "health_factor": a.health_factor,
                "acknowledged": a.acknowledged,
                "created_at": a.created_at,
            }
            for a in alerts
        ]
        insert = sqlite_insert if self._is_sqlite else pg_insert
        with self.engine.begin() as conn:
            stmt = insert(risk_alerts).values(rows)
            stmt = stmt.on_conflict_do_nothing(index_elements=["id"])
            result = conn.execute(stmt)
            return result.rowcount

    def list_alerts(
        self, chain: str, user_id: str | None = None, limit: int = 50
    ) -> list[RiskAlert]:
        stmt = select(risk_alerts).where(risk_alerts.c.chain == chain)
        if user_id:
            stmt = stmt.where(risk_alerts.c.user_id == user_id)
        stmt = stmt.order_by(risk_alerts.c.created_at.desc()).limit(limit)

        with self.engine.connect() as conn:
            return [
                RiskAlert(
                    id=row.id,
                    user_id=row.user_id,
                    chain=row.chain,
                    alert_type=row.alert_type,
                    severity=row.severity,
                    message=row.message,
                    health_factor=row.health_factor,
                    created_at=ensure_utc(row.created_at),
                    acknowledged=row.acknowledged,
                )
                for row in conn.execute(stmt)
            ]
