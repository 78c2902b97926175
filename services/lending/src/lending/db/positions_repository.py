"""Repository for pool reserves and user supply/borrow positions."""

import uuid
from decimal import Decimal
from typing import Sequence

from sqlalchemy import case, delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine

from services.lending.src.lending.db.models import (
    pool_reserves,
    user_borrows,
    user_supplies,
)
from services.lending.src.lending.domain.errors import ValidationError
from services.lending.src.lending.domain.health_factor import CollateralPosition
from services.lending.src.lending.domain.models import (
    BorrowPosition,
    PoolReserve,
    SupplyPosition,
)
from services.lending.src.lending.utils.timestamps import ensure_utc, utc_now

# Borrow positions with less than this left after a repay are closed
BORROW_DUST = Decimal("0.01")


def _row_to_pool(row) -> PoolReserve:
    return PoolReserve(
        id=row.id,
        asset=row.asset,
        chain=row.chain,
        ltv=row.ltv,
        liquidation_threshold=row.liquidation_threshold,
        liquidation_bonus=row.liquidation_bonus,
        total_supply=row.total_supply,
        total_borrowed=row.total_borrowed,
        available_liquidity=row.available_liquidity,
        utilization_rate=row.utilization_rate,
        supply_rate=row.supply_rate,
        borrow_rate_variable=row.borrow_rate_variable,
        borrow_rate_stable=row.borrow_rate_stable,
        is_active=row.is_active,
        is_frozen=row.is_frozen,
        borrowing_enabled=row.borrowing_enabled,
        last_update_timestamp=ensure_utc(row.last_update_timestamp),
    )


def _row_to_supply(row) -> SupplyPosition:
    return SupplyPosition(
        user_id=row.user_id,
        asset=row.asset,
        chain=row.chain,
        supplied_amount=row.supplied_amount,
        used_as_collateral=row.used_as_collateral,
        supply_rate_at_deposit=row.supply_rate_at_deposit,
        last_interest_update=ensure_utc(row.last_interest_update),
    )


def _row_to_borrow(row) -> BorrowPosition:
    return BorrowPosition(
        user_id=row.user_id,
        asset=row.asset,
        chain=row.chain,
        borrowed_amount=row.borrowed_amount,
        rate_mode=row.rate_mode,
        borrow_rate_at_creation=row.borrow_rate_at_creation,
        last_interest_update=ensure_utc(row.last_interest_update),
    )


class PositionsRepository:
    """
    Reads and mutates pool reserves and user positions.

    Every balance change is a single SQL statement evaluated by the database
    (increment, or decrement guarded by a WHERE on the current balance) inside
    one transaction, so concurrent calls for the same user cannot lose updates.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._is_sqlite = "sqlite" in str(engine.url)

    def _insert(self, table):
        return sqlite_insert(table) if self._is_sqlite else pg_insert(table)

    # Pool reserves

    def upsert_pool_reserves(self, reserves: Sequence[PoolReserve]) -> int:
        """Insert or update risk parameters; pool accounting is left untouched on update."""
        if not reserves:
            return 0

        rows = []
        for r in reserves:
            rows.append({
                "id": r.id or str(uuid.uuid4()),
                "asset": r.asset,
                "chain": r.chain,
                "total_supply": r.total_supply,
                "total_borrowed": r.total_borrowed,
                "available_liquidity": r.available_liquidity,
                "utilization_rate": r.utilization_rate,
                "supply_rate": r.supply_rate,
                "borrow_rate_variable": r.borrow_rate_variable,
                "borrow_rate_stable": r.borrow_rate_stable,
                "ltv": r.ltv,
                "liquidation_threshold": r.liquidation_threshold,
                "liquidation_bonus": r.liquidation_bonus,
                "is_active": r.is_active,
                "is_frozen": r.is_frozen,
                "borrowing_enabled": r.borrowing_enabled,
                "last_update_timestamp": utc_now(),
            })

        with self.engine.begin() as conn:
            stmt = self._insert(pool_reserves).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=["asset", "chain"],
                set_={
                    "supply_rate": stmt.excluded.supply_rate,
                    "borrow_rate_variable": stmt.excluded.borrow_rate_variable,
                    "borrow_rate_stable": stmt.excluded.borrow_rate_stable,
                    "ltv": stmt.excluded.ltv,
                    "liquidation_threshold": stmt.excluded.liquidation_threshold,
                    "liquidation_bonus": stmt.excluded.liquidation_bonus,
                    "is_active": stmt.excluded.is_active,
                    "is_frozen": stmt.excluded.is_frozen,
                    "borrowing_enabled": stmt.excluded.borrowing_enabled,
                },
            )
            result = conn.execute(stmt)
            return result.rowcount

    def get_pool_reserve(self, asset: str, chain: str) -> PoolReserve | None:
        stmt = (
            select(pool_reserves)
            .where(pool_reserves.c.asset == asset)
            .where(pool_reserves.c.chain == chain)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
            return _row_to_pool(row) if row is not None else None

    def _adjust_pool(
        self,
        conn: Connection,
        pool_id: str,
        supply_delta: Decimal = Decimal(0),
        borrow_delta: Decimal = Decimal(0),
        liquidity_delta: Decimal = Decimal(0),
        min_liquidity: Decimal | None = None,
    ) -> bool:
        """Apply deltas to pool totals in one statement; returns False if the guard failed."""
        c = pool_reserves.c
        new_supply = c.total_supply + supply_delta
        new_borrowed = c.total_borrowed + borrow_delta
        stmt = (
            update(pool_reserves)
            .where(c.id == pool_id)
            .values(
                total_supply=new_supply,
                total_borrowed=new_borrowed,
                available_liquidity=c.available_liquidity + liquidity_delta,
                utilization_rate=case(
                    # x 1.0 keeps SQLite from integer-dividing whole amounts
                    (new_supply > 0, new_borrowed * Decimal("1.0") / new_supply),
                    else_=0,
                ),
                last_update_timestamp=utc_now(),
            )
        )
        if min_liquidity is not None:
            stmt = stmt.where(c.available_liquidity >= min_liquidity)
        return conn.execute(stmt).rowcount == 1

    # Supplies

    def get_supply(self, user_id: str, asset: str, chain: str) -> SupplyPosition | None:
        stmt = (
            select(user_supplies)
            .where(user_supplies.c.user_id == user_id)
            .where(user_supplies.c.asset == asset)
            .where(user_supplies.c.chain == chain)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
            return _row_to_supply(row) if row is not None else None

    def list_collateral(self, user_id: str, chain: str) -> list[CollateralPosition]:
        """Supply rows flagged as collateral, joined with their pool's risk parameters."""
        stmt = (
            select(
                user_supplies.c.asset,
                user_supplies.c.supplied_amount,
                pool_reserves.c.ltv,
                pool_reserves.c.liquidation_threshold,
            )
            .join(
                pool_reserves,
                (pool_reserves.c.asset == user_supplies.c.asset)
                & (pool_reserves.c.chain == user_supplies.c.chain),
            )
            .where(user_supplies.c.user_id == user_id)
            .where(user_supplies.c.chain == chain)
            .where(user_supplies.c.used_as_collateral.is_(True))
            .order_by(user_supplies.c.asset)
        )
        with self.engine.connect() as conn:
            return [
                CollateralPosition(
                    asset=row.asset,
                    amount=row.supplied_amount,
                    ltv=row.ltv,
                    liquidation_threshold=row.liquidation_threshold,
                )
                for row in conn.execute(stmt)
            ]

    def set_collateral_usage(
        self, user_id: str, asset: str, chain: str, used_as_collateral: bool
    ) -> None:
        stmt = (
            update(user_supplies)
            .where(user_supplies.c.user_id == user_id)
            .where(user_supplies.c.asset == asset)
            .where(user_supplies.c.chain == chain)
            .values(used_as_collateral=used_as_collateral)
        )
        with self.engine.begin() as conn:
            if conn.execute(stmt).rowcount == 0:
                raise ValidationError("No supply position found for this asset")

    def record_supply(
        self, user_id: str, pool: PoolReserve, amount: Decimal
    ) -> Decimal:
        """Create or increment the supply row and the pool totals. Returns the new balance."""
        now = utc_now()
        with self.engine.begin() as conn:
            stmt = self._insert(user_supplies).values(
                id=str(uuid.uuid4()),
                user_id=user_id,
                asset=pool.asset,
                chain=pool.chain,
                supplied_amount=amount,
                supply_rate_at_deposit=pool.supply_rate,
                used_as_collateral=True,
                last_interest_update=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "asset", "chain"],
                set_={
                    "supplied_amount": user_supplies.c.supplied_amount
                    + stmt.excluded.supplied_amount,
                    "supply_rate_at_deposit": stmt.excluded.supply_rate_at_deposit,
                    "last_interest_update": stmt.excluded.last_interest_update,
                },
            )
            conn.execute(stmt)
            self._adjust_pool(
                conn, pool.id, supply_delta=amount, liquidity_delta=amount
            )
            return self._supply_balance(conn, user_id, pool.asset, pool.chain)

    def record_withdraw(
        self, user_id: str, pool: PoolReserve, amount: Decimal
    ) -> Decimal:
        """Decrement the supply row (deleted at zero) and the pool totals. Returns the remainder."""
        c = user_supplies.c
        with self.engine.begin() as conn:
            stmt = (
                update(user_supplies)
                .where(c.user_id == user_id)
                .where(c.asset == pool.asset)
                .where(c.chain == pool.chain)
                .where(c.supplied_amount >= amount)
                .values(
                    supplied_amount=c.supplied_amount - amount,
                    last_interest_update=utc_now(),
                )
            )
            if conn.execute(stmt).rowcount == 0:
                raise ValidationError("Insufficient supplied amount")

            if not self._adjust_pool(
                conn,
                pool.id,
                supply_delta=-amount,
                liquidity_delta=-amount,
                min_liquidity=amount,
            ):
                raise ValidationError("Insufficient pool liquidity for withdrawal")

            remaining = self._supply_balance(conn, user_id, pool.asset, pool.chain)
            if remaining <= 0:
                conn.execute(
                    delete(user_supplies)
                    .where(c.user_id == user_id)
                    .where(c.asset == pool.asset)
                    .where(c.chain == pool.chain)
                )
                return Decimal(0)
            return remaining

    def _supply_balance(
        self, conn: Connection, user_id: str, asset: str, chain: str
    ) -> Decimal:
        c = user_supplies.c
        value = conn.execute(
            select(c.supplied_amount)
            .where(c.user_id == user_id)
            .where(c.asset == asset)
            .where(c.chain == chain)
        ).scalar()
        return value if value is not None else Decimal(0)

    # Borrows

    def get_borrow(
        self, user_id: str, asset: str, chain: str, rate_mode: str
    ) -> BorrowPosition | None:
        stmt = (
            select(user_borrows)
            .where(user_borrows.c.user_id == user_id)
            .where(user_borrows.c.asset == asset)
            .where(user_borrows.c.chain == chain)
            .where(user_borrows.c.rate_mode == rate_mode)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
            return _row_to_borrow(row) if row is not None else None

    def list_borrows(self, user_id: str, chain: str) -> list[BorrowPosition]:
        stmt = (
            select(user_borrows)
            .where(user_borrows.c.user_id == user_id)
            .where(user_borrows.c.chain == chain)
            .order_by(user_borrows.c.asset, user_borrows.c.rate_mode)
        )
        with self.engine.connect() as conn:
            return [_row_to_borrow(row) for row in conn.execute(stmt)]

    def record_borrow(
        self, user_id: str, pool: PoolReserve, amount: Decimal, rate_mode: str
    ) -> Decimal:
        """Create or increment the borrow row; fails if pool liquidity ran out meanwhile."""
        now = utc_now()
        with self.engine.begin() as conn:
            if not self._adjust_pool(
                conn,
                pool.id,
                borrow_delta=amount,
                liquidity_delta=-amount,
                min_liquidity=amount,
            ):
                raise ValidationError(
                    f"Insufficient liquidity. Available: {pool.available_liquidity}"
                )

            stmt = self._insert(user_borrows).values(
                id=str(uuid.uuid4()),
                user_id=user_id,
                asset=pool.asset,
                chain=pool.chain,
                borrowed_amount=amount,
                rate_mode=rate_mode,
                borrow_rate_at_creation=pool.borrow_rate(rate_mode),
                last_interest_update=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "asset", "chain", "rate_mode"],
                set_={
                    "borrowed_amount": user_borrows.c.borrowed_amount
                    + stmt.excluded.borrowed_amount,
                    "borrow_rate_at_creation": stmt.excluded.borrow_rate_at_creation,
                    "last_interest_update": stmt.excluded.last_interest_update,
                },
            )
            conn.execute(stmt)
            return self._borrow_balance(conn, user_id, pool.asset, pool.chain, rate_mode)

    def record_repay(
        self, user_id: str, pool: PoolReserve, amount: Decimal, rate_mode: str
    ) -> Decimal:
        """
        Repay up to `amount` of a borrow position.

        Returns:
            The amount actually repaid (never more than what was borrowed)
        """
        c = user_borrows.c
        key = (
            (c.user_id == user_id)
            & (c.asset == pool.asset)
            & (c.chain == pool.chain)
            & (c.rate_mode == rate_mode)
        )
        with self.engine.begin() as conn:
            # Row lock on Postgres; SQLite serializes writers on the database
            query = select(c.borrowed_amount).where(key)
            if not self._is_sqlite:
                query = query.with_for_update()
            borrowed = conn.execute(query).scalar()
            if borrowed is None:
                raise ValidationError(f"No borrow position found for {pool.asset}")

            repay_amount = min(amount, borrowed)
            if repay_amount <= 0:
                raise ValidationError("Invalid repay amount")

            remaining = borrowed - repay_amount
            if remaining <= BORROW_DUST:
                conn.execute(delete(user_borrows).where(key))
            else:
                conn.execute(
                    update(user_borrows)
                    .where(key)
                    .values(
                        borrowed_amount=c.borrowed_amount - repay_amount,
                        last_interest_update=utc_now(),
                    )
                )

            self._adjust_pool(
                conn,
                pool.id,
                borrow_delta=-repay_amount,
                liquidity_delta=repay_amount,
            )
            return repay_amount

    def _borrow_balance(
        self, conn: Connection, user_id: str, asset: str, chain: str, rate_mode: str
    ) -> Decimal:
        c = user_borrows.c
        value = conn.execute(
            select(c.borrowed_amount)
            .where(c.user_id == user_id)
            .where(c.asset == asset)
            .where(c.chain == chain)
            .where(c.rate_mode == rate_mode)
        ).scalar()
        return value if value is not None else Decimal(0)

    def list_user_chains(self, chain: str | None = None) -> list[tuple[str, str]]:
        """Distinct (user_id, chain) pairs holding a positive supply or borrow."""
        supplies = select(user_supplies.c.user_id, user_supplies.c.chain).where(
            user_supplies.c.supplied_amount > 0
        )
        borrows = select(user_borrows.c.user_id, user_borrows.c.chain).where(
            user_borrows.c.borrowed_amount > 0
        )
        if chain is not None:
            supplies = supplies.where(user_supplies.c.chain == chain)
            borrows = borrows.where(user_borrows.c.chain == chain)

        stmt = supplies.union(borrows)
        with self.engine.connect() as conn:
            pairs = {(row[0], row[1]) for row in conn.execute(stmt)}
        return sorted(pairs)
