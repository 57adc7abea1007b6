"""Catalog store: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from bullion_rates.core.config import StorageConfig
from bullion_rates.core.exceptions import (
    PersistenceRowFailed,
    PersistenceUnavailable,
    StorageError,
)
from bullion_rates.core.models import (
    DerivedRate,
    PersistedBaseRate,
    ProductKind,
    WeightUnit,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class CatalogStore(Protocol):
    """Durable per-product rate rows and manual adjustments."""

    async def upsert_rate(self, rate: DerivedRate, base_rate_per_gram: Decimal) -> None: ...
    async def list_rates(self, location: str | None = None) -> list[DerivedRate]: ...
    async def get_latest_rate(self, location: str | None = None) -> PersistedBaseRate | None: ...
    async def save_adjustment(self, product_name: str, offset: Decimal) -> None: ...
    async def delete_adjustment(self, product_name: str) -> None: ...
    async def load_adjustments(self) -> dict[str, Decimal]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteStore:
    """SQLite implementation of the catalog store.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system. Money values are stored as
    TEXT so Decimal precision survives the round trip.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS catalog_rates (
                    product_name TEXT NOT NULL,
                    location TEXT NOT NULL,
                    product_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    weight_value TEXT NOT NULL,
                    weight_unit TEXT NOT NULL,
                    purity TEXT NOT NULL,
                    rate_per_gram TEXT NOT NULL,
                    total_rate TEXT NOT NULL,
                    base_rate_per_gram TEXT NOT NULL,
                    manual_adjustment TEXT NOT NULL DEFAULT '0',
                    usd_inr_rate TEXT,
                    source_name TEXT,
                    last_updated TEXT NOT NULL,
                    PRIMARY KEY(product_name, location)
                )""",
                """CREATE TABLE IF NOT EXISTS manual_adjustments (
                    product_name TEXT PRIMARY KEY,
                    per_gram_offset TEXT NOT NULL,
                    updated_at TEXT DEFAULT (datetime('now'))
                )""",
                "CREATE INDEX IF NOT EXISTS idx_rates_updated ON catalog_rates(last_updated)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise PersistenceUnavailable(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    def _conn(self, operation: str) -> aiosqlite.Connection:
        if self._db is None:
            raise PersistenceUnavailable(
                "Catalog store is not initialized",
                context={"operation": operation, "path": self._path},
            )
        return self._db

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Catalog Rates ---

    async def upsert_rate(self, rate: DerivedRate, base_rate_per_gram: Decimal) -> None:
        """Insert or replace one row keyed by (product_name, location).

        Raises:
            PersistenceUnavailable: Store not initialized.
            PersistenceRowFailed: The write itself failed.
        """
        db = self._conn("upsert")
        location = rate.location or ""
        updated = (rate.computed_at or datetime.now(UTC)).astimezone(UTC)
        try:
            await db.execute(
                """INSERT OR REPLACE INTO catalog_rates
                   (product_name, location, product_id, kind, weight_value,
                    weight_unit, purity, rate_per_gram, total_rate,
                    base_rate_per_gram, manual_adjustment, usd_inr_rate,
                    source_name, last_updated)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    rate.product_name,
                    location,
                    rate.product_id,
                    str(rate.kind),
                    str(rate.weight_value),
                    str(rate.weight_unit),
                    rate.purity,
                    str(rate.rate_per_gram),
                    str(rate.total_rate),
                    str(base_rate_per_gram),
                    str(rate.manual_adjustment),
                    str(rate.usd_inr_rate) if rate.usd_inr_rate is not None else None,
                    rate.source_name,
                    updated.isoformat(),
                ),
            )
            await db.commit()
        except Exception as e:
            raise PersistenceRowFailed(
                f"Failed to upsert rate for {rate.product_name}: {e}",
                context={
                    "operation": "upsert",
                    "table": "catalog_rates",
                    "product_name": rate.product_name,
                    "location": location,
                },
            ) from e

    async def list_rates(self, location: str | None = None) -> list[DerivedRate]:
        db = self._conn("query")
        query = "SELECT * FROM catalog_rates"
        params: list[str] = []
        if location is not None:
            query += " WHERE location = ?"
            params.append(location)
        query += " ORDER BY rowid"
        try:
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_rate(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to list rates: {e}",
                context={"operation": "query", "table": "catalog_rates"},
            ) from e

    async def get_latest_rate(
        self, location: str | None = None
    ) -> PersistedBaseRate | None:
        """Most recently updated row's base rate, or None for an empty table."""
        db = self._conn("query")
        query = "SELECT * FROM catalog_rates"
        params: list[str] = []
        if location is not None:
            query += " WHERE location = ?"
            params.append(location)
        query += " ORDER BY last_updated DESC LIMIT 1"
        try:
            async with db.execute(query, params) as cursor:
                row = await cursor.fetchone()
            if row is None:
                return None
            usd = row["usd_inr_rate"]
            return PersistedBaseRate(
                rate_per_gram=Decimal(row["base_rate_per_gram"]),
                source_name=row["source_name"],
                usd_inr_rate=Decimal(usd) if usd is not None else None,
                last_updated=datetime.fromisoformat(row["last_updated"]),
                location=row["location"],
            )
        except Exception as e:
            raise StorageError(
                f"Failed to get latest rate: {e}",
                context={"operation": "query", "table": "catalog_rates"},
            ) from e

    # --- Manual Adjustments ---

    async def save_adjustment(self, product_name: str, offset: Decimal) -> None:
        db = self._conn("upsert")
        try:
            await db.execute(
                """INSERT OR REPLACE INTO manual_adjustments
                   (product_name, per_gram_offset, updated_at)
                   VALUES (?, ?, datetime('now'))""",
                (product_name, str(offset)),
            )
            await db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to save adjustment for {product_name}: {e}",
                context={
                    "operation": "upsert",
                    "table": "manual_adjustments",
                    "product_name": product_name,
                },
            ) from e

    async def delete_adjustment(self, product_name: str) -> None:
        db = self._conn("delete")
        try:
            await db.execute(
                "DELETE FROM manual_adjustments WHERE product_name = ?",
                (product_name,),
            )
            await db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to delete adjustment for {product_name}: {e}",
                context={
                    "operation": "delete",
                    "table": "manual_adjustments",
                    "product_name": product_name,
                },
            ) from e

    async def load_adjustments(self) -> dict[str, Decimal]:
        db = self._conn("query")
        try:
            async with db.execute(
                "SELECT product_name, per_gram_offset FROM manual_adjustments"
            ) as cursor:
                rows = await cursor.fetchall()
            return {r["product_name"]: Decimal(r["per_gram_offset"]) for r in rows}
        except Exception as e:
            raise StorageError(
                f"Failed to load adjustments: {e}",
                context={"operation": "query", "table": "manual_adjustments"},
            ) from e

    # --- Row Mapping ---

    @staticmethod
    def _row_to_rate(row: aiosqlite.Row) -> DerivedRate:
        usd = row["usd_inr_rate"]
        return DerivedRate(
            product_id=row["product_id"],
            product_name=row["product_name"],
            kind=ProductKind(row["kind"]),
            weight_value=Decimal(row["weight_value"]),
            weight_unit=WeightUnit(row["weight_unit"]),
            purity=row["purity"],
            rate_per_gram=Decimal(row["rate_per_gram"]),
            total_rate=Decimal(row["total_rate"]),
            source_name=row["source_name"],
            computed_at=datetime.fromisoformat(row["last_updated"]),
            manual_adjustment=Decimal(row["manual_adjustment"]),
            usd_inr_rate=Decimal(usd) if usd is not None else None,
            location=row["location"] or None,
        )


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize the catalog store."""
    store = SqliteStore(config)
    await store.initialize()
    return store
