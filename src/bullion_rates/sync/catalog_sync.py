"""Catalog sync: persist and broadcast the derived catalog after an update."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal

from bullion_rates.core.exceptions import PersistenceRowFailed, StorageError
from bullion_rates.core.models import BaseRateSnapshot, DerivedRate, ProductDefinition
from bullion_rates.pricing.adjustments import ManualAdjustments
from bullion_rates.pricing.catalog import ProductCatalog
from bullion_rates.pricing.engine import derive
from bullion_rates.storage.store import CatalogStore
from bullion_rates.sync.broadcast import BroadcastSink, rate_event, usd_rate_event

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Per-row outcome of one sync pass."""

    location: str
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    persisted: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    broadcast: int = 0
    broadcast_errors: int = 0
    skipped: bool = False

    @property
    def attempted(self) -> int:
        return len(self.persisted) + len(self.failed)

    @property
    def ok(self) -> bool:
        return not self.failed


class CatalogSync:
    """Derives every product from a snapshot, upserts and publishes each row.

    Rows are independent: one failed upsert (or one product that cannot be
    priced) is logged and the rest still go through. Broadcast failures are
    swallowed at debug level.

    Passes run one at a time. A snapshot older than the last one synced is
    skipped, so stored rows never move back to an earlier base rate.
    """

    def __init__(
        self,
        catalog: ProductCatalog,
        adjustments: ManualAdjustments,
        location: str,
        store: CatalogStore | None = None,
        sink: BroadcastSink | None = None,
    ) -> None:
        self._catalog = catalog
        self._adjustments = adjustments
        self._location = location
        self._store = store
        self._sink = sink
        self._lock = asyncio.Lock()
        self._synced: BaseRateSnapshot | None = None

    @property
    def last_synced_version(self) -> int | None:
        return self._synced.version if self._synced is not None else None

    def derive(self, snapshot: BaseRateSnapshot) -> list[DerivedRate]:
        """Price the catalog, leaving out any product that cannot be priced."""
        if not snapshot.has_rate:
            return []
        offsets = self._adjustments.snapshot()
        rows = []
        for product in self._catalog:
            row = self._derive_one(snapshot, product, offsets.get(product.name))
            if row is not None:
                rows.append(row)
        return rows

    def derive_product(
        self, snapshot: BaseRateSnapshot, product: ProductDefinition
    ) -> DerivedRate | None:
        if not snapshot.has_rate:
            return None
        return self._derive_one(snapshot, product, self._adjustments.get(product.name))

    async def run(self, snapshot: BaseRateSnapshot) -> SyncReport:
        report = SyncReport(location=self._location)
        if not snapshot.has_rate:
            logger.debug("Sync skipped: no base rate held")
            return report

        async with self._lock:
            if self._is_older(snapshot):
                report.skipped = True
                logger.debug(
                    "Sync skipped: snapshot v%d is older than synced v%d",
                    snapshot.version,
                    self._synced.version,
                )
                return report

            rows = self.derive(snapshot)
            for row in rows:
                if self._store is not None:
                    error = await self._persist(row, snapshot)
                    if error is None:
                        report.persisted.append(row.product_name)
                    else:
                        report.failed[row.product_name] = error
                await self._publish(rate_event(row), report)

            if snapshot.usd_inr_rate is not None:
                await self._publish(usd_rate_event(snapshot.usd_inr_rate), report)
            self._synced = snapshot

        if report.failed:
            logger.warning(
                "Catalog sync: %d/%d rows failed to persist",
                len(report.failed),
                report.attempted,
            )
        else:
            logger.debug("Catalog sync: %d rows", len(rows))
        return report

    async def run_product(
        self, snapshot: BaseRateSnapshot, product: ProductDefinition
    ) -> DerivedRate | None:
        """Re-derive, persist and publish one product (after an adjustment).

        Serialized with full passes; prices from the newest snapshot synced
        so far when ``snapshot`` has been overtaken.
        """
        async with self._lock:
            if self._is_older(snapshot):
                snapshot = self._synced
            row = self.derive_product(snapshot, product)
            if row is None:
                return None
            if self._store is not None:
                await self._persist(row, snapshot)
            await self._publish(rate_event(row), SyncReport(location=self._location))
            return row

    def _is_older(self, snapshot: BaseRateSnapshot) -> bool:
        return self._synced is not None and snapshot.version < self._synced.version

    def _derive_one(
        self,
        snapshot: BaseRateSnapshot,
        product: ProductDefinition,
        offset: Decimal | None,
    ) -> DerivedRate | None:
        try:
            return derive(snapshot, product, offset, location=self._location)
        except (ArithmeticError, ValueError) as e:
            logger.error("Cannot price %s (adjustment %s): %s", product.name, offset, e)
            return None

    async def _persist(self, row: DerivedRate, snapshot: BaseRateSnapshot) -> str | None:
        """Upsert one row; returns the error message, or None on success."""
        try:
            await self._store.upsert_rate(row, snapshot.rate_per_gram)
        except PersistenceRowFailed as e:
            logger.error("Row %s not persisted: %s", row.product_name, e)
            return str(e)
        except StorageError as e:
            logger.debug("Store unavailable for %s: %s", row.product_name, e)
            return str(e)
        return None

    async def _publish(self, event, report: SyncReport) -> None:
        if self._sink is None:
            return
        try:
            await self._sink.publish(event)
        except Exception as e:
            report.broadcast_errors += 1
            logger.debug("Broadcast of %s failed: %s", event.name, e)
            return
        report.broadcast += 1
