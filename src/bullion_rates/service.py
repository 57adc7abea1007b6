"""Wiring: builds the rate cache, scheduler and sync from configuration.

Both the HTTP server and the CLI go through ``RateService.open`` so they
assemble the same object graph.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

import httpx

from bullion_rates.cache.rate_cache import RateCache
from bullion_rates.cache.scheduler import RateScheduler
from bullion_rates.core.config import RatesConfig
from bullion_rates.core.exceptions import PersistenceUnavailable, StorageError
from bullion_rates.core.models import BaseRateSnapshot, DerivedRate, ProductDefinition
from bullion_rates.pricing.adjustments import ManualAdjustments
from bullion_rates.pricing.catalog import ProductCatalog
from bullion_rates.sources.registry import SourceRegistry, build_adapters
from bullion_rates.sources.resolver import SourceResolver
from bullion_rates.storage.store import SqliteStore
from bullion_rates.sync.broadcast import BroadcastHub
from bullion_rates.sync.catalog_sync import CatalogSync, SyncReport

logger = logging.getLogger(__name__)


@dataclass
class RateService:
    """Everything one running instance owns."""

    config: RatesConfig
    cache: RateCache
    resolver: SourceResolver
    scheduler: RateScheduler
    catalog: ProductCatalog
    adjustments: ManualAdjustments
    store: SqliteStore
    hub: BroadcastHub
    sync: CatalogSync
    client: httpx.AsyncClient | None = None
    _owns_client: bool = field(default=False, repr=False)

    @classmethod
    async def open(
        cls,
        config: RatesConfig,
        client: httpx.AsyncClient | None = None,
        source_registry: SourceRegistry | None = None,
        catalog: ProductCatalog | None = None,
    ) -> RateService:
        """Build the graph, open the store and load adjustments.

        An unavailable store is logged and tolerated; pricing runs from
        memory until it comes back.
        """
        owns_client = client is None
        if client is None:
            client = httpx.AsyncClient(follow_redirects=True)

        store = SqliteStore(config.storage)
        try:
            await store.initialize()
        except PersistenceUnavailable as e:
            logger.warning("Catalog store unavailable, running without it: %s", e)

        catalog = catalog or ProductCatalog()
        adjustments = ManualAdjustments(store)
        await adjustments.load()

        cache = RateCache()
        resolver = SourceResolver(
            build_adapters(config, client=client, source_registry=source_registry),
            selection=config.selection,
            adapter_timeout=config.refresh.adapter_timeout,
        )
        hub = BroadcastHub()
        sync = CatalogSync(
            catalog,
            adjustments,
            location=config.catalog.location,
            store=store,
            sink=hub,
        )
        scheduler = RateScheduler(cache, resolver, config.refresh, on_update=sync.run)

        return cls(
            config=config,
            cache=cache,
            resolver=resolver,
            scheduler=scheduler,
            catalog=catalog,
            adjustments=adjustments,
            store=store,
            hub=hub,
            sync=sync,
            client=client,
            _owns_client=owns_client,
        )

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.resolver.close()
        if self._owns_client and self.client is not None:
            await self.client.aclose()
        await self.store.close()

    async def seed(self) -> BaseRateSnapshot:
        """Seed the cache from the newest stored row, else from config."""
        catalog_cfg = self.config.catalog
        try:
            latest = await self.store.get_latest_rate(catalog_cfg.location)
        except StorageError as e:
            logger.warning("Could not read stored rates for seeding: %s", e)
            latest = None

        if latest is not None:
            return self.cache.seed(
                latest.rate_per_gram,
                source_name=latest.source_name or "store",
                usd_inr_rate=latest.usd_inr_rate or catalog_cfg.default_usd_inr_rate,
                updated_at=latest.last_updated,
            )
        if catalog_cfg.seed_rate_per_gram is not None:
            return self.cache.seed(
                catalog_cfg.seed_rate_per_gram,
                source_name="seed",
                usd_inr_rate=catalog_cfg.default_usd_inr_rate,
            )
        logger.info("No seed rate configured; catalog is empty until first fetch")
        return self.cache.snapshot()

    def current_rates(self) -> list[DerivedRate]:
        """Derive the catalog from the current snapshot. Never does I/O."""
        return self.sync.derive(self.cache.snapshot())

    async def initialize_catalog(self) -> SyncReport:
        """Upsert every product from the current cache."""
        return await self.sync.run(self.cache.snapshot())

    async def set_adjustment(
        self, product: ProductDefinition, offset: Decimal | None
    ) -> DerivedRate | None:
        """Apply an adjustment and write the product's row through.

        Raises:
            ValueError: The offset is out of range; nothing changes.
        """
        await self.adjustments.set(product.name, offset)
        return await self.sync.run_product(self.cache.snapshot(), product)
