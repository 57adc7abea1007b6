"""Post-update catalog sync and live broadcast."""

from bullion_rates.sync.broadcast import (
    RATE_UPDATE,
    USD_RATE_UPDATE,
    BroadcastEvent,
    BroadcastHub,
    BroadcastSink,
    rate_event,
    usd_rate_event,
)
from bullion_rates.sync.catalog_sync import CatalogSync, SyncReport

__all__ = [
    "RATE_UPDATE",
    "USD_RATE_UPDATE",
    "BroadcastEvent",
    "BroadcastHub",
    "BroadcastSink",
    "CatalogSync",
    "SyncReport",
    "rate_event",
    "usd_rate_event",
]
