"""Durable catalog rows and manual adjustments."""

from bullion_rates.storage.store import CatalogStore, SqliteStore, create_store

__all__ = [
    "CatalogStore",
    "SqliteStore",
    "create_store",
]
