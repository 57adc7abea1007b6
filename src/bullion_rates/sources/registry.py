"""Adapter registry: maps a configured source kind to its adapter class."""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from bullion_rates.core.config import RatesConfig, SourceConfig
from bullion_rates.core.models import SourceKind
from bullion_rates.sources.base import HARD_TIMEOUT, SourceAdapter
from bullion_rates.sources.generic import GenericFeedAdapter
from bullion_rates.sources.stream import StreamFeedAdapter
from bullion_rates.sources.tabular import TabularFeedAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[..., SourceAdapter]


class SourceRegistry:
    """Registry of adapter factories keyed by wire shape."""

    def __init__(self) -> None:
        self._factories: dict[SourceKind, AdapterFactory] = {}

    def register(self, kind: SourceKind, factory: AdapterFactory) -> None:
        if kind in self._factories:
            raise ValueError(
                f"Source kind '{kind}' is already registered. Use replace() to override."
            )
        self._factories[kind] = factory

    def replace(self, kind: SourceKind, factory: AdapterFactory) -> None:
        if kind not in self._factories:
            raise KeyError(f"Source kind '{kind}' is not registered.")
        self._factories[kind] = factory

    def get(self, kind: SourceKind) -> AdapterFactory:
        return self._factories[kind]

    def kinds(self) -> list[SourceKind]:
        return list(self._factories.keys())

    def create(
        self,
        source: SourceConfig,
        client: httpx.AsyncClient | None = None,
        hard_timeout: float = HARD_TIMEOUT,
    ) -> SourceAdapter:
        return self.get(source.kind)(source, client=client, hard_timeout=hard_timeout)


def build_adapters(
    config: RatesConfig,
    client: httpx.AsyncClient | None = None,
    source_registry: SourceRegistry | None = None,
) -> dict[str, SourceAdapter]:
    """Build the name -> adapter lookup table for every enabled source.

    The table preserves priority order (configuration order breaking ties),
    which the resolver relies on for reproducible tie-breaks.
    """
    reg = source_registry or registry
    hard_timeout = min(config.refresh.adapter_timeout, HARD_TIMEOUT)
    table: dict[str, SourceAdapter] = {}
    for source in config.enabled_sources:
        table[source.name] = reg.create(source, client=client, hard_timeout=hard_timeout)
        logger.debug(
            "Registered source '%s' (%s, priority %d)",
            source.name,
            source.kind,
            source.priority,
        )
    return table


# Module-level singleton registry
registry = SourceRegistry()
registry.register(SourceKind.TABULAR, TabularFeedAdapter)
registry.register(SourceKind.STREAM, StreamFeedAdapter)
registry.register(SourceKind.GENERIC, GenericFeedAdapter)
