"""Tests for the source registry and the multi-source resolver."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from bullion_rates.core.config import RatesConfig
from bullion_rates.core.exceptions import (
    AdapterMalformedPayload,
    AdapterTimeout,
    AllSourcesFailed,
    ConfigError,
)
from bullion_rates.core.models import RawReading, SourceKind
from bullion_rates.sources.generic import GenericFeedAdapter
from bullion_rates.sources.registry import SourceRegistry, build_adapters, registry
from bullion_rates.sources.resolver import SourceResolver
from bullion_rates.sources.stream import StreamFeedAdapter
from bullion_rates.sources.tabular import TabularFeedAdapter


class FakeAdapter:
    """Scripted adapter: returns a rate or raises, optionally after a delay."""

    def __init__(self, name, priority=1, rate=None, error=None, delay=0.0):
        self.name = name
        self.priority = priority
        self._rate = rate
        self._error = error
        self._delay = delay
        self.calls = 0
        self.closed = False

    async def fetch(self, timeout=None):
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return RawReading(
            rate_per_gram=Decimal(self._rate),
            source_name=self.name,
            observed_at=datetime.now(UTC),
        )

    async def close(self):
        self.closed = True


def _table(*adapters):
    return {a.name: a for a in adapters}


class TestSourceRegistry:
    def test_builtin_kinds(self):
        assert set(registry.kinds()) == set(SourceKind)
        assert registry.get(SourceKind.TABULAR) is TabularFeedAdapter
        assert registry.get(SourceKind.STREAM) is StreamFeedAdapter
        assert registry.get(SourceKind.GENERIC) is GenericFeedAdapter

    def test_duplicate_registration_rejected(self):
        reg = SourceRegistry()
        reg.register(SourceKind.STREAM, StreamFeedAdapter)
        with pytest.raises(ValueError, match="already registered"):
            reg.register(SourceKind.STREAM, StreamFeedAdapter)

    def test_replace_requires_existing(self):
        with pytest.raises(KeyError):
            SourceRegistry().replace(SourceKind.STREAM, StreamFeedAdapter)

    async def test_build_adapters_priority_order(
        self, tabular_source, stream_source, generic_source
    ):
        first = generic_source.model_copy(update={"priority": 0})
        config = RatesConfig(sources=[stream_source, tabular_source, first])
        table = build_adapters(config)
        try:
            assert list(table) == ["Custom", "Tabular", "Stream"]
            assert isinstance(table["Custom"], GenericFeedAdapter)
        finally:
            for adapter in table.values():
                await adapter.close()

    async def test_disabled_sources_skipped(self, tabular_source, generic_source):
        disabled = generic_source.model_copy(update={"enabled": False})
        table = build_adapters(RatesConfig(sources=[tabular_source, disabled]))
        try:
            assert list(table) == ["Tabular"]
        finally:
            for adapter in table.values():
                await adapter.close()


class TestMultiMode:
    async def test_lowest_priority_success_wins(self):
        a = FakeAdapter("A", priority=1, rate="170.00")
        b = FakeAdapter("B", priority=2, rate="168.00")
        reading = await SourceResolver(_table(b, a)).resolve()
        assert reading.source_name == "A"
        assert a.calls == 1 and b.calls == 1

    async def test_falls_back_on_failure(self):
        a = FakeAdapter("A", priority=1, error=AdapterTimeout("slow"))
        b = FakeAdapter("B", priority=2, rate="168.00")
        reading = await SourceResolver(_table(a, b)).resolve()
        assert reading.source_name == "B"
        assert reading.rate_per_gram == Decimal("168.00")

    async def test_equal_priority_uses_table_order(self):
        a = FakeAdapter("A", priority=1, rate="170.00")
        b = FakeAdapter("B", priority=1, rate="168.00")
        assert (await SourceResolver(_table(b, a)).resolve()).source_name == "B"

    async def test_adapters_run_concurrently(self):
        a = FakeAdapter("A", priority=1, rate="170.00", delay=0.1)
        b = FakeAdapter("B", priority=2, rate="168.00", delay=0.1)
        loop = asyncio.get_running_loop()
        start = loop.time()
        await SourceResolver(_table(a, b)).resolve()
        assert loop.time() - start < 0.19

    async def test_all_failed_carries_failures(self):
        a = FakeAdapter("A", error=AdapterTimeout("slow"))
        b = FakeAdapter("B", priority=2, error=AdapterMalformedPayload("HTTP 503"))
        with pytest.raises(AllSourcesFailed) as exc_info:
            await SourceResolver(_table(a, b)).resolve()
        failures = exc_info.value.context["failures"]
        assert set(failures) == {"A", "B"}
        assert "HTTP 503" in failures["B"]

    async def test_unexpected_adapter_error_is_a_failure(self):
        a = FakeAdapter("A", error=RuntimeError("bug"))
        b = FakeAdapter("B", priority=2, rate="168.00")
        assert (await SourceResolver(_table(a, b)).resolve()).source_name == "B"

    async def test_no_adapters(self):
        with pytest.raises(AllSourcesFailed):
            await SourceResolver({}).resolve()


class TestSingleMode:
    async def test_calls_only_selected(self):
        a = FakeAdapter("A", priority=1, rate="170.00")
        b = FakeAdapter("B", priority=2, rate="168.00")
        reading = await SourceResolver(_table(a, b), selection="B").resolve()
        assert reading.source_name == "B"
        assert a.calls == 0

    async def test_selected_failure_is_all_failed(self):
        a = FakeAdapter("A", error=AdapterTimeout("slow"))
        b = FakeAdapter("B", rate="168.00")
        with pytest.raises(AllSourcesFailed) as exc_info:
            await SourceResolver(_table(a, b), selection="A").resolve()
        assert "A" in exc_info.value.context["failures"]

    def test_unknown_selection_rejected(self):
        with pytest.raises(ConfigError):
            SourceResolver(_table(FakeAdapter("A", rate="1")), selection="Z")

    async def test_resolve_source_unknown(self):
        resolver = SourceResolver(_table(FakeAdapter("A", rate="1")))
        with pytest.raises(AllSourcesFailed):
            await resolver.resolve_source("Z")

    async def test_close_closes_adapters(self):
        a = FakeAdapter("A", rate="1")
        await SourceResolver(_table(a)).close()
        assert a.closed
