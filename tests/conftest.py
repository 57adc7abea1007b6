"""Shared pytest fixtures for bullion-rates."""

import json
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from bullion_rates.core.config import (
    CatalogConfig,
    RatesConfig,
    RefreshConfig,
    SourceConfig,
    StorageConfig,
)
from bullion_rates.core.models import BaseRateSnapshot, RawReading, SourceKind

TABULAR_URL = "https://feed.test/tabular"
STREAM_URL = "https://feed.test/stream"
GENERIC_URL = "https://feed.test/custom"


@pytest.fixture
def tabular_body() -> str:
    return (
        "ID\tName\tBid\tAsk\tHigh\tLow\tStatus\n"
        "2965\tSilver Mini\t-\t165100\t167000\t164000\tInStock\n"
        "2966\tSilver 999\t-\t166685\t168779\t165330\tInStock\n"
        "3103\tUSD-INR\t89.10\t89.25\t89.40\t88.90\tInStock\n"
    )


@pytest.fixture
def stream_body() -> str:
    older = {"prices": [{"id": "2966", "name": "Silver 999", "ask": "160000"}]}
    newer = {
        "prices": [
            {"id": "2966", "name": "Silver 999", "ask": "161495", "bid": "161000"},
            {"id": "3103", "name": "USD-INR", "ask": "89.30"},
        ]
    }
    return f"event: prices\ndata: {json.dumps(older)}\n\nevent: prices\ndata: {json.dumps(newer)}\n\n"


@pytest.fixture
def tabular_source() -> SourceConfig:
    return SourceConfig(
        name="Tabular",
        kind=SourceKind.TABULAR,
        url=TABULAR_URL,
        priority=1,
        instrument_id="2966",
        instrument_name="Silver 999",
        rate_limit=100,
    )


@pytest.fixture
def stream_source() -> SourceConfig:
    return SourceConfig(
        name="Stream",
        kind=SourceKind.STREAM,
        url=STREAM_URL,
        priority=2,
        instrument_id="2966",
        instrument_name="Silver 999",
        rate_limit=100,
    )


@pytest.fixture
def generic_source() -> SourceConfig:
    return SourceConfig(
        name="Custom",
        kind=SourceKind.GENERIC,
        url=GENERIC_URL,
        priority=3,
        rate_limit=100,
    )


@pytest.fixture
def make_config(tmp_path, tabular_source, stream_source):
    """Factory for RatesConfig pointing at test feeds and a temp database."""

    def _make(**overrides) -> RatesConfig:
        defaults = dict(
            sources=[tabular_source, stream_source],
            refresh=RefreshConfig(background_loop=False),
            catalog=CatalogConfig(),
            storage=StorageConfig(sqlite_path=str(tmp_path / "rates.db")),
        )
        defaults.update(overrides)
        return RatesConfig(**defaults)

    return _make


@pytest.fixture
def observed_at() -> datetime:
    return datetime(2025, 1, 15, 10, 30, 0, tzinfo=UTC)


@pytest.fixture
def sample_reading(observed_at) -> RawReading:
    return RawReading(
        rate_per_gram=Decimal("169.00"),
        source_name="Tabular",
        observed_at=observed_at,
        usd_inr_rate=Decimal("89.25"),
    )


@pytest.fixture
def sample_snapshot(observed_at) -> BaseRateSnapshot:
    return BaseRateSnapshot(
        rate_per_gram=Decimal("169.00"),
        rate_per_kg=Decimal("169000"),
        source_name="Tabular",
        last_updated_at=observed_at,
        usd_inr_rate=Decimal("89.25"),
        last_fetch_success_at=observed_at,
        version=1,
    )
