"""Integration test fixtures: real I/O but no network."""

from __future__ import annotations

import os
from pathlib import Path

import httpx
import pytest
import respx

TABULAR_URL = "https://feed.test/tabular"
STREAM_URL = "https://feed.test/stream"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("BULLION_RATES_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def feeds():
    """Mocked upstream feeds; both answer 503 until a test re-mocks them."""
    with respx.mock(assert_all_called=False) as mock:
        mock.get(TABULAR_URL, name="tabular").mock(return_value=httpx.Response(503))
        mock.get(STREAM_URL, name="stream").mock(return_value=httpx.Response(503))
        yield mock


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """YAML config pointing at the mocked feeds and a temp database."""
    path = tmp_path / "bullion-rates.yml"
    path.write_text(
        f"""\
sources:
  - name: Tabular
    kind: tabular
    url: {TABULAR_URL}
    priority: 1
    instrument_id: "2966"
    instrument_name: Silver 999
    rate_limit: 100
  - name: Stream
    kind: stream
    url: {STREAM_URL}
    priority: 2
    instrument_id: "2966"
    instrument_name: Silver 999
    rate_limit: 100
refresh:
  background_loop: false
catalog:
  location: Andhra Pradesh
storage:
  sqlite_path: {tmp_path / "data" / "rates.db"}
"""
    )
    return path
