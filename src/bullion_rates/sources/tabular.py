"""Delimited tabular feed adapter.

The broadcast feed answers with one instrument per line, tab-separated:

    ID      Name            Bid     Ask     High    Low     Status
    2966    Silver 999      -       166685  168779  165330  InStock

Prices are quoted per kilogram. ``-`` marks a missing quote.
"""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal

from bullion_rates.core.models import RawReading
from bullion_rates.sources.base import HttpSourceAdapter, match_instrument, parse_rate

_COLUMNS = ("id", "name", "bid", "ask", "high", "low", "status")
_MIN_COLUMNS = 6
_SPACE_RUN = re.compile(r"\s{2,}")

# Ask is the selling price; High and Bid are progressively weaker stand-ins.
_PRICE_PREFERENCE = ("ask", "high", "bid")


def parse_rows(body: str) -> list[dict[str, str]]:
    """Split a tabular body into column dicts, skipping short lines."""
    rows: list[dict[str, str]] = []
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if "\t" in stripped:
            parts = [p.strip() for p in stripped.split("\t")]
        else:
            parts = [p.strip() for p in _SPACE_RUN.split(stripped) if p.strip()]
        if len(parts) < _MIN_COLUMNS:
            continue
        rows.append(dict(zip(_COLUMNS, parts)))
    return rows


def _is_usd_inr(row: dict[str, str]) -> bool:
    name = row.get("name", "").lower()
    return "usd-inr" in name or "usdinr" in name


class TabularFeedAdapter(HttpSourceAdapter):
    """Reads the target instrument's per-kg quote from a tab-delimited feed."""

    accept = "text/plain, text/html, */*"

    def parse(self, body: str, observed_at: datetime) -> RawReading:
        rows = parse_rows(body)
        if not rows:
            raise self.malformed("no tabular rows in payload")

        row = match_instrument(
            [r for r in rows if not _is_usd_inr(r)],
            self.config.instrument_id,
            self.config.instrument_name,
        )
        if row is None:
            raise self.not_found()

        per_kg: Decimal | None = None
        for column in _PRICE_PREFERENCE:
            per_kg = parse_rate(row.get(column))
            if per_kg is not None:
                break
        if per_kg is None:
            raise self.malformed(f"no usable quote for {row.get('name')!r}")

        usd_inr = None
        for candidate in rows:
            if _is_usd_inr(candidate):
                usd_inr = parse_rate(candidate.get("ask"))
                break

        return self.build_reading(
            per_kg / 1000,
            observed_at,
            rate_per_kg=per_kg,
            usd_inr_rate=usd_inr,
        )
