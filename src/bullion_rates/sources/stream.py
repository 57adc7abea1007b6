"""Event-stream JSON feed adapter.

The endpoint speaks server-sent events. A single GET returns a buffered
slice of the stream; the newest complete ``data:`` line wins. Some
deployments answer with plain JSON instead, which is accepted as-is.

Payload shapes understood:

    {"prices": [{"id": "2966", "name": "Silver 999", "ask": "161495", ...}]}
    {"ratePerGram": 168.39}
    {"rate": 168390}
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from bullion_rates.core.models import RawReading
from bullion_rates.sources.base import (
    HttpSourceAdapter,
    match_instrument,
    parse_rate,
    split_ambiguous,
)

logger = logging.getLogger(__name__)


def extract_payload(body: str) -> dict[str, Any] | None:
    """Return the newest JSON object carried by an event-stream body."""
    try:
        whole = json.loads(body)
    except ValueError:
        whole = None
    if isinstance(whole, dict):
        return whole

    for line in reversed(body.splitlines()):
        stripped = line.strip()
        if stripped.startswith("data:"):
            candidate = stripped[len("data:") :].strip()
        elif stripped.startswith("{") and stripped.endswith("}"):
            candidate = stripped
        else:
            continue
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def _usd_inr(payload: dict[str, Any]) -> Decimal | None:
    prices = payload.get("prices")
    if isinstance(prices, list):
        for item in prices:
            if not isinstance(item, dict):
                continue
            name = str(item.get("name") or "").lower()
            if "usd-inr" in name or "usdinr" in name:
                return parse_rate(item.get("ask"))
        return None
    return parse_rate(payload.get("usdInrRate") or payload.get("usdRate"))


class StreamFeedAdapter(HttpSourceAdapter):
    """Reads the target instrument from an event-stream or JSON price feed."""

    accept = "text/event-stream, application/json, */*"

    def parse(self, body: str, observed_at: datetime) -> RawReading:
        payload = extract_payload(body)
        if payload is None:
            raise self.malformed("no JSON object in stream payload")

        per_gram, per_kg = self._rates(payload)
        return self.build_reading(
            per_gram,
            observed_at,
            rate_per_kg=per_kg,
            usd_inr_rate=_usd_inr(payload),
        )

    def _rates(self, payload: dict[str, Any]) -> tuple[Decimal, Decimal | None]:
        prices = payload.get("prices")
        if isinstance(prices, list):
            items = [p for p in prices if isinstance(p, dict)]
            item = match_instrument(
                items, self.config.instrument_id, self.config.instrument_name
            )
            if item is None:
                logger.debug(
                    "%s: instrument missing; listed %s",
                    self.name,
                    ", ".join(str(p.get("name")) for p in items),
                )
                raise self.not_found()
            return self._item_rates(item)

        if "ratePerGram" in payload:
            per_gram = parse_rate(payload.get("ratePerGram"))
            if per_gram is None:
                raise self.malformed("ratePerGram is not a positive number")
            return per_gram, None

        if "rate" in payload:
            rate = parse_rate(payload.get("rate"))
            if rate is None:
                raise self.malformed("rate is not a positive number")
            return split_ambiguous(rate)

        raise self.malformed(f"unknown payload shape: {sorted(payload)}")

    def _item_rates(self, item: dict[str, Any]) -> tuple[Decimal, Decimal | None]:
        for column in ("ask", "bid"):
            per_kg = parse_rate(item.get(column))
            if per_kg is not None:
                return per_kg / 1000, per_kg

        price = parse_rate(item.get("price"))
        if price is not None:
            return split_ambiguous(price)

        per_gram = parse_rate(item.get("ratePerGram"))
        if per_gram is not None:
            return per_gram, None

        raise self.malformed(f"no usable quote for {item.get('name')!r}")
