"""Generic JSON/text feed adapter for operator-supplied endpoints."""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any

from bullion_rates.core.models import RawReading
from bullion_rates.sources.base import (
    HttpSourceAdapter,
    first_number,
    parse_rate,
    split_ambiguous,
)


class GenericFeedAdapter(HttpSourceAdapter):
    """Accepts the common ad-hoc shapes a custom endpoint might return.

    JSON shapes, tried in order:
        {"ratePerGram": 168.39}
        {"rate": 168390}            (>1000 means per kg)
        {"price": 168.39}
        {"data": {"ratePerGram": 168.39}}

    A non-JSON body is scanned for its first number.
    """

    accept = "application/json, text/plain, */*"

    def parse(self, body: str, observed_at: datetime) -> RawReading:
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None

        if payload is None:
            rate = first_number(body)
            if rate is None:
                raise self.malformed("no number in text payload")
            per_gram, per_kg = split_ambiguous(rate)
            return self.build_reading(per_gram, observed_at, rate_per_kg=per_kg)

        if isinstance(payload, (int, float, str)):
            rate = parse_rate(payload)
            if rate is None:
                raise self.malformed("scalar payload is not a positive number")
            per_gram, per_kg = split_ambiguous(rate)
            return self.build_reading(per_gram, observed_at, rate_per_kg=per_kg)

        if not isinstance(payload, dict):
            raise self.malformed(f"unexpected JSON {type(payload).__name__}")

        per_gram, per_kg = self._rates(payload)
        usd = parse_rate(payload.get("usdInrRate") or payload.get("usdRate"))
        return self.build_reading(
            per_gram, observed_at, rate_per_kg=per_kg, usd_inr_rate=usd
        )

    def _rates(self, payload: dict[str, Any]) -> tuple[Decimal, Decimal | None]:
        per_gram = parse_rate(payload.get("ratePerGram"))
        if per_gram is not None:
            return per_gram, None

        for key in ("rate", "price"):
            value = parse_rate(payload.get(key))
            if value is not None:
                return split_ambiguous(value)

        nested = payload.get("data")
        if isinstance(nested, dict):
            per_gram = parse_rate(nested.get("ratePerGram"))
            if per_gram is not None:
                return per_gram, None

        raise self.malformed("no positive ratePerGram, rate or price field")
