"""Source adapter protocol and the HTTP plumbing shared by every feed.

Architecture
------------
Each upstream feed gets one adapter that owns exactly one wire shape:

    Feed → HttpSourceAdapter.fetch() → parse(body) → RawReading

- **SourceAdapter** is the resolver-facing protocol. The resolver depends
  only on ``name``, ``priority`` and ``fetch()``.

- **HttpSourceAdapter** implements the transport once: hard timeout,
  request pacing, status checks and error typing. Subclasses implement
  ``parse()`` and never touch the network.

Adapters are side-effect-free and never retry. A failed fetch raises a
``SourceError`` subclass; a zero or negative rate is never returned.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

import httpx
from aiolimiter import AsyncLimiter

from bullion_rates.core.config import SourceConfig
from bullion_rates.core.exceptions import (
    AdapterInstrumentNotFound,
    AdapterMalformedPayload,
    AdapterTimeout,
    SourceError,
)
from bullion_rates.core.models import RawReading

logger = logging.getLogger(__name__)

# Applies even when the caller asks for longer.
HARD_TIMEOUT = 5.0

# Ambiguous rate/price fields above this are per-kg quotes.
PER_KG_THRESHOLD = Decimal("1000")

_CENT = Decimal("0.01")
_USER_AGENT = "Mozilla/5.0 (compatible; bullion-rates/0.1)"
_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


@runtime_checkable
class SourceAdapter(Protocol):
    """Normalizes one upstream feed into a canonical ``RawReading``."""

    @property
    def name(self) -> str: ...

    @property
    def priority(self) -> int: ...

    async def fetch(self, timeout: float | None = None) -> RawReading:
        """Return one validated reading or raise ``SourceError``."""
        ...

    async def close(self) -> None: ...


# --- Value parsing helpers ---


def parse_rate(value: Any) -> Decimal | None:
    """Parse a feed value into a positive Decimal.

    Returns None for blanks, the ``-`` placeholder, zero, negatives and
    anything non-numeric. Thousands separators are tolerated.
    """
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip().replace(",", "")
    if text in ("", "-"):
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite() or number <= 0:
        return None
    return number


def quantize_cents(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def split_ambiguous(value: Decimal) -> tuple[Decimal, Decimal]:
    """Interpret a bare rate of unknown unit as ``(per_gram, per_kg)``.

    Values above 1000 are per-kg quotes; smaller values are per-gram.
    """
    if value > PER_KG_THRESHOLD:
        return value / 1000, value
    return value, value * 1000


def first_number(text: str) -> Decimal | None:
    """Return the first positive number found in free text."""
    match = _NUMBER_RE.search(text.replace(",", ""))
    if match is None:
        return None
    return parse_rate(match.group(0))


def match_instrument(
    rows: Sequence[Mapping[str, Any]],
    instrument_id: str | None,
    instrument_name: str | None,
) -> Mapping[str, Any] | None:
    """Pick the target instrument row from a feed listing.

    Matching order:
    1. Stable identifier (``id`` field) equal to ``instrument_id``.
    2. Case-insensitive exact name match.
    3. Case-insensitive substring name match.

    Variant rows whose name contains "mini" are skipped unless the target
    name itself asks for a mini contract.
    """
    want_mini = bool(instrument_name and "mini" in instrument_name.lower())

    def eligible(row: Mapping[str, Any]) -> bool:
        name = str(row.get("name") or "").lower()
        return want_mini or "mini" not in name

    candidates = [r for r in rows if eligible(r)]

    if instrument_id is not None:
        for row in candidates:
            if str(row.get("id") or "").strip() == instrument_id:
                return row

    if instrument_name:
        target = instrument_name.strip().lower()
        for row in candidates:
            if str(row.get("name") or "").strip().lower() == target:
                return row
        for row in candidates:
            if target in str(row.get("name") or "").lower():
                return row

    return None


# --- HTTP adapter base ---


class HttpSourceAdapter:
    """Shared transport for HTTP feeds.

    Parameters
    ----------
    config : SourceConfig
        The feed's static configuration.
    client : httpx.AsyncClient | None
        Shared client. A private one is created (and closed) if None.
    hard_timeout : float
        Upper bound on any single fetch, regardless of the caller.
    """

    accept = "*/*"

    def __init__(
        self,
        config: SourceConfig,
        client: httpx.AsyncClient | None = None,
        hard_timeout: float = HARD_TIMEOUT,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=True)
        self._hard_timeout = hard_timeout
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def priority(self) -> int:
        return self._config.priority

    @property
    def config(self) -> SourceConfig:
        return self._config

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def effective_timeout(self, timeout: float | None) -> float:
        if timeout is None:
            return self._hard_timeout
        return min(timeout, self._hard_timeout)

    async def fetch(self, timeout: float | None = None) -> RawReading:
        """Fetch the feed once and parse it into a reading.

        Raises:
            AdapterTimeout: No complete answer within the effective timeout.
            AdapterMalformedPayload: Non-2xx status or unusable body.
            AdapterInstrumentNotFound: Target instrument absent from payload.
            SourceError: Transport failure (DNS, TLS, connection reset).
        """
        limit = self.effective_timeout(timeout)
        url = self._config.url
        try:
            async with asyncio.timeout(limit):
                async with self._limiter:
                    response = await self._client.get(
                        url,
                        headers={
                            "User-Agent": _USER_AGENT,
                            "Accept": self.accept,
                            **_NO_CACHE_HEADERS,
                        },
                        timeout=limit,
                    )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise AdapterTimeout(
                f"{self.name} did not answer within {limit:g}s",
                context={"source": self.name, "url": url, "timeout": limit},
            ) from e
        except httpx.RequestError as e:
            raise SourceError(
                f"{self.name} request failed: {e}",
                context={"source": self.name, "url": url, "error": str(e)},
            ) from e

        if not 200 <= response.status_code < 300:
            raise AdapterMalformedPayload(
                f"HTTP {response.status_code} from {self.name}",
                context={
                    "source": self.name,
                    "url": url,
                    "status_code": response.status_code,
                    "reason": "non-2xx status",
                },
            )

        reading = self.parse(response.text, observed_at=datetime.now(UTC))
        logger.debug(
            "%s: %s/gram (%s/kg)", self.name, reading.rate_per_gram, reading.rate_per_kg
        )
        return reading

    def parse(self, body: str, observed_at: datetime) -> RawReading:
        """Turn a response body into a reading. Implemented per wire shape."""
        raise NotImplementedError

    # --- helpers for subclasses ---

    def build_reading(
        self,
        rate_per_gram: Decimal,
        observed_at: datetime,
        rate_per_kg: Decimal | None = None,
        usd_inr_rate: Decimal | None = None,
    ) -> RawReading:
        per_gram = quantize_cents(rate_per_gram)
        if per_gram <= 0:
            raise self.malformed(f"rate rounds to {per_gram}")
        return RawReading(
            rate_per_gram=per_gram,
            rate_per_kg=rate_per_kg,
            source_name=self.name,
            observed_at=observed_at,
            usd_inr_rate=usd_inr_rate,
        )

    def malformed(self, reason: str) -> AdapterMalformedPayload:
        return AdapterMalformedPayload(
            f"{self.name}: {reason}",
            context={"source": self.name, "url": self._config.url, "reason": reason},
        )

    def not_found(self) -> AdapterInstrumentNotFound:
        return AdapterInstrumentNotFound(
            f"{self.name}: instrument {self._config.instrument_name!r} "
            f"(id {self._config.instrument_id!r}) not in payload",
            context={
                "source": self.name,
                "url": self._config.url,
                "instrument_id": self._config.instrument_id,
                "instrument_name": self._config.instrument_name,
            },
        )
