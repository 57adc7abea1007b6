"""Broadcast sink: fan-out of rate events to live subscribers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from bullion_rates.core.models import DerivedRate

logger = logging.getLogger(__name__)

RATE_UPDATE = "rateUpdate"
USD_RATE_UPDATE = "usdRateUpdate"


@dataclass(frozen=True)
class BroadcastEvent:
    """One named event with a JSON-serializable payload."""

    name: str
    data: dict[str, Any]
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@runtime_checkable
class BroadcastSink(Protocol):
    """Anything that can take a published event. Delivery is best-effort."""

    async def publish(self, event: BroadcastEvent) -> None: ...


def _num(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def rate_event(rate: DerivedRate) -> BroadcastEvent:
    return BroadcastEvent(
        name=RATE_UPDATE,
        data={
            "productId": rate.product_id,
            "productName": rate.product_name,
            "kind": str(rate.kind),
            "weight": {"value": _num(rate.weight_value), "unit": str(rate.weight_unit)},
            "purity": rate.purity,
            "ratePerGram": _num(rate.rate_per_gram),
            "totalRate": _num(rate.total_rate),
            "manualAdjustment": _num(rate.manual_adjustment),
            "usdInrRate": _num(rate.usd_inr_rate),
            "source": rate.source_name,
            "location": rate.location,
            "lastUpdated": rate.computed_at.isoformat() if rate.computed_at else None,
        },
    )


def usd_rate_event(usd_inr_rate: Decimal) -> BroadcastEvent:
    return BroadcastEvent(name=USD_RATE_UPDATE, data={"usdInrRate": _num(usd_inr_rate)})


class BroadcastHub:
    """In-process subscriber hub.

    Each subscriber gets a bounded queue. A slow subscriber whose queue
    is full loses its oldest event; publishers never wait on readers.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[BroadcastEvent]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[BroadcastEvent]:
        queue: asyncio.Queue[BroadcastEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        logger.debug("Subscriber added (%d total)", len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue[BroadcastEvent]) -> None:
        self._subscribers.discard(queue)
        logger.debug("Subscriber removed (%d total)", len(self._subscribers))

    async def publish(self, event: BroadcastEvent) -> None:
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)
