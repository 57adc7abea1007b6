"""FastAPI route definitions for the Bullion Rates API."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

import bullion_rates
from bullion_rates.api.deps import get_service
from bullion_rates.api.schemas import (
    AdjustmentRequest,
    AdjustmentResponse,
    ForceUpdateResponse,
    HealthResponse,
    InitializeResponse,
    RateResponse,
    SnapshotResponse,
    StatusResponse,
)
from bullion_rates.service import RateService
from bullion_rates.sync.broadcast import BroadcastHub

router = APIRouter()

STREAM_KEEPALIVE = 15.0


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(service: RateService = Depends(get_service)):
    """Liveness plus storage reachability."""
    return HealthResponse(
        status="ok",
        version=bullion_rates.__version__,
        storage=await service.store.health_check(),
        has_rate=service.cache.snapshot().has_rate,
    )


# -- Rates --


@router.get("/rates", response_model=list[RateResponse])
async def list_rates(service: RateService = Depends(get_service)):
    """Current catalog prices.

    Served from the in-memory cache; a refresh is triggered but never
    awaited, so this never blocks on a feed.
    """
    service.scheduler.trigger()
    return [RateResponse.from_rate(r) for r in service.current_rates()]


@router.get("/rates/status", response_model=StatusResponse)
async def rate_status(service: RateService = Depends(get_service)):
    """Cache freshness, failure count and refresh state."""
    snap = service.cache.snapshot()
    now = datetime.now(UTC)
    refresh = service.config.refresh
    return StatusResponse(
        selection=service.resolver.selection,
        sources=list(service.resolver.adapters),
        in_flight=service.scheduler.in_flight,
        background_loop=service.scheduler.running,
        age_seconds=snap.age_seconds(now),
        stale=snap.is_stale(now, refresh.stale_after),
        subscribers=service.hub.subscriber_count,
        snapshot=SnapshotResponse.from_snapshot(snap),
    )


async def sse_events(
    request: Request,
    hub: BroadcastHub,
    queue: asyncio.Queue,
    keepalive: float = STREAM_KEEPALIVE,
) -> AsyncIterator[str]:
    """Frame hub events as server-sent events until the client goes away.

    The queue is always unsubscribed on exit.
    """
    try:
        while not await request.is_disconnected():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield f"event: {event.name}\ndata: {json.dumps(event.data)}\n\n"
    finally:
        hub.unsubscribe(queue)


@router.get("/rates/stream")
async def stream_rates(request: Request, service: RateService = Depends(get_service)):
    """Server-sent events: ``rateUpdate`` and ``usdRateUpdate``."""
    queue = service.hub.subscribe()
    return StreamingResponse(
        sse_events(request, service.hub, queue),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.put("/rates/{product_id}", response_model=AdjustmentResponse)
async def adjust_rate(
    product_id: str,
    body: AdjustmentRequest,
    service: RateService = Depends(get_service),
):
    """Set or clear a product's manual per-gram adjustment."""
    product = service.catalog.by_id(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"No product with id {product_id}")

    rate = await service.set_adjustment(product, body.manual_adjustment)
    offset = service.adjustments.get(product.name)
    return AdjustmentResponse(
        product_id=product_id,
        product_name=product.name,
        manual_adjustment=float(offset) if offset is not None else 0.0,
        rate=RateResponse.from_rate(rate) if rate is not None else None,
    )


@router.post("/rates/force-update", response_model=ForceUpdateResponse)
async def force_update(service: RateService = Depends(get_service)):
    """Bypass the throttle once and wait for the cycle to finish."""
    outcome = await service.scheduler.force_refresh()
    return ForceUpdateResponse(
        outcome=str(outcome),
        snapshot=SnapshotResponse.from_snapshot(service.cache.snapshot()),
    )


@router.post("/rates/initialize", response_model=InitializeResponse)
async def initialize_rates(service: RateService = Depends(get_service)):
    """Write the whole catalog from the current cache."""
    report = await service.initialize_catalog()
    return InitializeResponse(
        location=report.location,
        persisted=report.persisted,
        failed=report.failed,
        rates=[RateResponse.from_rate(r) for r in service.current_rates()],
    )
