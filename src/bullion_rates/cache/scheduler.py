"""Refresh scheduling for the base-rate cache.

One refresh cycle:

    Idle → Fetching → {Updated | Unchanged | Failed} → Idle

Triggers come from readers (``trigger()``, never awaited), from the
background loop and from operators (``force_refresh()``). At most one
resolve is in flight; concurrent triggers collapse into it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, Coroutine

from bullion_rates.cache.rate_cache import RateCache, utcnow
from bullion_rates.core.config import RefreshConfig
from bullion_rates.core.exceptions import AllSourcesFailed
from bullion_rates.core.models import BaseRateSnapshot, RawReading, RefreshOutcome
from bullion_rates.sources.resolver import SourceResolver

logger = logging.getLogger(__name__)

UpdateHook = Callable[[BaseRateSnapshot], Awaitable[Any]]


class RateScheduler:
    """Drives refresh cycles against a ``RateCache``.

    Parameters
    ----------
    cache : RateCache
        The cache this scheduler writes to.
    resolver : SourceResolver
        Produces readings.
    config : RefreshConfig
        Throttle, timeout and loop settings.
    on_update : UpdateHook | None
        Awaited as a tracked background task after each successful update
        (catalog sync). Its failures are logged, never propagated.
    monotonic : Callable[[], float]
        Clock for throttle arithmetic. Injectable for tests.
    """

    def __init__(
        self,
        cache: RateCache,
        resolver: SourceResolver,
        config: RefreshConfig | None = None,
        on_update: UpdateHook | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache = cache
        self._resolver = resolver
        self._config = config or RefreshConfig()
        self._on_update = on_update
        self._monotonic = monotonic

        self._inflight: asyncio.Task[RefreshOutcome] | None = None
        self._generation = 0
        self._last_attempt: float | None = None
        self._last_success: float | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._loop_task: asyncio.Task[None] | None = None

    # --- Introspection ---

    @property
    def cache(self) -> RateCache:
        return self._cache

    @property
    def resolver(self) -> SourceResolver:
        return self._resolver

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def should_attempt(self) -> bool:
        """Throttle check.

        Attempt when no attempt was ever made, when ``min_interval`` has
        passed since the last attempt, or when the last success is older
        than ``staleness_override``.
        """
        now = self._monotonic()
        if self._last_attempt is None:
            return True
        if now - self._last_attempt >= self._config.min_interval:
            return True
        if self._last_success is None:
            return True
        return now - self._last_success > self._config.staleness_override

    # --- Triggers ---

    def trigger(self) -> asyncio.Task[RefreshOutcome] | None:
        """Start a cycle if none is in flight and the throttle allows.

        Returns the started task, or None when the trigger was a no-op.
        Never blocks; safe to call from any request handler.
        """
        if self.in_flight or not self.should_attempt():
            return None
        return self._start_cycle()

    async def refresh(self, force: bool = False) -> RefreshOutcome:
        """Run one cycle and wait for its outcome.

        A forced refresh bypasses the throttle and joins an in-flight cycle
        instead of starting a second one. An unforced refresh that is
        throttled or finds a cycle in flight returns ``UNCHANGED``.
        """
        if self.in_flight:
            if not force:
                return RefreshOutcome.UNCHANGED
            return await asyncio.shield(self._inflight)
        if not force and not self.should_attempt():
            return RefreshOutcome.UNCHANGED
        return await asyncio.shield(self._start_cycle())

    async def force_refresh(self) -> RefreshOutcome:
        return await self.refresh(force=True)

    # --- Background loop ---

    def start(self) -> None:
        """Start the periodic refresh loop on the running event loop."""
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._loop(), name="rate-refresh-loop")
        logger.info(
            "Background refresh loop started (every %gs)", self._config.loop_period
        )

    async def stop(self) -> None:
        """Stop the loop and cancel outstanding cycles and sync tasks."""
        self._generation += 1
        tasks: list[asyncio.Task[Any]] = []
        if self._loop_task is not None:
            tasks.append(self._loop_task)
            self._loop_task = None
        if self._inflight is not None:
            tasks.append(self._inflight)
        tasks.extend(self._background)

        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Background refresh stopped")

    async def drain(self) -> None:
        """Wait for the in-flight cycle and every queued sync task."""
        if self._inflight is not None:
            await asyncio.wait({self._inflight})
        while self._background:
            await asyncio.wait(set(self._background))

    async def _loop(self) -> None:
        while True:
            self.trigger()
            await asyncio.sleep(self._config.loop_period)

    # --- Cycle ---

    def _start_cycle(self) -> asyncio.Task[RefreshOutcome]:
        task = asyncio.create_task(
            self._run_cycle(self._generation), name="rate-refresh-cycle"
        )
        self._inflight = task
        task.add_done_callback(self._cycle_done)
        return task

    def _cycle_done(self, task: asyncio.Task[RefreshOutcome]) -> None:
        if self._inflight is task:
            self._inflight = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Refresh cycle crashed: %s", exc, exc_info=exc)

    async def _run_cycle(self, generation: int) -> RefreshOutcome:
        self._last_attempt = self._monotonic()
        self._cache.record_attempt(utcnow())

        resolve = asyncio.create_task(self._resolver.resolve(), name="rate-resolve")
        try:
            done, _ = await asyncio.wait({resolve}, timeout=self._config.outer_timeout)
        except asyncio.CancelledError:
            resolve.cancel()
            raise

        if not done:
            self._generation += 1
            resolve.add_done_callback(self._discard_late)
            self._record_failure(
                f"resolve exceeded {self._config.outer_timeout:g}s, attempt abandoned"
            )
            return RefreshOutcome.FAILED

        try:
            reading = resolve.result()
        except AllSourcesFailed as e:
            self._record_failure(str(e), e.context.get("failures"))
            return RefreshOutcome.FAILED
        except Exception as e:
            logger.error("Resolver raised unexpectedly: %s", e, exc_info=True)
            self._record_failure(str(e))
            return RefreshOutcome.FAILED

        if generation != self._generation:
            logger.info(
                "Discarding reading from %s: superseded attempt", reading.source_name
            )
            return RefreshOutcome.UNCHANGED

        return self._apply(reading)

    def _apply(self, reading: RawReading) -> RefreshOutcome:
        prev = self._cache.snapshot()
        snapshot = self._cache.apply_success(reading, utcnow())
        self._last_success = self._monotonic()

        if prev.consecutive_failure_count:
            logger.info(
                "Rate feed recovered after %d failure(s) via %s",
                prev.consecutive_failure_count,
                reading.source_name,
            )
        if prev.rate_per_gram != snapshot.rate_per_gram:
            logger.debug(
                "Base rate %s -> %s/gram (%s)",
                prev.rate_per_gram,
                snapshot.rate_per_gram,
                snapshot.source_name,
            )

        if self._on_update is not None:
            self._spawn(self._on_update(snapshot))
        return RefreshOutcome.UPDATED

    def _record_failure(
        self, reason: str, failures: dict[str, str] | None = None
    ) -> None:
        count = self._cache.apply_failure().consecutive_failure_count
        if count == 1 or count % self._config.failure_log_every == 0:
            logger.warning(
                "Rate refresh failed (%d consecutive): %s%s",
                count,
                reason,
                f" {failures}" if failures else "",
            )

    def _discard_late(self, task: asyncio.Task[RawReading]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Abandoned resolve finished with error: %s", exc)
            return
        logger.info(
            "Discarding late reading %s/gram from %s",
            task.result().rate_per_gram,
            task.result().source_name,
        )

    # --- Tracked background work ---

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)
        return task

    def _background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Post-update task failed: %s", exc, exc_info=exc)
