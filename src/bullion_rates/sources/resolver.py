"""Multi-source resolver: consult adapters, return the best reading."""

from __future__ import annotations

import asyncio
import logging

from bullion_rates.core.config import MULTI_SOURCE
from bullion_rates.core.exceptions import AllSourcesFailed, ConfigError
from bullion_rates.core.models import RawReading
from bullion_rates.sources.base import HARD_TIMEOUT, SourceAdapter

logger = logging.getLogger(__name__)


class SourceResolver:
    """Resolves one base-rate reading from the configured adapters.

    Modes:
    - single: ``selection`` names one adapter; exactly that adapter is called.
    - multi: every adapter runs concurrently under its own timeout. All are
      allowed to settle, then the success with the lowest priority number
      wins. Equal priorities fall back to the adapter table's order, which
      is configuration order.

    Parameters
    ----------
    adapters : dict[str, SourceAdapter]
        Name -> adapter lookup table, as built by ``build_adapters``.
    selection : str
        ``"multi"`` or the name of a single adapter.
    adapter_timeout : float
        Timeout handed to each adapter (adapters cap it at their own bound).
    """

    def __init__(
        self,
        adapters: dict[str, SourceAdapter],
        selection: str = MULTI_SOURCE,
        adapter_timeout: float = HARD_TIMEOUT,
    ) -> None:
        if selection != MULTI_SOURCE and selection not in adapters:
            raise ConfigError(
                f"Selected source {selection!r} is not an enabled adapter",
                context={"field": "selection", "value": selection},
            )
        self._adapters = adapters
        self._selection = selection
        self._timeout = adapter_timeout

    @property
    def selection(self) -> str:
        return self._selection

    @property
    def adapters(self) -> dict[str, SourceAdapter]:
        return dict(self._adapters)

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()

    async def resolve(self) -> RawReading:
        """Return the best available reading.

        Raises:
            AllSourcesFailed: No consulted adapter produced a reading.
        """
        if self._selection != MULTI_SOURCE:
            return await self.resolve_source(self._selection)
        return await self._resolve_multi()

    async def resolve_source(self, name: str) -> RawReading:
        """Call exactly one named adapter."""
        adapter = self._adapters.get(name)
        if adapter is None:
            raise AllSourcesFailed(
                f"Source {name!r} is not enabled",
                context={"failures": {name: "not enabled"}},
            )
        try:
            return await adapter.fetch(self._timeout)
        except Exception as e:
            raise AllSourcesFailed(
                f"Source {name!r} failed: {e}",
                context={"failures": {name: str(e)}},
            ) from e

    async def _resolve_multi(self) -> RawReading:
        if not self._adapters:
            raise AllSourcesFailed(
                "No rate sources enabled", context={"failures": {}}
            )

        ordered = sorted(
            enumerate(self._adapters.values()),
            key=lambda pair: (pair[1].priority, pair[0]),
        )
        adapters = [adapter for _, adapter in ordered]
        results = await asyncio.gather(
            *(adapter.fetch(self._timeout) for adapter in adapters),
            return_exceptions=True,
        )

        failures: dict[str, str] = {}
        best: RawReading | None = None
        for adapter, result in zip(adapters, results):
            if isinstance(result, RawReading):
                if best is None:
                    best = result
                continue
            if isinstance(result, Exception):
                failures[adapter.name] = f"{type(result).__name__}: {result}"
                logger.debug("Source '%s' gave no reading: %s", adapter.name, result)
                continue
            raise result

        if best is not None:
            if failures:
                logger.debug(
                    "Resolved from '%s' after %d source failure(s)",
                    best.source_name,
                    len(failures),
                )
            return best

        raise AllSourcesFailed(
            f"All {len(adapters)} rate sources failed",
            context={"failures": failures},
        )
