"""In-memory holder of the last-known-good base rate."""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from decimal import Decimal

from bullion_rates.core.models import BaseRateSnapshot, RawReading

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


class RateCache:
    """Owns the current ``BaseRateSnapshot`` and swaps it atomically.

    Snapshots are immutable; every write builds a new one under the lock
    and replaces the reference. Readers take the reference without waiting
    on any network I/O, so they see either the old or the new snapshot.

    Invariants:
    - The held rate is only ever set from a validated ``RawReading`` or a seed.
    - A failure never touches the rate fields.
    - ``last_updated_at`` never moves backwards.
    """

    def __init__(self, initial: BaseRateSnapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._snapshot = initial or BaseRateSnapshot()

    def snapshot(self) -> BaseRateSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def version(self) -> int:
        return self.snapshot().version

    def seed(
        self,
        rate_per_gram: Decimal,
        source_name: str = "seed",
        usd_inr_rate: Decimal | None = None,
        updated_at: datetime | None = None,
    ) -> BaseRateSnapshot:
        """Install a starting rate before the first live fetch.

        Fetch bookkeeping is left alone, so the first refresh is never
        throttled by a seed.
        """
        at = updated_at or utcnow()
        with self._lock:
            prev = self._snapshot
            self._snapshot = prev.model_copy(
                update={
                    "rate_per_gram": rate_per_gram,
                    "rate_per_kg": rate_per_gram * 1000,
                    "source_name": source_name,
                    "usd_inr_rate": usd_inr_rate or prev.usd_inr_rate,
                    "last_updated_at": _not_before(at, prev.last_updated_at),
                    "version": prev.version + 1,
                }
            )
            snap = self._snapshot
        logger.info("Seeded base rate %s/gram from %s", rate_per_gram, source_name)
        return snap

    def record_attempt(self, at: datetime) -> BaseRateSnapshot:
        with self._lock:
            prev = self._snapshot
            self._snapshot = prev.model_copy(
                update={"last_fetch_attempt_at": at, "version": prev.version + 1}
            )
            return self._snapshot

    def apply_success(self, reading: RawReading, at: datetime) -> BaseRateSnapshot:
        """Replace the held rate with a validated reading."""
        with self._lock:
            prev = self._snapshot
            self._snapshot = prev.model_copy(
                update={
                    "rate_per_gram": reading.rate_per_gram,
                    "rate_per_kg": reading.rate_per_kg,
                    "source_name": reading.source_name,
                    "usd_inr_rate": reading.usd_inr_rate or prev.usd_inr_rate,
                    "last_updated_at": _not_before(at, prev.last_updated_at),
                    "last_fetch_success_at": at,
                    "consecutive_failure_count": 0,
                    "version": prev.version + 1,
                }
            )
            return self._snapshot

    def apply_failure(self) -> BaseRateSnapshot:
        """Count a failed cycle. The held rate is preserved."""
        with self._lock:
            prev = self._snapshot
            self._snapshot = prev.model_copy(
                update={
                    "consecutive_failure_count": prev.consecutive_failure_count + 1,
                    "version": prev.version + 1,
                }
            )
            return self._snapshot


def _not_before(at: datetime, previous: datetime | None) -> datetime:
    if previous is not None and previous > at:
        return previous
    return at
