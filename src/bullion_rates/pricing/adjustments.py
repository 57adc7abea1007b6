"""Manual per-gram price adjustments, keyed by product name."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Mapping

from bullion_rates.core.exceptions import StorageError
from bullion_rates.storage.store import CatalogStore

logger = logging.getLogger(__name__)

MAX_OFFSET = Decimal("100000")


def check_offset(offset: Decimal) -> Decimal:
    """Validate a per-gram offset: finite, within +/-MAX_OFFSET, at most 2 decimals.

    Raises:
        ValueError: The offset cannot be priced.
    """
    if not offset.is_finite():
        raise ValueError("offset must be finite")
    if abs(offset) > MAX_OFFSET:
        raise ValueError(f"offset must be within +/-{MAX_OFFSET}")
    if offset != 0 and offset.normalize().as_tuple().exponent < -2:
        raise ValueError("offset must have at most 2 decimal places")
    return offset


class ManualAdjustments:
    """In-memory adjustment map with optional write-through persistence.

    Reads never touch the store. A failed write is logged and the
    in-memory value still takes effect, so pricing never depends on
    durability.
    """

    def __init__(
        self,
        store: CatalogStore | None = None,
        initial: Mapping[str, Decimal] | None = None,
    ) -> None:
        self._store = store
        self._offsets: dict[str, Decimal] = dict(initial or {})

    def get(self, product_name: str) -> Decimal | None:
        return self._offsets.get(product_name)

    def snapshot(self) -> dict[str, Decimal]:
        return dict(self._offsets)

    def __len__(self) -> int:
        return len(self._offsets)

    async def load(self) -> int:
        """Replace the in-memory map with the persisted one."""
        if self._store is None:
            return 0
        try:
            stored = await self._store.load_adjustments()
        except StorageError as e:
            logger.warning("Could not load manual adjustments: %s", e)
            return 0
        self._offsets = {}
        for name, offset in stored.items():
            try:
                self._offsets[name] = check_offset(offset)
            except ValueError as e:
                logger.warning("Ignoring stored adjustment for %s: %s", name, e)
        logger.info("Loaded %d manual adjustment(s)", len(self._offsets))
        return len(self._offsets)

    async def set(self, product_name: str, offset: Decimal | None) -> bool:
        """Set (or clear, with None/zero) a product's offset.

        Returns True when the change was also persisted.

        Raises:
            ValueError: The offset fails ``check_offset``; nothing changes.
        """
        if offset is not None:
            check_offset(offset)
        if offset is None or offset == 0:
            self._offsets.pop(product_name, None)
        else:
            self._offsets[product_name] = offset

        if self._store is None:
            return False
        try:
            if product_name in self._offsets:
                await self._store.save_adjustment(product_name, offset)
            else:
                await self._store.delete_adjustment(product_name)
        except StorageError as e:
            logger.warning("Adjustment for %s not persisted: %s", product_name, e)
            return False
        return True
