"""Derived-rate engine: base rate + product + adjustment -> display price.

Pure functions only. Given the same inputs, ``derive`` always returns the
same ``DerivedRate``; it reads no clocks and touches no state.

Pipeline per product:
    1. Purity multiplier on the base per-gram rate.
    2. Add the manual per-gram adjustment.
    3. Clamp at zero.
    4. Round to 2 decimals (half-up) -> ``rate_per_gram``.
    5. Convert the product weight to grams.
    6. ``total_rate = round(rate_per_gram * grams, 2)``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping

from bullion_rates.core.models import (
    BaseRateSnapshot,
    DerivedRate,
    ProductDefinition,
    Purity,
    WeightUnit,
)
from bullion_rates.pricing.catalog import encode_product_id

_CENT = Decimal("0.01")
_ZERO = Decimal("0")

PURITY_MULTIPLIERS: dict[str, Decimal] = {
    Purity.STERLING: Decimal("0.96"),
    Purity.FINE_9999: Decimal("1.005"),
}

GRAMS_PER_UNIT: dict[WeightUnit, Decimal] = {
    WeightUnit.GRAMS: Decimal("1"),
    WeightUnit.KG: Decimal("1000"),
    WeightUnit.OZ: Decimal("28.35"),
}


def round_money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def purity_multiplier(purity: str) -> Decimal:
    """Multiplier for a purity grade; unknown grades price at base."""
    return PURITY_MULTIPLIERS.get(str(purity), Decimal("1"))


def to_grams(weight_value: Decimal, weight_unit: WeightUnit) -> Decimal:
    return weight_value * GRAMS_PER_UNIT.get(weight_unit, Decimal("1"))


def derive(
    base: BaseRateSnapshot,
    product: ProductDefinition,
    adjustment: Decimal | None = None,
    location: str | None = None,
    computed_at: datetime | None = None,
) -> DerivedRate:
    """Price one product from the base rate.

    Args:
        base: Snapshot holding a rate. An empty snapshot raises ValueError.
        product: Catalog entry.
        adjustment: Signed per-gram offset; None means no adjustment.
        location: Catalog location stamped onto the row.
        computed_at: Defaults to the snapshot's ``last_updated_at``.
    """
    if base.rate_per_gram is None:
        raise ValueError("cannot derive rates from an empty snapshot")

    offset = adjustment if adjustment is not None else _ZERO
    per_gram = base.rate_per_gram * purity_multiplier(product.purity) + offset
    per_gram = round_money(max(per_gram, _ZERO))
    total = round_money(per_gram * to_grams(product.weight_value, product.weight_unit))

    return DerivedRate(
        product_id=encode_product_id(product.name),
        product_name=product.name,
        kind=product.kind,
        weight_value=product.weight_value,
        weight_unit=product.weight_unit,
        purity=str(product.purity),
        rate_per_gram=per_gram,
        total_rate=total,
        source_name=base.source_name,
        computed_at=computed_at or base.last_updated_at,
        manual_adjustment=offset,
        usd_inr_rate=base.usd_inr_rate,
        location=location,
    )


def derive_catalog(
    base: BaseRateSnapshot,
    products: Iterable[ProductDefinition],
    adjustments: Mapping[str, Decimal] | None = None,
    location: str | None = None,
) -> list[DerivedRate]:
    """Price every product. Returns ``[]`` when no base rate is held."""
    if not base.has_rate:
        return []
    adjustments = adjustments or {}
    return [
        derive(base, product, adjustments.get(product.name), location=location)
        for product in products
    ]
