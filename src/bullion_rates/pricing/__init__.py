"""Pricing: fixed catalog, manual adjustments, and the derived-rate engine."""

from bullion_rates.pricing.adjustments import MAX_OFFSET, ManualAdjustments, check_offset
from bullion_rates.pricing.catalog import (
    DEFAULT_PRODUCTS,
    ProductCatalog,
    decode_product_id,
    encode_product_id,
)
from bullion_rates.pricing.engine import (
    derive,
    derive_catalog,
    purity_multiplier,
    round_money,
    to_grams,
)

__all__ = [
    "DEFAULT_PRODUCTS",
    "MAX_OFFSET",
    "ManualAdjustments",
    "ProductCatalog",
    "check_offset",
    "decode_product_id",
    "derive",
    "derive_catalog",
    "encode_product_id",
    "purity_multiplier",
    "round_money",
    "to_grams",
]
