"""The fixed product catalog and opaque product ids."""

from __future__ import annotations

import base64
import binascii
import re
from decimal import Decimal

from bullion_rates.core.models import ProductDefinition, ProductKind, Purity, WeightUnit

_ID_RE = re.compile(r"[A-Za-z0-9_-]*")


def encode_product_id(name: str) -> str:
    """URL-safe base64 of the product name, padding stripped."""
    return base64.urlsafe_b64encode(name.encode("utf-8")).decode("ascii").rstrip("=")


def decode_product_id(product_id: str) -> str:
    """Inverse of ``encode_product_id``.

    Raises:
        ValueError: The id is not valid URL-safe base64 of UTF-8 text.
    """
    if not _ID_RE.fullmatch(product_id):
        raise ValueError(f"invalid product id: {product_id!r}")
    padded = product_id + "=" * (-len(product_id) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeError) as e:
        raise ValueError(f"invalid product id: {product_id!r}") from e


def _coin(grams: int) -> ProductDefinition:
    return ProductDefinition(
        name=f"Silver Coin {grams} Grams",
        kind=ProductKind.COIN,
        weight_value=Decimal(grams),
        weight_unit=WeightUnit.GRAMS,
        purity=Purity.FINE,
    )


DEFAULT_PRODUCTS: tuple[ProductDefinition, ...] = (
    *(_coin(g) for g in (1, 5, 10, 50, 100)),
    ProductDefinition(
        name="Silver Bar 100 Grams",
        kind=ProductKind.BAR,
        weight_value=Decimal("100"),
        weight_unit=WeightUnit.GRAMS,
        purity=Purity.FINE_9999,
    ),
    ProductDefinition(
        name="Silver Bar 500 Grams",
        kind=ProductKind.BAR,
        weight_value=Decimal("500"),
        weight_unit=WeightUnit.GRAMS,
        purity=Purity.FINE_9999,
    ),
    ProductDefinition(
        name="Silver Bar 1 Kg",
        kind=ProductKind.BAR,
        weight_value=Decimal("1"),
        weight_unit=WeightUnit.KG,
        purity=Purity.FINE_9999,
    ),
    ProductDefinition(
        name="Silver Jewelry 92.5%",
        kind=ProductKind.JEWELRY,
        weight_value=Decimal("1"),
        weight_unit=WeightUnit.GRAMS,
        purity=Purity.STERLING,
    ),
    ProductDefinition(
        name="Silver Jewelry 99.9%",
        kind=ProductKind.JEWELRY,
        weight_value=Decimal("1"),
        weight_unit=WeightUnit.GRAMS,
        purity=Purity.FINE,
    ),
)


class ProductCatalog:
    """Name- and id-addressable view over a fixed product list."""

    def __init__(self, products: tuple[ProductDefinition, ...] = DEFAULT_PRODUCTS) -> None:
        names = [p.name for p in products]
        if len(set(names)) != len(names):
            raise ValueError("product names must be unique")
        self._products = products
        self._by_name = {p.name: p for p in products}

    def __iter__(self):
        return iter(self._products)

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def products(self) -> tuple[ProductDefinition, ...]:
        return self._products

    def get(self, name: str) -> ProductDefinition | None:
        return self._by_name.get(name)

    def by_id(self, product_id: str) -> ProductDefinition | None:
        try:
            name = decode_product_id(product_id)
        except ValueError:
            return None
        return self._by_name.get(name)
