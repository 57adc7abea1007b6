"""Tests for bullion_rates.pricing.engine."""

from decimal import Decimal

import pytest

from bullion_rates.core.models import (
    BaseRateSnapshot,
    ProductDefinition,
    ProductKind,
    Purity,
    WeightUnit,
)
from bullion_rates.pricing.catalog import DEFAULT_PRODUCTS, encode_product_id
from bullion_rates.pricing.engine import (
    derive,
    derive_catalog,
    purity_multiplier,
    round_money,
    to_grams,
)


def _product(purity, value="1", unit=WeightUnit.GRAMS, kind=ProductKind.COIN):
    return ProductDefinition(
        name=f"Test {purity} {value}{unit}",
        kind=kind,
        weight_value=Decimal(value),
        weight_unit=unit,
        purity=purity,
    )


class TestScenarios:
    def test_sterling_one_gram(self, sample_snapshot):
        rate = derive(sample_snapshot, _product(Purity.STERLING))
        assert rate.rate_per_gram == Decimal("162.24")
        assert rate.total_rate == Decimal("162.24")

    def test_fine_9999_kilo_with_adjustment(self, sample_snapshot):
        product = _product(Purity.FINE_9999, "1", WeightUnit.KG, ProductKind.BAR)
        rate = derive(sample_snapshot, product, Decimal("5.00"))
        assert rate.rate_per_gram == Decimal("174.85")
        assert rate.total_rate == Decimal("174850.00")
        assert rate.manual_adjustment == Decimal("5.00")

    def test_fine_999_passes_through(self, sample_snapshot):
        rate = derive(sample_snapshot, _product(Purity.FINE, "10"))
        assert rate.rate_per_gram == Decimal("169.00")
        assert rate.total_rate == Decimal("1690.00")


class TestRules:
    def test_negative_result_clamped_to_zero(self, sample_snapshot):
        rate = derive(sample_snapshot, _product(Purity.FINE), Decimal("-500"))
        assert rate.rate_per_gram == Decimal("0.00")
        assert rate.total_rate == Decimal("0.00")

    def test_ounces_converted(self, sample_snapshot):
        rate = derive(sample_snapshot, _product(Purity.FINE, "1", WeightUnit.OZ))
        assert rate.total_rate == round_money(Decimal("169.00") * Decimal("28.35"))

    def test_unknown_purity_priced_at_base(self):
        assert purity_multiplier("80%") == Decimal("1")

    def test_to_grams(self):
        assert to_grams(Decimal("2"), WeightUnit.KG) == Decimal("2000")
        assert to_grams(Decimal("5"), WeightUnit.GRAMS) == Decimal("5")

    def test_half_up_rounding(self):
        assert round_money(Decimal("174.845")) == Decimal("174.85")
        assert round_money(Decimal("0.005")) == Decimal("0.01")

    def test_output_has_two_decimals(self, sample_snapshot):
        for product in DEFAULT_PRODUCTS:
            rate = derive(sample_snapshot, product, Decimal("0.333"))
            assert rate.rate_per_gram.as_tuple().exponent == -2
            assert rate.total_rate.as_tuple().exponent == -2
            assert rate.total_rate >= 0

    def test_deterministic(self, sample_snapshot):
        product = DEFAULT_PRODUCTS[0]
        assert derive(sample_snapshot, product, Decimal("1")) == derive(
            sample_snapshot, product, Decimal("1")
        )

    def test_metadata_carried(self, sample_snapshot):
        product = DEFAULT_PRODUCTS[0]
        rate = derive(sample_snapshot, product, location="Andhra Pradesh")
        assert rate.product_id == encode_product_id(product.name)
        assert rate.source_name == "Tabular"
        assert rate.usd_inr_rate == Decimal("89.25")
        assert rate.location == "Andhra Pradesh"
        assert rate.computed_at == sample_snapshot.last_updated_at

    def test_empty_snapshot_raises(self):
        with pytest.raises(ValueError):
            derive(BaseRateSnapshot(), DEFAULT_PRODUCTS[0])


class TestDeriveCatalog:
    def test_empty_snapshot_gives_empty_catalog(self):
        assert derive_catalog(BaseRateSnapshot(), DEFAULT_PRODUCTS) == []

    def test_all_products_priced_in_order(self, sample_snapshot):
        rates = derive_catalog(sample_snapshot, DEFAULT_PRODUCTS)
        assert [r.product_name for r in rates] == [p.name for p in DEFAULT_PRODUCTS]

    def test_adjustments_applied_by_name(self, sample_snapshot):
        rates = derive_catalog(
            sample_snapshot, DEFAULT_PRODUCTS, {"Silver Coin 1 Grams": Decimal("2.50")}
        )
        by_name = {r.product_name: r for r in rates}
        assert by_name["Silver Coin 1 Grams"].rate_per_gram == Decimal("171.50")
        assert by_name["Silver Coin 5 Grams"].rate_per_gram == Decimal("169.00")
