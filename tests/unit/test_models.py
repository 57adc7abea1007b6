"""Tests for bullion_rates.core.models."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from bullion_rates.core.models import (
    BaseRateSnapshot,
    DerivedRate,
    ProductDefinition,
    ProductKind,
    Purity,
    RawReading,
    WeightUnit,
)


class TestRawReading:
    def test_rate_per_kg_defaults_from_gram(self, observed_at):
        r = RawReading(rate_per_gram=Decimal("168.39"), source_name="A", observed_at=observed_at)
        assert r.rate_per_kg == Decimal("168390.00")

    def test_explicit_rate_per_kg_kept(self, observed_at):
        r = RawReading(
            rate_per_gram=Decimal("166.69"),
            rate_per_kg=Decimal("166685"),
            source_name="A",
            observed_at=observed_at,
        )
        assert r.rate_per_kg == Decimal("166685")

    @pytest.mark.parametrize("value", [Decimal("0"), Decimal("-1"), Decimal("NaN")])
    def test_non_positive_rate_rejected(self, observed_at, value):
        with pytest.raises(ValidationError):
            RawReading(rate_per_gram=value, source_name="A", observed_at=observed_at)

    def test_non_positive_usd_dropped(self, observed_at):
        r = RawReading(
            rate_per_gram=Decimal("1"),
            source_name="A",
            observed_at=observed_at,
            usd_inr_rate=Decimal("0"),
        )
        assert r.usd_inr_rate is None

    def test_frozen(self, sample_reading):
        with pytest.raises(ValidationError):
            sample_reading.rate_per_gram = Decimal("1")


class TestBaseRateSnapshot:
    def test_empty_snapshot(self):
        snap = BaseRateSnapshot()
        assert not snap.has_rate
        assert snap.age_seconds(datetime.now(UTC)) is None
        assert snap.is_stale(datetime.now(UTC), 30)

    def test_age_and_staleness(self, sample_snapshot, observed_at):
        later = observed_at + timedelta(seconds=45)
        assert sample_snapshot.age_seconds(later) == 45
        assert sample_snapshot.is_stale(later, 30)
        assert not sample_snapshot.is_stale(observed_at + timedelta(seconds=10), 30)

    def test_age_never_negative(self, sample_snapshot, observed_at):
        assert sample_snapshot.age_seconds(observed_at - timedelta(seconds=5)) == 0.0

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValidationError):
            BaseRateSnapshot(rate_per_gram=Decimal("0"))


class TestProductModels:
    def test_product_weight_positive(self):
        with pytest.raises(ValidationError):
            ProductDefinition(
                name="Nothing",
                kind=ProductKind.BAR,
                weight_value=Decimal("0"),
                weight_unit=WeightUnit.GRAMS,
                purity=Purity.FINE,
            )

    def test_derived_rate_non_negative(self):
        with pytest.raises(ValidationError):
            DerivedRate(
                product_id="x",
                product_name="X",
                kind=ProductKind.COIN,
                weight_value=Decimal("1"),
                weight_unit=WeightUnit.GRAMS,
                purity="99.9%",
                rate_per_gram=Decimal("-0.01"),
                total_rate=Decimal("0"),
            )

    def test_purity_values(self):
        assert [p.value for p in Purity] == ["92.5%", "99.9%", "99.99%"]
