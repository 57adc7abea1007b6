"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# --- Type Aliases ---

ProductName = str
ProductId = str
SourceName = str
Location = str

# --- Enumerations ---


class ProductKind(StrEnum):
    """Catalog product families."""

    COIN = "coin"
    BAR = "bar"
    JEWELRY = "jewelry"


class WeightUnit(StrEnum):
    """Units a product weight may be expressed in."""

    GRAMS = "grams"
    KG = "kg"
    OZ = "oz"


class Purity(StrEnum):
    """Silver fineness grades sold in the catalog."""

    STERLING = "92.5%"
    FINE = "99.9%"
    FINE_9999 = "99.99%"


class SourceKind(StrEnum):
    """Wire shapes understood by the built-in source adapters."""

    TABULAR = "tabular"
    STREAM = "stream"
    GENERIC = "generic"


class RefreshOutcome(StrEnum):
    """Terminal state of one refresh cycle."""

    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


# --- Source Readings ---


class RawReading(BaseModel):
    """One validated base-rate observation produced by a source adapter."""

    model_config = ConfigDict(frozen=True)

    rate_per_gram: Decimal
    rate_per_kg: Decimal | None = None
    source_name: SourceName
    observed_at: datetime
    usd_inr_rate: Decimal | None = None

    @field_validator("rate_per_gram")
    @classmethod
    def rate_per_gram_positive(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v <= 0:
            raise ValueError(f"rate_per_gram must be > 0, got {v}")
        return v

    @field_validator("usd_inr_rate")
    @classmethod
    def usd_rate_positive(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and (not v.is_finite() or v <= 0):
            return None
        return v

    @model_validator(mode="after")
    def derive_rate_per_kg(self) -> RawReading:
        if self.rate_per_kg is None:
            object.__setattr__(self, "rate_per_kg", self.rate_per_gram * 1000)
        elif not self.rate_per_kg.is_finite() or self.rate_per_kg <= 0:
            raise ValueError(f"rate_per_kg must be > 0, got {self.rate_per_kg}")
        return self


class BaseRateSnapshot(BaseModel):
    """Immutable view of the base-rate cache at one moment.

    The cache never mutates a snapshot; every change produces a new one
    with a higher ``version``.
    """

    model_config = ConfigDict(frozen=True)

    rate_per_gram: Decimal | None = None
    rate_per_kg: Decimal | None = None
    source_name: SourceName | None = None
    last_updated_at: datetime | None = None
    usd_inr_rate: Decimal | None = None
    last_fetch_attempt_at: datetime | None = None
    last_fetch_success_at: datetime | None = None
    consecutive_failure_count: int = 0
    version: int = 0

    @field_validator("rate_per_gram")
    @classmethod
    def held_rate_positive(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v <= 0:
            raise ValueError(f"cached rate_per_gram must be > 0, got {v}")
        return v

    @property
    def has_rate(self) -> bool:
        return self.rate_per_gram is not None

    def age_seconds(self, now: datetime) -> float | None:
        """Seconds since the held rate was last updated, or None if empty."""
        if self.last_updated_at is None:
            return None
        return max(0.0, (now - self.last_updated_at).total_seconds())

    def is_stale(self, now: datetime, threshold: float) -> bool:
        """Stale for observability purposes; a stale rate is still served."""
        age = self.age_seconds(now)
        return age is None or age > threshold


# --- Catalog Models ---


class ProductDefinition(BaseModel):
    """A sellable catalog entry. Read-only from this subsystem's view."""

    model_config = ConfigDict(frozen=True)

    name: ProductName
    kind: ProductKind
    weight_value: Decimal
    weight_unit: WeightUnit
    purity: Purity | str

    @field_validator("weight_value")
    @classmethod
    def weight_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError(f"weight_value must be > 0, got {v}")
        return v


class DerivedRate(BaseModel):
    """A displayable per-product price computed from the base rate."""

    model_config = ConfigDict(frozen=True)

    product_id: ProductId
    product_name: ProductName
    kind: ProductKind
    weight_value: Decimal
    weight_unit: WeightUnit
    purity: str
    rate_per_gram: Decimal
    total_rate: Decimal
    source_name: SourceName | None = None
    computed_at: datetime | None = None
    manual_adjustment: Decimal = Decimal("0")
    usd_inr_rate: Decimal | None = None
    location: Location | None = None

    @field_validator("rate_per_gram", "total_rate")
    @classmethod
    def non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError(f"derived rates must be >= 0, got {v}")
        return v


class PersistedBaseRate(BaseModel):
    """The base rate recovered from the most recent stored catalog row."""

    model_config = ConfigDict(frozen=True)

    rate_per_gram: Decimal
    source_name: SourceName | None = None
    usd_inr_rate: Decimal | None = None
    last_updated: datetime
    location: Location

    @field_validator("rate_per_gram")
    @classmethod
    def stored_rate_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError(f"stored base rate must be > 0, got {v}")
        return v
