"""API-specific request/response schemas (Pydantic v2)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, field_validator

from bullion_rates.core.models import BaseRateSnapshot, DerivedRate
from bullion_rates.pricing.adjustments import check_offset


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Rates --


class WeightResponse(BaseModel):
    value: float
    unit: str


class RateResponse(BaseModel):
    """One catalog row in API response format."""

    product_id: str
    product_name: str
    kind: str
    weight: WeightResponse
    purity: str
    rate_per_gram: float
    total_rate: float
    manual_adjustment: float
    usd_inr_rate: float | None = None
    source: str | None = None
    location: str | None = None
    last_updated: datetime | None = None

    @classmethod
    def from_rate(cls, rate: DerivedRate) -> RateResponse:
        return cls(
            product_id=rate.product_id,
            product_name=rate.product_name,
            kind=str(rate.kind),
            weight=WeightResponse(value=float(rate.weight_value), unit=str(rate.weight_unit)),
            purity=rate.purity,
            rate_per_gram=float(rate.rate_per_gram),
            total_rate=float(rate.total_rate),
            manual_adjustment=float(rate.manual_adjustment),
            usd_inr_rate=float(rate.usd_inr_rate) if rate.usd_inr_rate is not None else None,
            source=rate.source_name,
            location=rate.location,
            last_updated=rate.computed_at,
        )


class AdjustmentRequest(BaseModel):
    """Signed per-gram offset; null clears the adjustment."""

    manual_adjustment: Decimal | None = None

    @field_validator("manual_adjustment")
    @classmethod
    def offset_in_range(cls, v: Decimal | None) -> Decimal | None:
        return check_offset(v) if v is not None else None


class AdjustmentResponse(BaseModel):
    product_id: str
    product_name: str
    manual_adjustment: float
    rate: RateResponse | None = None


# -- Cache --


class SnapshotResponse(BaseModel):
    """Base-rate cache state."""

    rate_per_gram: float | None = None
    rate_per_kg: float | None = None
    source: str | None = None
    usd_inr_rate: float | None = None
    last_updated_at: datetime | None = None
    last_fetch_attempt_at: datetime | None = None
    last_fetch_success_at: datetime | None = None
    consecutive_failure_count: int = 0
    version: int = 0

    @classmethod
    def from_snapshot(cls, snap: BaseRateSnapshot) -> SnapshotResponse:
        def num(v: Decimal | None) -> float | None:
            return float(v) if v is not None else None

        return cls(
            rate_per_gram=num(snap.rate_per_gram),
            rate_per_kg=num(snap.rate_per_kg),
            source=snap.source_name,
            usd_inr_rate=num(snap.usd_inr_rate),
            last_updated_at=snap.last_updated_at,
            last_fetch_attempt_at=snap.last_fetch_attempt_at,
            last_fetch_success_at=snap.last_fetch_success_at,
            consecutive_failure_count=snap.consecutive_failure_count,
            version=snap.version,
        )


class ForceUpdateResponse(BaseModel):
    outcome: str
    snapshot: SnapshotResponse


class StatusResponse(BaseModel):
    """Cache health for operators."""

    selection: str
    sources: list[str]
    in_flight: bool
    background_loop: bool
    age_seconds: float | None = None
    stale: bool
    subscribers: int
    snapshot: SnapshotResponse


class InitializeResponse(BaseModel):
    location: str
    persisted: list[str]
    failed: dict[str, str]
    rates: list[RateResponse]


# -- Health --


class HealthResponse(BaseModel):
    status: str
    version: str
    storage: bool
    has_rate: bool
