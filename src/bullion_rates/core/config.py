"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from bullion_rates.core.exceptions import ConfigError
from bullion_rates.core.models import SourceKind

MULTI_SOURCE = "multi"


class SourceConfig(BaseModel):
    """One upstream feed and how to read it."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: SourceKind
    url: str = ""
    enabled: bool = True
    priority: int = 1
    instrument_id: str | None = None
    instrument_name: str | None = None
    rate_limit: float = 2.0

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source name must not be blank")
        return v.strip()

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("rate_limit must be > 0 requests/second")
        return v

    @model_validator(mode="after")
    def enabled_source_needs_url(self) -> SourceConfig:
        if self.enabled and not self.url.strip():
            raise ValueError(f"source {self.name!r} is enabled but has no url")
        return self


def _default_sources() -> list[SourceConfig]:
    return [
        SourceConfig(
            name="RB Goldspot",
            kind=SourceKind.TABULAR,
            url=(
                "https://bcast.rbgoldspot.com:7768/VOTSBroadcastStreaming"
                "/Services/xml/GetLiveRateByTemplateID/rbgold"
            ),
            priority=1,
            instrument_id="2966",
            instrument_name="Silver 999",
        ),
        SourceConfig(
            name="Vercel",
            kind=SourceKind.STREAM,
            url="https://jainsilverpp1.vercel.app/prices/stream",
            priority=2,
            instrument_id="2966",
            instrument_name="Silver 999",
        ),
        SourceConfig(
            name="Custom",
            kind=SourceKind.GENERIC,
            url=os.environ.get("CUSTOM_RATE_URL", ""),
            enabled=False,
            priority=3,
        ),
    ]


class RefreshConfig(BaseModel):
    """Throttle, timeout and background-loop settings for cache refresh."""

    model_config = ConfigDict(frozen=True)

    min_interval: float = 1.0
    staleness_override: float = 2.0
    outer_timeout: float = 8.0
    adapter_timeout: float = 5.0
    loop_period: float = 1.0
    background_loop: bool = True
    failure_log_every: int = 10
    stale_after: float = 30.0

    @field_validator("min_interval", "outer_timeout", "adapter_timeout", "loop_period")
    @classmethod
    def positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("intervals and timeouts must be > 0 seconds")
        return v

    @field_validator("failure_log_every")
    @classmethod
    def log_every_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("failure_log_every must be >= 1")
        return v

    @model_validator(mode="after")
    def override_not_below_throttle(self) -> RefreshConfig:
        if self.staleness_override < self.min_interval:
            raise ValueError("staleness_override must be >= min_interval")
        return self


class CatalogConfig(BaseModel):
    """Catalog location and seed values used before the first live fetch."""

    model_config = ConfigDict(frozen=True)

    location: str = "Andhra Pradesh"
    seed_rate_per_gram: Decimal | None = Decimal("75.50")
    default_usd_inr_rate: Decimal = Decimal("89.25")

    @field_validator("seed_rate_per_gram")
    @classmethod
    def seed_positive(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v <= 0:
            raise ValueError("seed_rate_per_gram must be > 0 or null")
        return v


class StorageConfig(BaseModel):
    """Catalog store configuration."""

    model_config = ConfigDict(frozen=True)

    sqlite_path: str = "./data/bullion_rates.db"


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    admin_token: str | None = None


class LoggingConfig(BaseModel):
    """Root log level used by the CLI."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def known_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v!r}")
        return upper


class RatesConfig(BaseModel):
    """Root configuration for the entire bullion-rates system."""

    model_config = ConfigDict(frozen=True)

    sources: list[SourceConfig] = Field(default_factory=_default_sources)
    selection: str = MULTI_SOURCE
    refresh: RefreshConfig = RefreshConfig()
    catalog: CatalogConfig = CatalogConfig()
    storage: StorageConfig = StorageConfig()
    api: APIConfig = APIConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("sources")
    @classmethod
    def unique_source_names(cls, v: list[SourceConfig]) -> list[SourceConfig]:
        names = [s.name for s in v]
        dupes = {n for n in names if names.count(n) > 1}
        if dupes:
            raise ValueError(f"duplicate source names: {sorted(dupes)}")
        return v

    @model_validator(mode="after")
    def selection_names_enabled_source(self) -> RatesConfig:
        if self.selection == MULTI_SOURCE:
            return self
        match = [s for s in self.sources if s.name == self.selection]
        if not match:
            raise ValueError(f"selection {self.selection!r} names no configured source")
        if not match[0].enabled:
            raise ValueError(f"selection {self.selection!r} names a disabled source")
        return self

    @property
    def enabled_sources(self) -> list[SourceConfig]:
        """Enabled sources in priority order, configuration order breaking ties."""
        indexed = [(s.priority, i, s) for i, s in enumerate(self.sources) if s.enabled]
        return [s for _, _, s in sorted(indexed, key=lambda t: (t[0], t[1]))]


def load_config(
    config_path: str | None = None,
    env_prefix: str = "BULLION_RATES_",
) -> RatesConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (BULLION_RATES_REFRESH__MIN_INTERVAL, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        BULLION_RATES_CATALOG__LOCATION=Telangana  ->  catalog.location = "Telangana"
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return RatesConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("BULLION_RATES_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from BULLION_RATES_CONFIG not found: {env_path}",
                context={"field": "BULLION_RATES_CONFIG", "value": env_path},
            )
        return p

    default = Path("bullion-rates.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    The ``sources`` list is YAML-only; env vars cannot address list items.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        # Skip the CONFIG env var itself
        if parts == ["config"]:
            continue
        if parts[0] == "sources":
            continue

        cast_value = value if _is_text_field(parts) else _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = dict(target.get(part) or {})
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _is_text_field(parts: list[str]) -> bool:
    """True when the dotted key names a ``str`` field (kept verbatim, never cast)."""
    model: type[BaseModel] = RatesConfig
    for part in parts[:-1]:
        field = model.model_fields.get(part)
        annotation = field.annotation if field is not None else None
        if not (isinstance(annotation, type) and issubclass(annotation, BaseModel)):
            return False
        model = annotation
    field = model.model_fields.get(parts[-1])
    return field is not None and field.annotation in (str, str | None)


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
