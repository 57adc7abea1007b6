"""bullion_rates.core: Foundation types, config, and exceptions."""

from bullion_rates.core.config import (
    MULTI_SOURCE,
    APIConfig,
    CatalogConfig,
    LoggingConfig,
    RatesConfig,
    RefreshConfig,
    SourceConfig,
    StorageConfig,
    load_config,
)
from bullion_rates.core.exceptions import (
    AdapterInstrumentNotFound,
    AdapterMalformedPayload,
    AdapterTimeout,
    AllSourcesFailed,
    BullionRatesError,
    ConfigError,
    PersistenceRowFailed,
    PersistenceUnavailable,
    SourceError,
    StorageError,
)
from bullion_rates.core.models import (
    BaseRateSnapshot,
    DerivedRate,
    Location,
    PersistedBaseRate,
    ProductDefinition,
    ProductId,
    ProductKind,
    ProductName,
    Purity,
    RawReading,
    RefreshOutcome,
    SourceKind,
    SourceName,
    WeightUnit,
)

__all__ = [
    # Type aliases
    "ProductName",
    "ProductId",
    "SourceName",
    "Location",
    # Enums
    "ProductKind",
    "WeightUnit",
    "Purity",
    "SourceKind",
    "RefreshOutcome",
    # Models
    "RawReading",
    "BaseRateSnapshot",
    "ProductDefinition",
    "DerivedRate",
    "PersistedBaseRate",
    # Config
    "MULTI_SOURCE",
    "RatesConfig",
    "SourceConfig",
    "RefreshConfig",
    "CatalogConfig",
    "StorageConfig",
    "APIConfig",
    "LoggingConfig",
    "load_config",
    # Exceptions
    "BullionRatesError",
    "ConfigError",
    "SourceError",
    "AdapterTimeout",
    "AdapterMalformedPayload",
    "AdapterInstrumentNotFound",
    "AllSourcesFailed",
    "StorageError",
    "PersistenceUnavailable",
    "PersistenceRowFailed",
]
