"""Custom exception hierarchy for bullion-rates."""

from typing import Any


class BullionRatesError(Exception):
    """Base exception for all bullion-rates errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(BullionRatesError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value
    """


class SourceError(BullionRatesError):
    """A single source adapter could not produce a reading.

    Policy: local to one adapter. The resolver turns it into "no reading"
    for that source and moves on. Never surfaced to readers.

    Context keys:
        source (str): the adapter name
        url (str): the feed URL
    """


class AdapterTimeout(SourceError):
    """The feed did not answer within the adapter's hard timeout.

    Context keys:
        timeout (float): the effective timeout in seconds
    """


class AdapterMalformedPayload(SourceError):
    """The feed answered, but the payload is unusable.

    Covers non-2xx responses, unparseable bodies and non-positive or
    non-numeric rate values.

    Context keys:
        reason (str): why the payload was rejected
        status_code (int | None): HTTP status if applicable
    """


class AdapterInstrumentNotFound(SourceError):
    """The payload parsed, but the target instrument row is absent.

    Context keys:
        instrument_id: str | None
        instrument_name: str | None
    """


class AllSourcesFailed(BullionRatesError):
    """Every consulted source failed in one resolve call.

    Policy: abort the refresh cycle, keep the last-known-good cache, count
    the failure. Never fabricate a rate.

    Context keys:
        failures (dict[str, str]): source name -> error message
    """


class StorageError(BullionRatesError):
    """Catalog store operation failed.

    Policy: log. Durability is a side channel; the in-memory cache and the
    read path never depend on it.

    Context keys:
        operation (str): "upsert", "query", "migrate", etc.
        table (str): the table involved
    """


class PersistenceUnavailable(StorageError):
    """The catalog store cannot be reached or was never initialized."""


class PersistenceRowFailed(StorageError):
    """Writing one catalog row failed. Other rows are unaffected.

    Context keys:
        product_name: str
        location: str
    """
