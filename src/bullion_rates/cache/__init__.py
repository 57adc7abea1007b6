"""Base-rate cache and its refresh scheduler."""

from bullion_rates.cache.rate_cache import RateCache
from bullion_rates.cache.scheduler import RateScheduler, UpdateHook

__all__ = [
    "RateCache",
    "RateScheduler",
    "UpdateHook",
]
