"""Live base-rate sources.

Architecture
------------
One adapter per wire shape, dispatched by ``SourceKind``:

    Feed → SourceAdapter.fetch() → RawReading → SourceResolver → RateCache

- ``TabularFeedAdapter``: tab-delimited broadcast rows, per-kg quotes.
- ``StreamFeedAdapter``: server-sent events or plain JSON price lists.
- ``GenericFeedAdapter``: ad-hoc JSON or text from an operator endpoint.

Adding a new feed:
1. Subclass ``HttpSourceAdapter`` and implement ``parse(body, observed_at)``.
2. Register it: ``registry.register(kind, MyAdapter)``.
"""

from bullion_rates.sources.base import (
    HARD_TIMEOUT,
    HttpSourceAdapter,
    SourceAdapter,
    match_instrument,
    parse_rate,
)
from bullion_rates.sources.generic import GenericFeedAdapter
from bullion_rates.sources.registry import SourceRegistry, build_adapters, registry
from bullion_rates.sources.resolver import SourceResolver
from bullion_rates.sources.stream import StreamFeedAdapter
from bullion_rates.sources.tabular import TabularFeedAdapter

__all__ = [
    "HARD_TIMEOUT",
    "GenericFeedAdapter",
    "HttpSourceAdapter",
    "SourceAdapter",
    "SourceRegistry",
    "SourceResolver",
    "StreamFeedAdapter",
    "TabularFeedAdapter",
    "build_adapters",
    "match_instrument",
    "parse_rate",
    "registry",
]
