"""livequery - reactive in-process query cache for asyncio."""

# Controllers
from livequery.client import QueryClient, create_client

# Duration parsing
from livequery.duration import parse_duration
from livequery.errors import InvalidQueryKeyError, LiveQueryError, QueryClosedError

# Invalidation API
from livequery.invalidation import (
    clear_query_cache,
    get_query_data,
    invalidate_query,
    set_query_data,
)
from livequery.keys import KEY_DELIMITER, canonical_key
from livequery.mutation import Mutation
from livequery.query import Query
from livequery.scheduler import FocusManager, IntervalTimer
from livequery.store import QueryStore

# Core types
from livequery.types import (
    CacheEntry,
    Duration,
    MutationOptions,
    QueryKey,
    QueryOptions,
)

__version__ = "0.1.0"

__all__ = [
    "KEY_DELIMITER",
    "CacheEntry",
    "Duration",
    "FocusManager",
    "IntervalTimer",
    "InvalidQueryKeyError",
    "LiveQueryError",
    "Mutation",
    "MutationOptions",
    "Query",
    "QueryClient",
    "QueryClosedError",
    "QueryKey",
    "QueryOptions",
    "QueryStore",
    "canonical_key",
    "clear_query_cache",
    "create_client",
    "get_query_data",
    "invalidate_query",
    "parse_duration",
    "set_query_data",
]
