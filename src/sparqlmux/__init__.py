"""sparqlmux: cached, retrying, concurrency-limited access to a graph database.

Main modules:
- connection: Connection, the query façade
- dispatch: DispatchQueue, bounded-concurrency execution with adaptive retry
- cache: CacheStore and its memory / Redis backends
- reasoning: ReasoningGuard for per-query reasoning overrides
"""

from .cache import CacheEvent, CacheRecord, CacheStore, MemoryBackend, RedisBackend
from .config import Settings
from .connection import Connection
from .dispatch import DispatchQueue, QueueState
from .errors import (
    CodecError,
    DispatchFailed,
    QueryError,
    ResultShapeError,
    SparqlMuxError,
    TransportError,
)
from .reasoning import ReasoningGuard
from .tasks import GraphForm, QueryOptions, Task, TaskMethod

# Import version information
from .version import VERSION

__all__ = [
    "VERSION",
    "CacheEvent",
    "CacheRecord",
    "CacheStore",
    "CodecError",
    "Connection",
    "DispatchFailed",
    "DispatchQueue",
    "GraphForm",
    "MemoryBackend",
    "QueryError",
    "QueryOptions",
    "QueueState",
    "ReasoningGuard",
    "RedisBackend",
    "ResultShapeError",
    "Settings",
    "SparqlMuxError",
    "Task",
    "TaskMethod",
    "TransportError",
]
