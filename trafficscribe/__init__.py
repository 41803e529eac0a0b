"""Traffic-to-OpenAPI synthesis engine.

Observes request/response pairs flowing through a proxy or client and
accumulates them into:
- An OpenAPI 3.1 document with inferred, merged schemas
- A HAR 1.2 archive of every exchange
"""

from .config import ScribeConfig, load_config
from .document import DocumentAssembler
from .errors import (
    RecoverableInferenceFailure,
    ScribeError,
    StorageUnavailable,
    UnsupportedSecurityKind,
)
from .exchange import ObservedExchange, RawBody, SecurityHint
from .storage import SQLiteStorage, StorageAdapter
from .store import TrafficStore
from .transport import AsyncHttpxRecorder, HttpxRecorder

__all__ = [
    "AsyncHttpxRecorder",
    "DocumentAssembler",
    "HttpxRecorder",
    "ObservedExchange",
    "RawBody",
    "RecoverableInferenceFailure",
    "SQLiteStorage",
    "ScribeConfig",
    "ScribeError",
    "SecurityHint",
    "StorageAdapter",
    "StorageUnavailable",
    "TrafficStore",
    "UnsupportedSecurityKind",
    "load_config",
]
