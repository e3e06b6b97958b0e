"""Registry of named clinical-data endpoint connections.

This package provides the connection and context models, the registry that
enforces name uniqueness and the single current selection, and the
persistence backends the registry hydrates from and flushes to.
"""

from .config import FlushPolicy, RegistrySettings
from .errors import (
    InvalidArgumentError,
    NotFoundError,
    PersistenceFailureError,
    RegistryError,
)
from .models import Connection, Context, context_key
from .registry import ConnectionRegistry
from .serialization import RegistryState, dump_state, load_state, validate_document
from .storage import (
    DuckDBPersistence,
    InMemoryPersistence,
    JsonFilePersistence,
    PersistenceAdapter,
)

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "Context",
    "context_key",
    "FlushPolicy",
    "RegistrySettings",
    "RegistryError",
    "InvalidArgumentError",
    "NotFoundError",
    "PersistenceFailureError",
    "RegistryState",
    "dump_state",
    "load_state",
    "validate_document",
    "PersistenceAdapter",
    "InMemoryPersistence",
    "JsonFilePersistence",
    "DuckDBPersistence",
]
