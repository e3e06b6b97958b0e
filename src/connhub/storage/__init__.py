"""Persistence backends for the connection registry."""

from .base import PersistenceAdapter
from .duckdb_table import DuckDBPersistence
from .json_file import JsonFilePersistence
from .memory import InMemoryPersistence

__all__ = [
    "PersistenceAdapter",
    "DuckDBPersistence",
    "InMemoryPersistence",
    "JsonFilePersistence",
]
