"""Registry of named endpoint connections and the current selection."""

from __future__ import annotations

import logging
import threading

from connhub.config import FlushPolicy, RegistrySettings
from connhub.errors import (
    InvalidArgumentError,
    NotFoundError,
    PersistenceFailureError,
    RegistryError,
)
from connhub.flush import StateFlusher
from connhub.models import Connection, Context
from connhub.serialization import RegistryState, dump_state, load_state
from connhub.storage.base import PersistenceAdapter

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Ordered collection of connections with at most one marked current.

    Every public method runs under a single re-entrant lock covering both the
    collection and the current pointer. Reads return copies, so callers cannot
    modify registry internals through returned values.
    """

    def __init__(
        self,
        persistence: PersistenceAdapter | None = None,
        *,
        settings: RegistrySettings | None = None,
    ) -> None:
        self.settings = settings or RegistrySettings()
        self._lock = threading.RLock()
        self._connections: dict[str, Connection] = {}
        self._current_name: str | None = None
        self._generation = 0
        self._closed = False
        self._load_error: PersistenceFailureError | None = None
        self._flusher: StateFlusher | None = None

        if persistence is not None:
            self._flusher = StateFlusher(persistence, background=self.settings.async_flush)
            self._hydrate(persistence)

    @property
    def current_name(self) -> str | None:
        with self._lock:
            return self._current_name

    @property
    def last_persistence_error(self) -> PersistenceFailureError | None:
        """Most recent unsurfaced save failure, else the load failure, if any."""

        if self._flusher is not None and self._flusher.last_error is not None:
            return self._flusher.last_error
        return self._load_error

    def get_current_connection(self) -> Connection | None:
        with self._lock:
            if self._current_name is None:
                return None
            return self._connections[self._current_name].copy()

    def get_all_connections(self) -> tuple[Connection, ...]:
        with self._lock:
            return tuple(conn.copy() for conn in self._connections.values())

    def get_connection(self, name: str) -> Connection | None:
        with self._lock:
            connection = self._connections.get(name)
            return connection.copy() if connection is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._connections

    def upsert_connection(self, conn: Connection) -> None:
        """Add a connection, or update endpoint and merge contexts of an existing one.

        Contexts missing from ``conn`` are kept; contexts sharing a derived key
        are overwritten by the incoming value.
        """

        if not conn.name:
            raise InvalidArgumentError("Connection name cannot be empty")
        if not conn.endpoint:
            raise InvalidArgumentError(f"Connection {conn.name} endpoint cannot be empty")
        incoming = [_checked_context(context) for context in conn.contexts.values()]

        with self._lock:
            self._ensure_open()
            existing = self._connections.get(conn.name)
            if existing is None:
                self._connections[conn.name] = Connection.with_contexts(
                    conn.name, conn.endpoint, incoming
                )
                logger.debug("Added connection %s -> %s", conn.name, conn.endpoint)
            else:
                existing.endpoint = conn.endpoint
                for context in incoming:
                    existing.contexts[context.key()] = context
                logger.debug(
                    "Updated connection %s -> %s (%d contexts merged)",
                    conn.name,
                    conn.endpoint,
                    len(incoming),
                )
            self._mark_changed()

    def upsert_context(self, connection_name: str, ctx: Context) -> None:
        context = _checked_context(ctx)
        with self._lock:
            self._ensure_open()
            connection = self._require(connection_name)
            connection.contexts[context.key()] = context
            logger.debug("Upserted context %s on %s", context.key(), connection_name)
            self._mark_changed()

    def delete_context(self, connection_name: str, context_key: str) -> bool:
        """Remove one context by its derived key. Missing keys are not an error."""

        with self._lock:
            self._ensure_open()
            connection = self._require(connection_name)
            if connection.contexts.pop(context_key, None) is None:
                return False
            logger.debug("Deleted context %s from %s", context_key, connection_name)
            self._mark_changed()
            return True

    def delete_connection(self, name: str) -> bool:
        """Remove a connection if present, clearing the current pointer when it matches."""

        with self._lock:
            self._ensure_open()
            if self._connections.pop(name, None) is None:
                return False
            if self._current_name == name:
                self._current_name = None
                logger.debug("Cleared current connection %s on delete", name)
            logger.debug("Deleted connection %s", name)
            self._mark_changed()
            return True

    def clear_connections(self) -> None:
        with self._lock:
            self._ensure_open()
            if not self._connections and self._current_name is None:
                return
            removed = len(self._connections)
            self._connections.clear()
            self._current_name = None
            logger.debug("Cleared %d connections", removed)
            self._mark_changed()

    def set_current_connection(self, name: str) -> None:
        with self._lock:
            self._ensure_open()
            self._require(name)
            if self._current_name == name:
                return
            self._current_name = name
            logger.debug("Current connection set to %s", name)
            self._mark_changed()

    def clear_current_connection(self) -> None:
        with self._lock:
            self._ensure_open()
            if self._current_name is None:
                return
            self._current_name = None
            self._mark_changed()

    def snapshot(self) -> RegistryState:
        """Return a detached copy of the persisted portion of the registry."""

        with self._lock:
            return RegistryState(
                connections={name: conn.copy() for name, conn in self._connections.items()},
                current_name=self._current_name,
            )

    def flush(self) -> None:
        """Write the current state and wait for every pending write to finish.

        Raises ``PersistenceFailureError`` if this or any earlier background
        write failed since the last call.
        """

        if self._flusher is None:
            return
        with self._lock:
            self._submit_snapshot()
        self._flusher.wait()
        self._flusher.raise_pending_error()

    def close(self) -> None:
        """Flush according to policy and release the background writer."""

        with self._lock:
            if self._closed:
                return
            self._closed = True

        if self._flusher is None:
            return
        try:
            if self.settings.flush_policy is not FlushPolicy.MANUAL:
                self.flush()
        finally:
            self._flusher.close()
            logger.info("Connection registry closed at generation %d", self._generation)

    def __enter__(self) -> "ConnectionRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _hydrate(self, persistence: PersistenceAdapter) -> None:
        try:
            try:
                document = persistence.load()
            except Exception as exc:
                raise PersistenceFailureError(f"Failed to load registry state: {exc}") from exc
            if document is None:
                logger.info("No persisted registry state; starting empty")
                return
            state = load_state(document)
        except PersistenceFailureError as exc:
            if self.settings.strict_load:
                raise
            logger.error("Starting with an in-memory only registry: %s", exc)
            self._load_error = exc
            # Saving now would overwrite the unreadable document.
            self._flusher.close()
            self._flusher = None
            return

        self._connections = state.connections
        self._current_name = state.current_name
        logger.info(
            "Loaded %d connections (current: %s)",
            len(self._connections),
            self._current_name or "none",
        )

    def _require(self, name: str) -> Connection:
        connection = self._connections.get(name)
        if connection is None:
            raise NotFoundError(name)
        return connection

    def _ensure_open(self) -> None:
        if self._closed:
            raise RegistryError("Connection registry is closed")

    def _mark_changed(self) -> None:
        self._generation += 1
        if self._flusher is not None and self.settings.flushes_on_mutation:
            self._submit_snapshot()

    def _submit_snapshot(self) -> None:
        document = dump_state(
            RegistryState(connections=self._connections, current_name=self._current_name)
        )
        try:
            self._flusher.submit(self._generation, document)
        except PersistenceFailureError:
            # Recorded on the flusher; flush() re-raises it.
            if self.settings.strict_save:
                raise


def _checked_context(context: Context) -> Context:
    if not context.resource_type or not context.resource_id:
        raise InvalidArgumentError(
            f"Context requires resource_type and resource_id, got {context!r}"
        )
    return context
