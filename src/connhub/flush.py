"""Serialized, coalescing writes of registry snapshots."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from connhub.errors import PersistenceFailureError
from connhub.storage.base import PersistenceAdapter

logger = logging.getLogger(__name__)


class StateFlusher:
    """Write generation-stamped registry documents to a persistence adapter.

    Inline mode writes on the caller's thread and raises on failure. Background
    mode hands documents to a single worker thread: only the newest pending
    document is kept, and a document older than one already written is never
    written.
    """

    def __init__(self, adapter: PersistenceAdapter, *, background: bool = False) -> None:
        self.adapter = adapter
        self.background = background
        self._lock = threading.Lock()
        self._pending: tuple[int, dict[str, Any]] | None = None
        self._draining = False
        self._written_generation = 0
        self._last_error: PersistenceFailureError | None = None
        self._executor: ThreadPoolExecutor | None = None
        if background:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="connhub-flush")

    @property
    def written_generation(self) -> int:
        with self._lock:
            return self._written_generation

    @property
    def last_error(self) -> PersistenceFailureError | None:
        with self._lock:
            return self._last_error

    def submit(self, generation: int, document: dict[str, Any]) -> None:
        """Write ``document`` now (inline) or schedule it (background)."""

        if self._executor is None:
            self._write(generation, document)
            return

        with self._lock:
            if self._pending is None or generation > self._pending[0]:
                self._pending = (generation, document)
            if self._draining:
                return
            self._draining = True
        self._executor.submit(self._drain)

    def wait(self) -> None:
        """Block until every scheduled write has completed."""

        if self._executor is None:
            return
        # One worker: a no-op queued now runs after every earlier drain.
        self._executor.submit(lambda: None).result()

    def raise_pending_error(self) -> None:
        """Re-raise and clear the last write failure, if any."""

        with self._lock:
            error, self._last_error = self._last_error, None
        if error is not None:
            raise error

    def close(self) -> None:
        if self._executor is None:
            return
        self._executor.shutdown(wait=True)
        self._executor = None

    def _drain(self) -> None:
        while True:
            with self._lock:
                item = self._pending
                self._pending = None
                if item is None:
                    self._draining = False
                    return
            try:
                self._write(*item)
            except PersistenceFailureError:
                # Already logged and recorded; the next submit or flush() surfaces it.
                continue

    def _write(self, generation: int, document: dict[str, Any]) -> None:
        with self._lock:
            if generation <= self._written_generation:
                logger.debug(
                    "Skipping stale registry snapshot %d (written %d)",
                    generation,
                    self._written_generation,
                )
                return

        try:
            self.adapter.save(document)
        except Exception as exc:
            logger.exception("Failed to save registry snapshot %d", generation)
            error = PersistenceFailureError(f"Failed to save registry state: {exc}")
            with self._lock:
                self._last_error = error
            raise error from exc

        with self._lock:
            self._written_generation = generation
            self._last_error = None
        logger.debug("Saved registry snapshot %d", generation)
