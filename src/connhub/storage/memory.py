"""In-process persistence backend."""

from __future__ import annotations

import copy
import threading
from typing import Any

from connhub.storage.base import PersistenceAdapter


class InMemoryPersistence(PersistenceAdapter):
    """Keep a private copy of the last saved document.

    Useful for hosts that persist the document themselves and for tests that
    need to inspect what the registry wrote.
    """

    def __init__(self, document: dict[str, Any] | None = None) -> None:
        self._lock = threading.Lock()
        self._document = copy.deepcopy(document)
        self.save_count = 0

    def load(self) -> dict[str, Any] | None:
        with self._lock:
            return copy.deepcopy(self._document)

    def save(self, document: dict[str, Any]) -> None:
        with self._lock:
            self._document = copy.deepcopy(document)
            self.save_count += 1
