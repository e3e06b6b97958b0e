"""Base class for registry persistence backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class PersistenceAdapter(ABC):
    """Durable key/value store for the serialized registry document."""

    @abstractmethod
    def load(self) -> dict[str, Any] | None:
        """Return the last saved document, or ``None`` when nothing was saved."""

    @abstractmethod
    def save(self, document: dict[str, Any]) -> None:
        """Replace the stored document."""
