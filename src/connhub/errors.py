"""Typed errors raised by the connection registry."""

from __future__ import annotations


class RegistryError(Exception):
    """Base class for every error the registry reports to its caller."""


class InvalidArgumentError(RegistryError, ValueError):
    """A mutation received malformed input, such as an empty connection name."""


class NotFoundError(RegistryError, LookupError):
    """An operation referenced a connection name that does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Connection not found: {name}")
        self.name = name


class PersistenceFailureError(RegistryError, RuntimeError):
    """Loading or saving registry state through the persistence adapter failed."""
