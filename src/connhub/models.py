"""Connection and context models held by the registry."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

KEY_SEPARATOR = "/"


@dataclass(frozen=True)
class Context:
    """Reference to a single clinical resource instance.

    Identity is derived from ``resource_type`` and ``resource_id``; the display
    label is informational and does not take part in the key.
    """

    resource_id: str
    resource_type: str
    resource_display: str | None = None

    def key(self) -> str:
        """Composite key used to index the context inside a connection."""

        return context_key(self.resource_type, self.resource_id)

    def to_row(self) -> dict[str, str]:
        row = {
            "resourceID": self.resource_id,
            "resourceType": self.resource_type,
        }
        if self.resource_display is not None:
            row["resourceDisplay"] = self.resource_display
        return row


def context_key(resource_type: str, resource_id: str) -> str:
    """Derive the ``<resourceType>/<resourceID>`` key for a context."""

    return f"{resource_type}{KEY_SEPARATOR}{resource_id}"


@dataclass
class Connection:
    """Named endpoint plus the contexts used to parameterize evaluation."""

    name: str
    endpoint: str
    contexts: dict[str, Context] = field(default_factory=dict)

    @classmethod
    def with_contexts(
        cls,
        name: str,
        endpoint: str,
        contexts: Iterable[Context] = (),
    ) -> "Connection":
        """Build a connection keyed by derived context keys."""

        connection = cls(name=name, endpoint=endpoint)
        for context in contexts:
            connection.contexts[context.key()] = context
        return connection

    def context_keys(self) -> list[str]:
        """Sorted context keys, as passed to evaluation as context values."""

        return sorted(self.contexts)

    def copy(self) -> "Connection":
        # Contexts are frozen, so copying the mapping is enough.
        return Connection(name=self.name, endpoint=self.endpoint, contexts=dict(self.contexts))

    def to_row(self) -> dict[str, object]:
        return {
            "name": self.name,
            "endpoint": self.endpoint,
            "contexts": {key: context.to_row() for key, context in self.contexts.items()},
        }
