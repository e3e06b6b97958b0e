"""Runtime settings for the connection registry."""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping

from connhub.errors import InvalidArgumentError


class FlushPolicy(str, Enum):
    """When the registry writes its state to the persistence adapter."""

    ON_MUTATION = "on_mutation"
    ON_CLOSE = "on_close"
    MANUAL = "manual"


@dataclass(frozen=True)
class RegistrySettings:
    """Flush and failure-handling policy for a registry instance."""

    flush_policy: FlushPolicy = FlushPolicy.ON_MUTATION
    async_flush: bool = False
    strict_load: bool = True
    strict_save: bool = False

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "RegistrySettings":
        """Build settings from a plain config mapping.

        Unknown keys are rejected so typos in host configuration surface early
        instead of silently falling back to defaults.
        """

        if not payload:
            return cls()

        known = {item.name for item in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise InvalidArgumentError(
                f"Unknown registry settings: {', '.join(unknown)}. "
                f"Available: {', '.join(sorted(known))}"
            )

        raw_policy = payload.get("flush_policy", FlushPolicy.ON_MUTATION.value)
        try:
            flush_policy = FlushPolicy(str(getattr(raw_policy, "value", raw_policy)).lower())
        except ValueError as exc:
            raise InvalidArgumentError(f"Unknown flush_policy: {raw_policy}") from exc

        return cls(
            flush_policy=flush_policy,
            async_flush=bool(payload.get("async_flush", False)),
            strict_load=bool(payload.get("strict_load", True)),
            strict_save=bool(payload.get("strict_save", False)),
        )

    @property
    def flushes_on_mutation(self) -> bool:
        return self.flush_policy is FlushPolicy.ON_MUTATION
