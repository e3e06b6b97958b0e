"""Conversion between registry state and its persisted JSON document."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import exceptions as jsex
from jsonschema.validators import validator_for

from connhub.errors import PersistenceFailureError
from connhub.models import Connection, Context

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "registry_state.schema.json"


@dataclass
class RegistryState:
    """Plain snapshot of everything the registry persists."""

    connections: dict[str, Connection] = field(default_factory=dict)
    current_name: str | None = None


@lru_cache(maxsize=1)
def _compiled_validator():
    schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    validator_cls = validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _format_error(err: jsex.ValidationError) -> str:
    path = "/" + "/".join(str(part) for part in err.path)
    return f"{err.message} (path={path})"


def validate_document(document: Any) -> None:
    """Raise ``PersistenceFailureError`` listing every schema violation."""

    errors = sorted(_compiled_validator().iter_errors(document), key=lambda err: list(err.path))
    if errors:
        details = "; ".join(_format_error(err) for err in errors)
        raise PersistenceFailureError(f"Registry document failed schema validation: {details}")


def dump_state(state: RegistryState) -> dict[str, Any]:
    """Serialize a snapshot into the persisted document layout."""

    document: dict[str, Any] = {
        "connections": {name: conn.to_row() for name, conn in state.connections.items()},
    }
    if state.current_name is not None:
        document["currentConnection"] = state.current_name
    return document


def load_state(document: Any) -> RegistryState:
    """Validate and hydrate a persisted document.

    Context keys are re-derived from content; a stored key that disagrees with
    its context is replaced. A current pointer naming a missing connection is
    dropped.
    """

    validate_document(document)

    state = RegistryState()
    for name, raw_connection in document["connections"].items():
        if raw_connection["name"] != name:
            raise PersistenceFailureError(
                f"Connection entry '{name}' declares mismatched name '{raw_connection['name']}'"
            )

        connection = Connection(name=name, endpoint=raw_connection["endpoint"])
        for stored_key, raw_context in raw_connection.get("contexts", {}).items():
            context = _parse_context(raw_context)
            derived_key = context.key()
            if derived_key != stored_key:
                logger.warning(
                    "Connection %s: context key %s does not match content, re-keyed as %s",
                    name,
                    stored_key,
                    derived_key,
                )
            connection.contexts[derived_key] = context
        state.connections[name] = connection

    current_name = document.get("currentConnection")
    if current_name is not None and current_name not in state.connections:
        logger.warning("Dropping current connection %s: no such connection in document", current_name)
        current_name = None
    state.current_name = current_name

    return state


def _parse_context(raw: dict[str, Any]) -> Context:
    return Context(
        resource_id=raw["resourceID"],
        resource_type=raw["resourceType"],
        resource_display=raw.get("resourceDisplay"),
    )
