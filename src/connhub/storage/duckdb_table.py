"""DuckDB persistence backend for registry documents."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import duckdb
import pandas as pd

from connhub.storage.base import PersistenceAdapter

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DuckDBPersistence(PersistenceAdapter):
    """Persist registry documents as JSON payload rows in a DuckDB table.

    Several registries can share one database file by using distinct
    ``registry_key`` values.
    """

    def __init__(
        self,
        *,
        db_path: str | Path,
        table_name: str = "connection_registry",
        registry_key: str = "default",
    ) -> None:
        if not _TABLE_RE.match(table_name):
            raise ValueError(f"Unsafe table name: {table_name}")
        if not registry_key.strip():
            raise ValueError("Registry key cannot be empty")

        self.db_path = Path(db_path)
        self.table_name = table_name
        self.registry_key = registry_key

    def load(self) -> dict[str, Any] | None:
        if not self.db_path.exists():
            return None

        connection = duckdb.connect(str(self.db_path), read_only=True)
        try:
            if not self._table_exists(connection):
                return None
            row = connection.execute(
                f"SELECT payload FROM {self.table_name} WHERE registry_key = ?",
                [self.registry_key],
            ).fetchone()
        finally:
            connection.close()

        if row is None:
            return None
        return json.loads(row[0])

    def save(self, document: dict[str, Any]) -> None:
        frame = pd.DataFrame(
            [
                {
                    "registry_key": self.registry_key,
                    "payload": json.dumps(document),
                }
            ]
        )

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        connection = duckdb.connect(str(self.db_path))
        try:
            self._ensure_table(connection)
            connection.register("registry_frame", frame)
            connection.execute("BEGIN TRANSACTION")
            try:
                connection.execute(
                    f"DELETE FROM {self.table_name} WHERE registry_key = ?",
                    [self.registry_key],
                )
                connection.execute(
                    f"INSERT INTO {self.table_name} SELECT registry_key, payload FROM registry_frame"
                )
                connection.execute("COMMIT")
            except Exception:
                connection.execute("ROLLBACK")
                raise
        finally:
            connection.close()

    def _ensure_table(self, connection: Any) -> None:
        connection.execute(
            f"CREATE TABLE IF NOT EXISTS {self.table_name} "
            "(registry_key VARCHAR PRIMARY KEY, payload VARCHAR NOT NULL)"
        )

    def _table_exists(self, connection: Any) -> bool:
        row = connection.execute(
            "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?",
            [self.table_name],
        ).fetchone()
        return bool(row and row[0])
