"""JSON file persistence backend."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from connhub.storage.base import PersistenceAdapter

logger = logging.getLogger(__name__)


class JsonFilePersistence(PersistenceAdapter):
    """Store the registry document as a UTF-8 JSON file.

    Writes go to a sibling temporary file that is then moved over the target, so
    readers never observe a partially written document.
    """

    def __init__(self, path: str | Path, *, indent: int | None = 2) -> None:
        self.path = Path(path)
        self.indent = indent

    def load(self) -> dict[str, Any] | None:
        if not self.path.exists():
            logger.debug("No registry file at %s", self.path)
            return None
        with self.path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def save(self, document: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=self.indent)
                fh.write("\n")
            os.replace(temp_name, self.path)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise
