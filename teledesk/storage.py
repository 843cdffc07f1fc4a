"""JSON document storage for persisted bot state."""

import json
import os
from pathlib import Path
from typing import Any

from teledesk.logging_config import get_logger

logger = get_logger("storage")

PENDING_ACKS_DOCUMENT = "pending_acks"
CONVERSATION_STATES_DOCUMENT = "conversation_states"


class StorageError(Exception):
    pass


class JsonDocumentStorage:
    """Reads and writes named JSON documents (string id -> record) in a directory."""

    def __init__(self, state_dir: str | Path):
        self.state_dir = Path(state_dir)

    def _path(self, name: str) -> Path:
        return self.state_dir / f"{name}.json"

    def read(self, name: str) -> dict[str, Any]:
        path = self._path(name)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(
                "Failed to read state document, starting empty",
                extra={"context": {"document": name, "error": str(e)}},
            )
            return {}
        if not isinstance(data, dict):
            logger.warning(
                "State document is not an object, starting empty",
                extra={"context": {"document": name}},
            )
            return {}
        return data

    def write(self, name: str, document: dict[str, Any]) -> None:
        path = self._path(name)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(f"Failed to write {name}: {e}") from e
