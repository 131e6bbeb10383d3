# invoice_ledger/services/storage.py
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Protocol

from invoice_ledger.errors import PersistenceUnavailable

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Durable mapping from string key to a JSON-serializable value."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class JsonFileStore:
    """One `<key>.json` file per key under `directory`."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Lecture impossible pour {key} : {e}")
            raise PersistenceUnavailable(key, f"read failed: {e}") from e

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceUnavailable(key, f"write failed: {e}") from e


class MemoryStore:
    """In-process store; values are round-tripped through JSON like the file store."""

    def __init__(self, initial: Dict[str, Any] = None):
        self.data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self.data:
            return default
        return json.loads(self.data[key])

    def set(self, key: str, value: Any) -> None:
        try:
            self.data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise PersistenceUnavailable(key, f"write failed: {e}") from e
