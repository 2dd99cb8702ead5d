"""
Persistent key/value storage for client state.

Every value is plain text (normally a JSON document). A missing key reads as
None, and so does a value that no longer parses: stored content is untrusted
input, and callers validate what they decode.

There is no cross-process notification. Two clients sharing a data
directory see each other's writes only when they next read, and the last
write wins.
"""

import json
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from ..utils.exceptions import StorageError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class PersistentStore:
    """Key/value contract shared by all storage backends"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def get_json(self, key: str) -> Any:
        """Decode a JSON value; malformed content is reported as absent."""
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning("Discarding corrupt stored value", key=key, error=str(e))
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, ensure_ascii=False, separators=(",", ":")))


class MemoryStore(PersistentStore):
    """Process-local store. Used for ephemeral sessions and tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileStore(PersistentStore):
    """
    Durable store: one JSON file per namespace under ``data_dir``.

    The file is re-read on every ``get`` and replaced atomically on every
    write (temp file in the same directory, then move), so a crash mid-write
    leaves the previous version intact.
    """

    def __init__(self, data_dir: Path, namespace: str = "storefront"):
        self.data_dir = Path(data_dir)
        self.namespace = namespace
        self.path = self.data_dir / f"{namespace}.json"

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        if value is not None and not isinstance(value, str):
            logger.warning("Discarding non-text stored value", key=key, path=str(self.path))
            return None
        return value

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._atomic_write(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._atomic_write(data)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Storage file unreadable, starting empty", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.warning("Storage file has unexpected shape, starting empty", path=str(self.path))
            return {}
        return data

    def _atomic_write(self, data: Dict[str, Any]) -> None:
        """Write the namespace file atomically"""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w", dir=str(self.data_dir), delete=False, encoding="utf-8"
        ) as tf:
            json.dump(data, tf, indent=2, ensure_ascii=False)
            temp_path = Path(tf.name)

        try:
            shutil.move(str(temp_path), str(self.path))
        except Exception as e:
            if temp_path.exists():
                temp_path.unlink()
            raise StorageError(f"Failed to save state to {self.path}: {str(e)}")
