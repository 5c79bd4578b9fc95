"""
Durable key/value store backed by a JSON file.

Every read goes to disk, so a write made by one process is visible to the
next read in any other process. Writes are atomic (temp file + rename).
Listeners registered in this process are notified of this process's writes
immediately; writes made by other processes surface through ``poll()``.
"""

import json
import logging
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from webclipper.core.storage.base import KeyValueStore, StorageChange

logger = logging.getLogger(__name__)


class JsonFileStore(KeyValueStore):
    """
    Key/value store persisted to a single JSON document.

    Example:
        >>> store = JsonFileStore(Path("/tmp/webclipper/state.json"))
        >>> store.set({"capture_status": "saving"})
        >>> JsonFileStore(Path("/tmp/webclipper/state.json")).get(["capture_status"])
        {'capture_status': 'saving'}
    """

    def __init__(self, path: Path) -> None:
        """
        Initialize the store.

        Args:
            path: Location of the JSON document (created on first write)
        """
        super().__init__()
        self.path = Path(path)
        self._lock = threading.RLock()
        self._snapshot: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring state file %s: expected a JSON object", self.path)
            return {}
        return data

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".json.tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            temp_path.replace(self.path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise
        self._snapshot = dict(data)

    def apply(
        self,
        items: Mapping[str, Any] | None = None,
        remove: Iterable[str] = (),
    ) -> None:
        with self._lock:
            super().apply(items, remove)

    def poll(self) -> dict[str, StorageChange]:
        """
        Detect writes made by other processes since the last write or poll.

        Listeners are notified of the detected changes.

        Returns:
            Changed keys with their previous and current values
        """
        with self._lock:
            current = self._load()
            changes: dict[str, StorageChange] = {}
            for key in set(self._snapshot) | set(current):
                old, new = self._snapshot.get(key), current.get(key)
                if old != new:
                    changes[key] = StorageChange(old, new)
            self._snapshot = current
        self._notify(changes)
        return changes
