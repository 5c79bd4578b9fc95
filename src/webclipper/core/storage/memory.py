"""In-memory key/value store for tests and single-process use."""

from typing import Any

from webclipper.core.storage.base import KeyValueStore


class MemoryStore(KeyValueStore):
    """Key/value store backed by a dict. Contents vanish with the process."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        super().__init__()
        self._data: dict[str, Any] = dict(initial or {})

    def _load(self) -> dict[str, Any]:
        return dict(self._data)

    def _save(self, data: dict[str, Any]) -> None:
        self._data = dict(data)
