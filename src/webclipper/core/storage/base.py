"""
Key/value storage abstraction.

Persisted state (session credentials, capture status) lives in a flat
key/value store shared by every context. Contexts never hold references to
each other's objects; they see each other's writes through this store and
react to its change notifications.

Example:
    >>> from webclipper.core.storage import MemoryStore
    >>> store = MemoryStore()
    >>> seen = []
    >>> store.add_listener(lambda changes: seen.append(sorted(changes)))
    >>> store.set({"api_url": "http://localhost:4000"})
    >>> store.get(["api_url"])
    {'api_url': 'http://localhost:4000'}
    >>> seen
    [['api_url']]
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)


class StorageChange(NamedTuple):
    """Old and new value of one key. ``None`` means absent."""

    old_value: Any
    new_value: Any


ChangeListener = Callable[[dict[str, StorageChange]], None]


class KeyValueStore(ABC):
    """
    Base class for persisted key/value stores.

    Subclasses implement ``_load`` and ``_save``; change detection and
    listener dispatch live here. Values handed out by ``get`` are copies so
    callers can never mutate stored state in place.
    """

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    @abstractmethod
    def _load(self) -> dict[str, Any]:
        """Return the full current contents."""

    @abstractmethod
    def _save(self, data: dict[str, Any]) -> None:
        """Durably replace the full contents."""

    def get(self, keys: Iterable[str] | None = None) -> dict[str, Any]:
        """
        Read values.

        Args:
            keys: Keys to read; None reads everything

        Returns:
            Mapping of present keys to copies of their values (absent keys omitted)
        """
        data = self._load()
        if keys is None:
            return copy.deepcopy(data)
        return {k: copy.deepcopy(data[k]) for k in keys if k in data}

    def set(self, items: Mapping[str, Any]) -> None:
        """
        Write values and notify listeners of the keys that changed.

        Args:
            items: Keys and JSON-serialisable values to store
        """
        self.apply(items)

    def remove(self, keys: Iterable[str]) -> None:
        """
        Delete keys (missing keys are ignored) and notify listeners.

        Args:
            keys: Keys to delete
        """
        self.apply(remove=keys)

    def apply(
        self,
        items: Mapping[str, Any] | None = None,
        remove: Iterable[str] = (),
    ) -> None:
        """
        Delete and write keys in one step, with a single notification.

        No listener can observe the store between the removal and the write.

        Args:
            items: Keys and values to store
            remove: Keys to delete first
        """
        data = self._load()
        changes: dict[str, StorageChange] = {}
        for key in remove:
            if key in data:
                changes[key] = StorageChange(data.pop(key), None)
        for key, value in (items or {}).items():
            old = changes.pop(key).old_value if key in changes else data.get(key)
            if old != value:
                changes[key] = StorageChange(old, copy.deepcopy(value))
            data[key] = copy.deepcopy(value)
        if changes:
            self._save(data)
        self._notify(changes)

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a change listener."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        """Deregister a change listener; unknown listeners are ignored."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, changes: dict[str, StorageChange]) -> None:
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                listener(dict(changes))
            except Exception:
                # the write is already durable; listeners cannot veto it
                logger.exception("Storage change listener failed")


__all__ = ["ChangeListener", "KeyValueStore", "StorageChange"]
