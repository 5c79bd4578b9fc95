"""
Persisted key/value storage shared by all contexts.
"""

from webclipper.core.storage.base import ChangeListener, KeyValueStore, StorageChange
from webclipper.core.storage.json_file import JsonFileStore
from webclipper.core.storage.memory import MemoryStore

__all__ = [
    "ChangeListener",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "StorageChange",
]
