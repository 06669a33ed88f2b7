"""
Key-value backends shared by every execution context.

Provides:
- The KeyValueBackend protocol and StorageChange notifications
- MemoryStorageArea, an in-process area shared between contexts
- JsonFileBackend, an atomically rewritten JSON file
"""

from .base import ChangeListener, KeyValueBackend, StorageChange, Unsubscribe
from .file import JsonFileBackend
from .memory import MemoryStorageArea

__all__ = [
    "ChangeListener",
    "KeyValueBackend",
    "StorageChange",
    "Unsubscribe",
    "JsonFileBackend",
    "MemoryStorageArea",
]
