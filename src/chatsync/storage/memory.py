import copy
from collections.abc import Iterable, Mapping
from typing import Any

from .base import ChangeListener, ChangeNotifier, StorageChange, Unsubscribe, normalize_keys


class MemoryStorageArea:
    """
    In-process storage area shared by several execution contexts.

    Values are deep-copied on the way in and out so no context can mutate
    another's view of the data. Every write is announced to all listeners,
    including the context that performed it.
    """

    area: str
    _data: dict[str, Any]
    _notifier: ChangeNotifier

    def __init__(self, area: str = "local", initial: Mapping[str, Any] | None = None) -> None:
        self.area = area
        self._data = copy.deepcopy(dict(initial or {}))
        self._notifier = ChangeNotifier()

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        return {key: copy.deepcopy(self._data[key]) for key in normalize_keys(keys) if key in self._data}

    async def set(self, items: Mapping[str, Any]) -> None:
        changes: dict[str, StorageChange] = {}
        for key, value in items.items():
            old = self._data.get(key)
            self._data[key] = copy.deepcopy(value)
            changes[key] = StorageChange(key=key, old_value=old, new_value=copy.deepcopy(value))
        self._notifier.notify(changes, self.area)

    async def remove(self, keys: str | Iterable[str]) -> None:
        changes: dict[str, StorageChange] = {}
        for key in normalize_keys(keys):
            if key in self._data:
                changes[key] = StorageChange(key=key, old_value=self._data.pop(key))
        self._notifier.notify(changes, self.area)

    def on_changed(self, listener: ChangeListener) -> Unsubscribe:
        return self._notifier.add(listener)

    def snapshot(self) -> dict[str, Any]:
        """Synchronous copy of everything stored, for inspection."""
        return copy.deepcopy(self._data)
