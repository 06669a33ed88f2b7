import asyncio
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import msgspec

from chatsync.exceptions import StorageError
from chatsync.serialization import decode_document, to_json

from .atomic_io import atomic_write_bytes
from .base import ChangeListener, ChangeNotifier, StorageChange, Unsubscribe, normalize_keys


class JsonFileBackend:
    """
    Key-value area persisted as a single JSON object on disk.

    Every write rewrites the whole file atomically (last write wins). Change
    notifications reach listeners of this instance only; other processes
    sharing the file pick changes up by polling.
    """

    area: str
    path: Path
    _notifier: ChangeNotifier

    def __init__(self, path: Path, area: str = "local") -> None:
        self.path = path
        self.area = area
        self._notifier = ChangeNotifier()

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]:
        data = await asyncio.to_thread(self._read_all)
        return {key: data[key] for key in normalize_keys(keys) if key in data}

    async def set(self, items: Mapping[str, Any]) -> None:
        changes = await asyncio.to_thread(self._write_items, dict(items))
        self._notifier.notify(changes, self.area)

    async def remove(self, keys: str | Iterable[str]) -> None:
        changes = await asyncio.to_thread(self._remove_keys, normalize_keys(keys))
        self._notifier.notify(changes, self.area)

    def on_changed(self, listener: ChangeListener) -> Unsubscribe:
        return self._notifier.add(listener)

    # ---------- Internal ----------

    def _read_all(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            raw = self.path.read_bytes()
        except OSError as e:
            raise StorageError(f"Could not read storage file {self.path}: {e}") from e
        if not raw.strip():
            return {}
        try:
            return decode_document(raw)
        except msgspec.DecodeError as e:
            raise StorageError(f"Corrupt JSON in storage file {self.path}: {e}") from e
        except msgspec.ValidationError as e:
            raise StorageError(f"Storage file {self.path} does not hold a JSON object: {e}") from e

    def _write_all(self, data: dict[str, Any]) -> None:
        try:
            atomic_write_bytes(self.path, to_json(data))
        except (OSError, TypeError) as e:
            raise StorageError(f"Could not write storage file {self.path}: {e}") from e

    def _write_items(self, items: dict[str, Any]) -> dict[str, StorageChange]:
        data = self._read_all()
        changes: dict[str, StorageChange] = {}
        for key, value in items.items():
            changes[key] = StorageChange(key=key, old_value=data.get(key), new_value=value)
            data[key] = value
        self._write_all(data)
        return changes

    def _remove_keys(self, keys: list[str]) -> dict[str, StorageChange]:
        data = self._read_all()
        changes = {key: StorageChange(key=key, old_value=data.pop(key)) for key in keys if key in data}
        if changes:
            self._write_all(data)
        return changes
