import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol, TypeAlias, runtime_checkable

from msgspec import Struct

logger = logging.getLogger(__name__)


class StorageChange(Struct, frozen=True):
    key: str
    old_value: Any = None
    new_value: Any = None


ChangeListener: TypeAlias = Callable[[dict[str, StorageChange], str], object]
Unsubscribe: TypeAlias = Callable[[], None]


@runtime_checkable
class KeyValueBackend(Protocol):
    """
    Asynchronous key-value store shared by every execution context.

    Implementations raise `StorageError` for failed operations and report every
    successful `set` / `remove` to the listeners registered with `on_changed`,
    as a batch of `StorageChange` keyed by storage key plus the area name.
    """

    area: str

    async def get(self, keys: str | Iterable[str]) -> dict[str, Any]: ...

    async def set(self, items: Mapping[str, Any]) -> None: ...

    async def remove(self, keys: str | Iterable[str]) -> None: ...

    def on_changed(self, listener: ChangeListener) -> Unsubscribe: ...


def normalize_keys(keys: str | Iterable[str]) -> list[str]:
    if isinstance(keys, str):
        return [keys]
    return list(keys)


class ChangeNotifier:
    """Listener registry shared by the backend implementations."""

    _listeners: list[ChangeListener]

    def __init__(self) -> None:
        self._listeners = []

    def add(self, listener: ChangeListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, changes: dict[str, StorageChange], area: str) -> None:
        if not changes:
            return
        for listener in list(self._listeners):
            try:
                _ = listener(changes, area)
            except Exception:
                logger.exception("Error in storage change listener")
