"""Signals exchanged between the store, the history service and UI surfaces."""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol, TypeAlias, runtime_checkable

from msgspec import Struct

from chatsync.models import Conversation

logger = logging.getLogger(__name__)


class Signal(str, Enum):
    STATE_CHANGE = "state:change"
    HISTORY_UPDATED = "history:updated"
    HISTORY_CLEARED = "history:cleared"
    CONVERSATION_SAVE = "conversation:save"
    CONVERSATION_LOAD = "conversation:load"
    CONVERSATION_SAVED = "conversation:saved"
    CONVERSATION_LOADED = "conversation:loaded"
    CONVERSATION_DELETED = "conversation:deleted"
    CONVERSATION_TITLE_UPDATED = "conversation:titleUpdated"


class HistoryUpdated(Struct, frozen=True):
    timestamp: int
    source: str = "local"


class HistoryCleared(Struct, frozen=True):
    timestamp: int


class ConversationSaved(Struct, frozen=True):
    id: str
    conversation: Conversation
    timestamp: int


class ConversationLoaded(Struct, frozen=True):
    id: str
    conversation: Conversation
    timestamp: int


class ConversationDeleted(Struct, frozen=True):
    id: str
    timestamp: int


class ConversationTitleUpdated(Struct, frozen=True):
    id: str
    title: str
    timestamp: int


class StateChange(Struct, frozen=True):
    action: Any
    prev_state: dict[str, Any]
    next_state: dict[str, Any]


Handler: TypeAlias = Callable[[Any], object]


def signal_name(event: str) -> str:
    return event.value if isinstance(event, Signal) else event


@runtime_checkable
class EventBus(Protocol):
    def on(self, event: str, handler: Handler) -> None: ...

    def off(self, event: str, handler: Handler) -> None: ...

    def emit(self, event: str, payload: object = None) -> None: ...


class SignalBus:
    """
    In-process publish/subscribe channel.

    Handlers run synchronously in registration order; a failing handler is
    logged and does not stop delivery to the others.
    """

    _handlers: dict[str, list[Handler]]

    def __init__(self) -> None:
        self._handlers = {}

    def on(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.setdefault(signal_name(event), [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(signal_name(event))
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, payload: object = None) -> None:
        for handler in list(self._handlers.get(signal_name(event), ())):
            try:
                _ = handler(payload)
            except Exception:
                logger.exception("Error in handler for %r", signal_name(event))

    def clear(self, event: str | None = None) -> None:
        if event is None:
            self._handlers.clear()
        else:
            _ = self._handlers.pop(signal_name(event), None)
