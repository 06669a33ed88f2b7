# pyright: standard

from datetime import UTC, datetime, timedelta
from typing import Any

from chatsync.events import SignalBus
from chatsync.history import ChatHistoryService, HistoryOptions
from chatsync.storage import MemoryStorageArea

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float | None = None) -> None:
        self.current = BASE_TIME.timestamp() if start is None else start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class RecordingBus(SignalBus):
    """SignalBus that also remembers every emitted (event, payload) pair."""

    def __init__(self) -> None:
        super().__init__()
        self.emitted: list[tuple[str, Any]] = []

    def emit(self, event: str, payload: object = None) -> None:
        self.emitted.append((getattr(event, "value", event), payload))
        super().emit(event, payload)

    def payloads(self, event: str) -> list[Any]:
        name = getattr(event, "value", event)
        return [payload for emitted, payload in self.emitted if emitted == name]


def iso(minutes: int) -> str:
    """ISO timestamp `minutes` after the base time."""
    return (BASE_TIME + timedelta(minutes=minutes)).isoformat()


def make_conversation(
    conversation_id: str,
    *,
    minutes: int = 0,
    user: str = "Hi",
    assistant: str | None = "Hello",
    **extra: Any,
) -> dict[str, Any]:
    messages = [{"role": "user", "content": user, "timestamp": iso(minutes)}]
    if assistant is not None:
        messages.append({"role": "assistant", "content": assistant, "timestamp": iso(minutes)})
    return {"id": conversation_id, "timestamp": iso(minutes), "messages": messages, **extra}


def make_service(
    initial: dict[str, Any] | None = None,
    *,
    clock: ManualClock | None = None,
    backend: MemoryStorageArea | None = None,
    **options: Any,
) -> tuple[ChatHistoryService, MemoryStorageArea, RecordingBus]:
    backend = backend or MemoryStorageArea(initial=initial)
    bus = RecordingBus()
    service = ChatHistoryService(backend, bus, HistoryOptions(**options), clock or ManualClock())
    return service, backend, bus
