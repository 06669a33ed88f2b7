import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Coroutine, Mapping
from typing import Any, TypeAlias

from chatsync.clock import Clock, SystemClock, millis_from_clock
from chatsync.events import EventBus, HistoryUpdated, Signal
from chatsync.exceptions import ChatsyncError, InvalidInputError
from chatsync.history import ChatHistoryService
from chatsync.models import Conversation
from chatsync.storage import KeyValueBackend, StorageChange, Unsubscribe

from .debounce import DEFAULT_DEBOUNCE_WINDOW, Debouncer
from .poller import DEFAULT_POLL_INTERVAL, Poller

logger = logging.getLogger(__name__)

RefreshHandler: TypeAlias = Callable[[list[Conversation]], object | Awaitable[object]]

_REFRESH_SIGNALS = (
    Signal.HISTORY_UPDATED,
    Signal.CONVERSATION_SAVED,
    Signal.CONVERSATION_DELETED,
    Signal.CONVERSATION_TITLE_UPDATED,
)


class _Surface:
    name: str
    on_refresh: RefreshHandler
    debouncer: Debouncer
    refresh_count: int

    def __init__(self, name: str, on_refresh: RefreshHandler, debouncer: Debouncer) -> None:
        self.name = name
        self.on_refresh = on_refresh
        self.debouncer = debouncer
        self.refresh_count = 0


class HistorySync:
    """
    Keeps every UI surface of one execution context in step with shared storage.

    Storage writes made by any context invalidate the local history cache and
    are re-announced as `history:updated` (source "storage"). Refresh signals
    are debounced per surface, so a burst of writes results in one reload.
    Save / load requests arriving on the bus are run against the history
    service as tracked background tasks.
    """

    history: ChatHistoryService
    _backend: KeyValueBackend
    _bus: EventBus
    _clock: Clock
    debounce_window: float
    storage_area: str
    auto_schedule: bool
    _surfaces: dict[str, _Surface]
    _tasks: set[asyncio.Task[Any]]
    _poller: Poller
    _unsubscribe_storage: Unsubscribe | None

    def __init__(
        self,
        history: ChatHistoryService,
        backend: KeyValueBackend,
        bus: EventBus,
        clock: Clock | None = None,
        *,
        debounce_window: float = DEFAULT_DEBOUNCE_WINDOW,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        storage_area: str = "local",
        auto_schedule: bool = True,
    ) -> None:
        self.history = history
        self._backend = backend
        self._bus = bus
        self._clock = clock or SystemClock()
        self.debounce_window = debounce_window
        self.storage_area = storage_area
        self.auto_schedule = auto_schedule
        self._surfaces = {}
        self._tasks = set()
        self._poller = Poller(self._on_poll, interval=poll_interval)
        self._unsubscribe_storage = None

    @property
    def attached(self) -> bool:
        return self._unsubscribe_storage is not None

    def attach(self) -> None:
        if self.attached:
            return
        self._unsubscribe_storage = self._backend.on_changed(self._on_storage_changed)
        self._bus.on(Signal.CONVERSATION_SAVE, self._on_save_request)
        self._bus.on(Signal.CONVERSATION_LOAD, self._on_load_request)
        for signal in _REFRESH_SIGNALS:
            self._bus.on(signal, self._on_refresh_signal)
        logger.debug("History sync attached to storage area %r", self.storage_area)

    def detach(self) -> None:
        if self._unsubscribe_storage is not None:
            self._unsubscribe_storage()
            self._unsubscribe_storage = None
        self._bus.off(Signal.CONVERSATION_SAVE, self._on_save_request)
        self._bus.off(Signal.CONVERSATION_LOAD, self._on_load_request)
        for signal in _REFRESH_SIGNALS:
            self._bus.off(signal, self._on_refresh_signal)
        for surface in self._surfaces.values():
            surface.debouncer.cancel()

    # ---------- Surfaces ----------

    def register_surface(self, name: str, on_refresh: RefreshHandler) -> Debouncer:
        """
        Registers a UI surface that wants the history list after changes.

        Registering an existing name replaces its handler. Returns the
        surface's debouncer.
        """
        existing = self._surfaces.get(name)
        if existing is not None:
            existing.debouncer.cancel()

        debouncer = Debouncer(
            lambda: self._spawn(self._refresh_surface(name)),
            window=self.debounce_window,
            clock=self._clock,
            loop=self._current_loop() if self.auto_schedule else None,
        )
        self._surfaces[name] = _Surface(name, on_refresh, debouncer)
        return debouncer

    def unregister_surface(self, name: str) -> None:
        surface = self._surfaces.pop(name, None)
        if surface is not None:
            surface.debouncer.cancel()

    def refresh_count(self, name: str) -> int:
        return self._surfaces[name].refresh_count

    def request_refresh(self) -> None:
        for surface in self._surfaces.values():
            surface.debouncer.trigger()

    def poll_surfaces(self) -> int:
        """Fires every surface whose debounce deadline has passed; returns how many fired."""
        return sum(1 for surface in list(self._surfaces.values()) if surface.debouncer.poll())

    # ---------- Polling ----------

    def start_polling(self) -> None:
        self._poller.start()

    async def stop_polling(self) -> None:
        await self._poller.stop()

    @property
    def polling(self) -> bool:
        return self._poller.running

    # ---------- Background work ----------

    async def drain(self) -> None:
        """Waits for all outstanding save / load / refresh tasks, including ones they spawn."""
        while self._tasks:
            _ = await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Background history task failed: %s", error, exc_info=error)

    # ---------- Handlers ----------

    def _on_storage_changed(self, changes: dict[str, StorageChange], area: str) -> None:
        if area != self.storage_area:
            return
        keys = (self.history.options.storage_key, self.history.options.recent_conversation_key)
        if not any(key in changes for key in keys):
            return
        self.history.invalidate_cache()
        self._bus.emit(
            Signal.HISTORY_UPDATED,
            HistoryUpdated(timestamp=millis_from_clock(self._clock), source="storage"),
        )

    def _on_refresh_signal(self, _payload: object) -> None:
        self.request_refresh()

    def _on_poll(self) -> None:
        self.history.invalidate_cache()
        self.request_refresh()

    def _on_save_request(self, payload: object) -> None:
        match payload:
            case Conversation() | Mapping():
                _ = self._spawn(self._save(payload))
            case _:
                logger.warning("Ignoring conversation:save with payload %r", payload)

    def _on_load_request(self, payload: object) -> None:
        match payload:
            case str() if payload:
                conversation_id = payload
            case Mapping() if payload.get("id"):
                conversation_id = str(payload["id"])
            case Conversation() if payload.id:
                conversation_id = payload.id
            case _:
                logger.warning("Ignoring conversation:load with payload %r", payload)
                return
        _ = self._spawn(self._load(conversation_id))

    async def _save(self, conversation: Conversation | Mapping[str, Any]) -> None:
        try:
            _ = await self.history.save_conversation(conversation)
        except InvalidInputError as e:
            logger.warning("Rejected conversation:save request: %s", e.message)
        except ChatsyncError as e:
            logger.error("Error handling conversation:save: %s", e.message)

    async def _load(self, conversation_id: str) -> None:
        conversation = await self.history.load_conversation(conversation_id)
        if conversation is None:
            logger.info("conversation:load for unknown id %s", conversation_id)

    async def _refresh_surface(self, name: str) -> None:
        surface = self._surfaces.get(name)
        if surface is None:
            return
        conversations = await self.history.get_history()
        surface.refresh_count += 1
        result = surface.on_refresh(conversations)
        if inspect.isawaitable(result):
            await result

    @staticmethod
    def _current_loop() -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None
