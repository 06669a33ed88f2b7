import logging
from dataclasses import dataclass
from typing import Self

from chatsync.clock import Clock, SystemClock
from chatsync.config import Settings
from chatsync.events import EventBus, SignalBus
from chatsync.history import ChatHistoryService, HistoryOptions, MigrationOptions, MigrationResults, auto_migrate
from chatsync.snapshots import SnapshotRegistry
from chatsync.state import root_reducer
from chatsync.storage import KeyValueBackend
from chatsync.store import Store, create_store
from chatsync.sync import HistorySync

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatContext:
    """
    Everything one execution context (a window, a panel, a CLI run) owns.

    Contexts sharing a backend see each other's history writes through the
    sync layer; nothing else is shared between them.
    """

    backend: KeyValueBackend
    bus: EventBus
    settings: Settings
    clock: Clock
    store: Store
    history: ChatHistoryService
    sync: HistorySync
    snapshots: SnapshotRegistry
    started: bool = False

    @classmethod
    def create(
        cls,
        backend: KeyValueBackend,
        bus: EventBus | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
        *,
        auto_schedule: bool = True,
    ) -> Self:
        bus = bus or SignalBus()
        settings = settings or Settings()
        clock = clock or SystemClock()

        store = create_store(root_reducer, bus=bus, debug=settings.debug)
        history = ChatHistoryService(
            backend,
            bus,
            HistoryOptions(
                max_history=settings.max_history,
                auto_title=settings.auto_title,
                cache_ttl=settings.cache_ttl,
            ),
            clock,
        )
        sync = HistorySync(
            history,
            backend,
            bus,
            clock,
            debounce_window=settings.debounce_window,
            poll_interval=settings.poll_seconds,
            storage_area=backend.area,
            auto_schedule=auto_schedule,
        )
        return cls(
            backend=backend,
            bus=bus,
            settings=settings,
            clock=clock,
            store=store,
            history=history,
            sync=sync,
            snapshots=SnapshotRegistry(clock),
        )

    async def start(self, *, poll: bool = True) -> MigrationResults | None:
        """Migrates legacy data if present, then starts listening for changes."""
        results = await auto_migrate(
            self.backend,
            MigrationOptions(max_history=self.settings.max_history),
            self.clock,
        )
        if results is not None and results.errors:
            logger.warning("Migration finished with %d errors", len(results.errors))

        self.sync.attach()
        if poll:
            self.sync.start_polling()
        self.started = True
        return results

    async def close(self) -> None:
        await self.sync.stop_polling()
        await self.sync.drain()
        self.sync.detach()
        self.snapshots.clear()
        self.started = False
