# pyright: standard

import asyncio

import pytest

from chatsync.clock import Clock
from chatsync.events import Signal
from chatsync.history import HISTORY_KEY, ChatHistoryService
from chatsync.models import Conversation
from chatsync.storage import MemoryStorageArea
from chatsync.sync import DebounceState, Debouncer, HistorySync, Poller
from tests.helpers import ManualClock, RecordingBus, make_conversation, make_service


def _sync(service: ChatHistoryService, backend: MemoryStorageArea, bus: RecordingBus, clock: Clock) -> HistorySync:
    return HistorySync(service, backend, bus, clock, auto_schedule=False)


# ---------- Debouncer ----------


def test_debouncer_collapses_a_burst_into_one_call(clock: ManualClock) -> None:
    # GIVEN a 250ms debouncer
    calls: list[float] = []
    debouncer = Debouncer(lambda: calls.append(clock.now()), window=0.25, clock=clock)

    # WHEN it is triggered 1000 times within 200ms
    for _ in range(1000):
        debouncer.trigger()
        clock.advance(0.0002)

    # THEN nothing fires before the window closes, and exactly once after
    assert debouncer.poll() is False
    assert debouncer.state is DebounceState.PENDING
    clock.advance(0.25)
    assert debouncer.poll() is True
    assert debouncer.poll() is False
    assert len(calls) == 1
    assert debouncer.state is DebounceState.FIRED


def test_debouncer_rearms_after_firing(clock: ManualClock) -> None:
    calls: list[int] = []
    debouncer = Debouncer(lambda: calls.append(1), window=0.25, clock=clock)

    debouncer.trigger()
    clock.advance(0.3)
    _ = debouncer.poll()
    debouncer.trigger()
    clock.advance(0.3)
    _ = debouncer.poll()

    assert len(calls) == 2
    assert debouncer.fire_count == 2


def test_debouncer_cancel_returns_to_idle(clock: ManualClock) -> None:
    calls: list[int] = []
    debouncer = Debouncer(lambda: calls.append(1), clock=clock)

    debouncer.trigger()
    debouncer.cancel()
    clock.advance(1)

    assert debouncer.poll() is False
    assert debouncer.state is DebounceState.IDLE
    assert calls == []


def test_debouncer_callback_errors_are_contained(clock: ManualClock) -> None:
    def broken() -> None:
        raise RuntimeError("boom")

    debouncer = Debouncer(broken, clock=clock)
    debouncer.trigger()
    clock.advance(1)

    assert debouncer.poll() is True
    assert debouncer.state is DebounceState.FIRED


def test_debouncer_schedules_on_event_loop() -> None:
    # GIVEN a debouncer driven by the running loop's timers and real time
    async def scenario() -> int:
        calls: list[int] = []
        debouncer = Debouncer(lambda: calls.append(1), window=0.05, loop=asyncio.get_running_loop())
        for _ in range(5):
            debouncer.trigger()
            await asyncio.sleep(0.005)
        await asyncio.sleep(0.2)
        return len(calls)

    # THEN the burst fires once without anybody polling
    assert asyncio.run(scenario()) == 1


def test_debouncer_rejects_negative_window() -> None:
    with pytest.raises(ValueError):
        _ = Debouncer(lambda: None, window=-1)


# ---------- Poller ----------


def test_poller_calls_back_until_stopped() -> None:
    async def scenario() -> tuple[int, int, bool]:
        calls: list[int] = []
        poller = Poller(lambda: calls.append(1), interval=0.01)
        poller.start()
        await asyncio.sleep(0.055)
        await poller.stop()
        stopped_at = len(calls)
        await asyncio.sleep(0.03)
        return stopped_at, len(calls), poller.running

    stopped_at, later, running = asyncio.run(scenario())

    assert stopped_at >= 2
    assert later == stopped_at
    assert running is False


# ---------- HistorySync ----------


def test_storage_change_invalidates_cache_and_announces(clock: ManualClock) -> None:
    # GIVEN two contexts sharing one storage area, the first with a warm cache
    shared = MemoryStorageArea()
    reader, _, reader_bus = make_service(clock=clock, backend=shared)
    writer, _, _ = make_service(clock=clock, backend=shared)
    sync = _sync(reader, shared, reader_bus, clock)
    sync.attach()

    async def scenario() -> list[str]:
        _ = await reader.get_history()
        # WHEN the other context saves a conversation
        _ = await writer.save_conversation(make_conversation("c1"))
        # THEN the first context sees it straight away
        return [c.id for c in await reader.get_history()]

    assert asyncio.run(scenario()) == ["c1"]
    sources = [payload.source for payload in reader_bus.payloads(Signal.HISTORY_UPDATED)]
    assert "storage" in sources


def test_changes_in_other_areas_are_ignored(clock: ManualClock) -> None:
    shared = MemoryStorageArea(area="sync")
    service, _, bus = make_service(clock=clock, backend=shared)
    sync = _sync(service, shared, bus, clock)
    sync.attach()

    asyncio.run(shared.set({HISTORY_KEY: []}))

    assert bus.payloads(Signal.HISTORY_UPDATED) == []


def test_burst_of_updates_refreshes_each_surface_once(clock: ManualClock) -> None:
    # GIVEN two registered surfaces
    service, _, bus = make_service({HISTORY_KEY: [make_conversation("c1")]}, clock=clock)
    sync = _sync(service, MemoryStorageArea(), bus, clock)
    sync.attach()
    received: dict[str, list[list[str]]] = {"sidebar": [], "panel": []}

    async def scenario() -> None:
        _ = sync.register_surface("sidebar", lambda items: received["sidebar"].append([c.id for c in items]))

        async def on_panel(items: list[Conversation]) -> None:
            received["panel"].append([c.id for c in items])

        _ = sync.register_surface("panel", on_panel)

        # WHEN 1000 history:updated signals arrive within 200ms
        for _ in range(1000):
            bus.emit(Signal.HISTORY_UPDATED, None)
            clock.advance(0.0002)
        assert sync.poll_surfaces() == 0

        clock.advance(0.25)
        assert sync.poll_surfaces() == 2
        await sync.drain()

    asyncio.run(scenario())

    # THEN every surface refreshed exactly once with the current list
    assert received == {"sidebar": [["c1"]], "panel": [["c1"]]}
    assert sync.refresh_count("sidebar") == 1


def test_history_events_trigger_surface_refresh(clock: ManualClock) -> None:
    service, _, bus = make_service(clock=clock)
    sync = _sync(service, MemoryStorageArea(), bus, clock)
    sync.attach()

    async def scenario() -> list[list[str]]:
        received: list[list[str]] = []
        _ = sync.register_surface("list", lambda items: received.append([c.id for c in items]))
        _ = await service.save_conversation(make_conversation("c1"))
        _ = await service.update_conversation_title("c1", "Renamed")
        clock.advance(1)
        _ = sync.poll_surfaces()
        await sync.drain()
        return received

    assert asyncio.run(scenario()) == [["c1"]]


def test_save_and_load_requests_are_routed_to_history(clock: ManualClock) -> None:
    service, backend, bus = make_service(clock=clock)
    sync = _sync(service, backend, bus, clock)
    sync.attach()

    async def scenario() -> list[str]:
        bus.emit(Signal.CONVERSATION_SAVE, make_conversation("c1"))
        await sync.drain()
        bus.emit(Signal.CONVERSATION_LOAD, "c1")
        bus.emit(Signal.CONVERSATION_LOAD, {"id": "missing"})
        await sync.drain()
        return [c.id for c in await service.get_history()]

    assert asyncio.run(scenario()) == ["c1"]
    assert [payload.id for payload in bus.payloads(Signal.CONVERSATION_LOADED)] == ["c1"]


def test_bad_save_request_is_logged_not_raised(clock: ManualClock) -> None:
    service, backend, bus = make_service(clock=clock)
    sync = _sync(service, backend, bus, clock)
    sync.attach()

    async def scenario() -> list[Conversation]:
        bus.emit(Signal.CONVERSATION_SAVE, {"id": "c1", "messages": "broken"})
        bus.emit(Signal.CONVERSATION_SAVE, 42)
        await sync.drain()
        return await service.get_history()

    assert asyncio.run(scenario()) == []


def test_detach_stops_listening(clock: ManualClock) -> None:
    shared = MemoryStorageArea()
    service, _, bus = make_service(clock=clock, backend=shared)
    sync = _sync(service, shared, bus, clock)
    sync.attach()
    sync.detach()

    asyncio.run(shared.set({HISTORY_KEY: []}))

    assert sync.attached is False
    assert bus.payloads(Signal.HISTORY_UPDATED) == []


def test_polling_requests_refresh() -> None:
    service, backend, bus = make_service({HISTORY_KEY: [make_conversation("c1")]})
    sync = HistorySync(service, backend, bus, debounce_window=0, poll_interval=0.01)

    async def scenario() -> int:
        received: list[int] = []
        _ = sync.register_surface("list", lambda items: received.append(len(items)))
        sync.start_polling()
        await asyncio.sleep(0.05)
        await sync.stop_polling()
        await sync.drain()
        return len(received)

    assert asyncio.run(scenario()) >= 1


def test_unregistered_surface_is_not_refreshed(clock: ManualClock) -> None:
    service, backend, bus = make_service(clock=clock)
    sync = _sync(service, backend, bus, clock)
    sync.attach()

    async def scenario() -> list[int]:
        received: list[int] = []
        _ = sync.register_surface("list", lambda items: received.append(len(items)))
        sync.request_refresh()
        sync.unregister_surface("list")
        clock.advance(1)
        assert sync.poll_surfaces() == 0
        await sync.drain()
        return received

    assert asyncio.run(scenario()) == []
