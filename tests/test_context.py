# pyright: standard

import asyncio
import logging

import pytest
from rich.console import Console

from chatsync.config import Settings
from chatsync.context import ChatContext
from chatsync.history import HISTORY_KEY
from chatsync.logging_config import configure_logging
from chatsync.state import chat as chat_state
from chatsync.storage import MemoryStorageArea
from tests.helpers import ManualClock, make_conversation


def _context(backend: MemoryStorageArea, clock: ManualClock, **settings: object) -> ChatContext:
    return ChatContext.create(backend, settings=Settings(**settings), clock=clock, auto_schedule=False)


def test_create_wires_settings_through(clock: ManualClock) -> None:
    context = _context(MemoryStorageArea(), clock, max_history=7, debounce_ms=100)

    assert context.history.options.max_history == 7
    assert context.store.get_state()["chat"].messages == []
    assert context.started is False


def test_start_migrates_legacy_data(clock: ManualClock) -> None:
    # GIVEN storage that only holds a legacy conversation
    backend = MemoryStorageArea(initial={"chat_history": [{"messages": [{"role": "user", "content": "Old"}]}]})
    context = _context(backend, clock)

    # WHEN the context starts
    async def scenario() -> list[str]:
        results = await context.start(poll=False)
        assert results is not None and results.migrated_conversations == 1
        titles = [c.title for c in await context.history.get_history()]
        await context.close()
        return titles

    # THEN the conversation is available under the current key
    assert asyncio.run(scenario()) == ["Old"]
    assert "chat_history" not in backend.snapshot()


def test_start_without_legacy_data_returns_none(clock: ManualClock) -> None:
    context = _context(MemoryStorageArea(), clock)

    async def scenario() -> object:
        results = await context.start(poll=False)
        started = context.started
        await context.close()
        return results, started, context.started

    assert asyncio.run(scenario()) == (None, True, False)


def test_contexts_sharing_storage_see_each_others_saves(clock: ManualClock) -> None:
    # GIVEN two started contexts over one storage area
    shared = MemoryStorageArea()
    panel = _context(shared, clock)
    window = _context(shared, clock)

    async def scenario() -> list[list[str]]:
        _ = await panel.start(poll=False)
        _ = await window.start(poll=False)
        refreshed: list[list[str]] = []
        _ = window.sync.register_surface("list", lambda items: refreshed.append([c.id for c in items]))
        _ = await window.history.get_history()

        # WHEN the panel saves its current chat
        _ = panel.store.dispatch(chat_state.add_message({"role": "user", "content": "Shared"}))
        saved_id = await panel.store.dispatch(chat_state.save_current_conversation(panel.history))

        # THEN the window's surface refreshes with the new conversation
        clock.advance(1)
        _ = window.sync.poll_surfaces()
        await window.sync.drain()
        await panel.close()
        await window.close()
        return [[saved_id], *refreshed]

    expected, *refreshed = asyncio.run(scenario())
    assert refreshed == [expected]


def test_close_clears_snapshots(clock: ManualClock) -> None:
    context = _context(MemoryStorageArea(initial={HISTORY_KEY: [make_conversation("c1")]}), clock)
    _ = context.snapshots.switch_away(1, None, context.store.get_state())

    asyncio.run(context.close())

    assert len(context.snapshots) == 0


def test_configure_logging_replaces_handlers() -> None:
    console = Console(record=True, width=120)

    logger = configure_logging("info", console)
    _ = configure_logging("info", console)
    logger.info("hello from chatsync")

    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO
    assert "hello from chatsync" in console.export_text()


def test_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        _ = configure_logging("chatty")
