import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from chatsync.config import Settings, load_settings
from chatsync.context import ChatContext
from chatsync.logging_config import configure_logging
from chatsync.storage import JsonFileBackend


def open_context(settings: Settings | None = None) -> ChatContext:
    """Builds a context over the storage file named by the settings (CHATSYNC_STORAGE_FILE)."""
    settings = settings or load_settings()
    _ = configure_logging("DEBUG" if settings.debug else settings.log_level)
    backend = JsonFileBackend(settings.storage_file)
    return ChatContext.create(backend, settings=settings, auto_schedule=False)


T = TypeVar("T")


def run_with_context(operation: Callable[[ChatContext], Awaitable[T]], *, start: bool = True) -> T:
    """
    Runs one command against a fresh context on a private event loop.

    With `start`, legacy data is migrated first, as any surface would on startup.
    """

    async def runner() -> T:
        context = open_context()
        if start:
            _ = await context.start(poll=False)
        try:
            return await operation(context)
        finally:
            await context.close()

    return asyncio.run(runner())
