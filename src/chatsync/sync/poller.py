import asyncio
import logging
from collections.abc import Callable
from typing import Final

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL: Final = 30.0


class Poller:
    """Calls `callback` every `interval` seconds on the running loop until stopped."""

    interval: float
    _callback: Callable[[], object]
    _task: asyncio.Task[None] | None

    def __init__(self, callback: Callable[[], object], interval: float = DEFAULT_POLL_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError("Poll interval must be positive.")
        self._callback = callback
        self.interval = interval
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug("Started polling every %.1fs", self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        _ = task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Stopped polling")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                _ = self._callback()
            except Exception:
                logger.exception("Error in poll callback")
