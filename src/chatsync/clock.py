import time
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> float:
        """Wall-clock time in seconds since the epoch."""
        ...


class SystemClock:
    def now(self) -> float:
        return time.time()


def iso_from_clock(clock: Clock) -> str:
    return datetime.fromtimestamp(clock.now(), UTC).isoformat()


def millis_from_clock(clock: Clock) -> int:
    return int(clock.now() * 1000)
