from chatsync.clock import Clock
from chatsync.models import Conversation

DEFAULT_CACHE_TTL = 5 * 60.0


class HistoryCache:
    """
    In-memory copy of the history list and the recent conversation.

    Both slots share one absolute expiry; any write refreshes it and
    `invalidate` drops everything.
    """

    history: list[Conversation] | None
    recent: Conversation | None
    expires_at: float | None
    ttl: float
    _clock: Clock

    def __init__(self, clock: Clock, ttl: float = DEFAULT_CACHE_TTL) -> None:
        self._clock = clock
        self.ttl = ttl
        self.history = None
        self.recent = None
        self.expires_at = None

    def is_valid(self) -> bool:
        return self.expires_at is not None and self._clock.now() < self.expires_at

    def get_history(self) -> list[Conversation] | None:
        if self.is_valid() and self.history is not None:
            return self.history
        return None

    def get_recent(self) -> Conversation | None:
        if self.is_valid():
            return self.recent
        return None

    def store_history(self, history: list[Conversation]) -> None:
        self.history = history
        self._touch()

    def store_recent(self, recent: Conversation | None) -> None:
        self.recent = recent
        self._touch()

    def invalidate(self) -> None:
        self.history = None
        self.recent = None
        self.expires_at = None

    def _touch(self) -> None:
        self.expires_at = self._clock.now() + self.ttl
