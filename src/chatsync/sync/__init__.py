"""
Cross-context synchronization of the conversation history.

Provides:
- HistorySync, which turns storage changes into debounced surface refreshes
- Debouncer, an explicit idle / pending / fired state machine
- Poller, a periodic refresh for contexts that miss change notifications
"""

from .debounce import DEFAULT_DEBOUNCE_WINDOW, DebounceState, Debouncer
from .layer import HistorySync, RefreshHandler
from .poller import DEFAULT_POLL_INTERVAL, Poller

__all__ = [
    "DEFAULT_DEBOUNCE_WINDOW",
    "DebounceState",
    "Debouncer",
    "HistorySync",
    "RefreshHandler",
    "DEFAULT_POLL_INTERVAL",
    "Poller",
]
