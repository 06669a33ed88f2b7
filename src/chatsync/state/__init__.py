"""
Domain state slices and the root reducer combining them.

Provides:
- The chat slice (messages being composed, provider selection, page context)
- The history slice (conversation list for history surfaces)
- Thunks bridging the slices and the ChatHistoryService
"""

from chatsync.store import combine_reducers

from . import chat, history
from .chat import ChatState, save_current_conversation
from .history import HistoryState, load_history, open_conversation

root_reducer = combine_reducers({"chat": chat.reducer, "history": history.reducer})

__all__ = [
    "chat",
    "history",
    "ChatState",
    "HistoryState",
    "load_history",
    "open_conversation",
    "save_current_conversation",
    "root_reducer",
]
