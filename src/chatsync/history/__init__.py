"""
Persistent conversation history.

Provides:
- ChatHistoryService, CRUD over the bounded newest-first conversation list
- Provider/model normalization and title generation
- Migration of conversations stored under legacy keys
"""

from .cache import DEFAULT_CACHE_TTL, HistoryCache
from .migration import (
    MigrationIssue,
    MigrationOptions,
    MigrationResults,
    auto_migrate,
    is_migration_needed,
    migrate_chat_history,
)
from .normalize import DEFAULT_TITLE, generate_title, normalize_model, normalize_provider
from .service import (
    DEFAULT_MAX_HISTORY,
    HISTORY_KEY,
    RECENT_CONVERSATION_KEY,
    ChatHistoryService,
    HistoryOptions,
)

__all__ = [
    "DEFAULT_CACHE_TTL",
    "HistoryCache",
    "MigrationIssue",
    "MigrationOptions",
    "MigrationResults",
    "auto_migrate",
    "is_migration_needed",
    "migrate_chat_history",
    "DEFAULT_TITLE",
    "generate_title",
    "normalize_model",
    "normalize_provider",
    "DEFAULT_MAX_HISTORY",
    "HISTORY_KEY",
    "RECENT_CONVERSATION_KEY",
    "ChatHistoryService",
    "HistoryOptions",
]
