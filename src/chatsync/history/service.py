import logging
import random
import string
from collections.abc import Mapping
from typing import Any, Final

import msgspec
from msgspec import Struct, structs

from chatsync.clock import Clock, SystemClock, iso_from_clock, millis_from_clock
from chatsync.events import (
    ConversationDeleted,
    ConversationLoaded,
    ConversationSaved,
    ConversationTitleUpdated,
    EventBus,
    HistoryCleared,
    HistoryUpdated,
    Signal,
)
from chatsync.exceptions import InvalidInputError, StorageError
from chatsync.models import Conversation, ConversationStats, Message, parse_timestamp
from chatsync.serialization import convert, to_builtins, to_record
from chatsync.storage import KeyValueBackend

from .cache import DEFAULT_CACHE_TTL, HistoryCache
from .normalize import UNTITLED, generate_title, normalize_model, normalize_provider

logger = logging.getLogger(__name__)

HISTORY_KEY: Final = "chatHistory"
RECENT_CONVERSATION_KEY: Final = "recentConversation"
DEFAULT_MAX_HISTORY: Final = 30
DEFAULT_SEARCH_LIMIT: Final = 20

_ID_ALPHABET: Final = string.ascii_lowercase + string.digits


class HistoryOptions(Struct, frozen=True):
    storage_key: str = HISTORY_KEY
    recent_conversation_key: str = RECENT_CONVERSATION_KEY
    max_history: int = DEFAULT_MAX_HISTORY
    auto_title: bool = True
    cache_ttl: float = DEFAULT_CACHE_TTL

    def __post_init__(self) -> None:
        if self.max_history < 1:
            raise ValueError("HistoryOptions.max_history must be at least 1.")
        if self.cache_ttl < 0:
            raise ValueError("HistoryOptions.cache_ttl must be non-negative.")


def sort_newest_first(history: list[Conversation]) -> None:
    # Stable: among equal timestamps the most recently inserted stays first.
    history.sort(key=lambda c: parse_timestamp(c.timestamp), reverse=True)


class ChatHistoryService:
    """
    CRUD over the bounded, newest-first list of conversations.

    The list lives under one key of the shared backend; a second key holds the
    most recently used conversation. Reads go through a TTL cache which the
    sync layer invalidates whenever another context writes.

    Backend failures surface as `StorageError`: read paths log them and return
    an empty result, write paths log and re-raise.
    """

    _backend: KeyValueBackend
    _bus: EventBus
    _clock: Clock
    _cache: HistoryCache
    options: HistoryOptions

    def __init__(
        self,
        backend: KeyValueBackend,
        bus: EventBus,
        options: HistoryOptions | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._backend = backend
        self._bus = bus
        self.options = options or HistoryOptions()
        self._clock = clock or SystemClock()
        self._cache = HistoryCache(self._clock, ttl=self.options.cache_ttl)

    # ---------- Cache ----------

    def invalidate_cache(self) -> None:
        self._cache.invalidate()

    def is_cache_valid(self) -> bool:
        return self._cache.is_valid()

    # ---------- Reads ----------

    async def get_history(self) -> list[Conversation]:
        try:
            return await self._read_history()
        except StorageError as e:
            logger.warning("Error getting history: %s", e)
            return []

    async def load_conversation(self, conversation_id: str) -> Conversation | None:
        try:
            history = await self._read_history()
            conversation = next((c for c in history if c.id == conversation_id), None)
            if conversation is None:
                return None
            await self.set_recent_conversation(conversation)
        except StorageError as e:
            logger.warning("Error loading conversation %s: %s", conversation_id, e)
            return None

        self._bus.emit(
            Signal.CONVERSATION_LOADED,
            ConversationLoaded(id=conversation_id, conversation=conversation, timestamp=self._now_ms()),
        )
        return conversation

    async def get_recent_conversation(self) -> Conversation | None:
        cached = self._cache.get_recent()
        if cached is not None:
            return cached

        key = self.options.recent_conversation_key
        try:
            result = await self._backend.get(key)
        except StorageError as e:
            logger.warning("Error getting recent conversation: %s", e)
            return None

        raw = result.get(key)
        if not raw:
            return None
        try:
            recent = convert(raw, Conversation)
        except msgspec.ValidationError as e:
            logger.warning("Ignoring malformed recent conversation: %s", e)
            return None

        self._cache.store_recent(recent)
        return recent

    async def search_conversations(
        self,
        search_term: str,
        *,
        search_titles: bool = True,
        search_messages: bool = True,
        limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> list[Conversation]:
        if not search_term or not search_term.strip():
            return []

        term = search_term.lower().strip()
        matches: list[Conversation] = []
        for conversation in await self.get_history():
            if len(matches) >= limit:
                break
            if search_titles and term in conversation.title.lower():
                matches.append(conversation)
            elif search_messages and any(term in m.content.lower() for m in conversation.messages):
                matches.append(conversation)
        return matches

    async def get_statistics(self) -> ConversationStats:
        stats = ConversationStats()
        for conversation in await self.get_history():
            stats.total_conversations += 1
            stats.total_messages += len(conversation.messages)

            provider = conversation.provider or "unknown"
            stats.provider_breakdown[provider] = stats.provider_breakdown.get(provider, 0) + 1

            when = parse_timestamp(conversation.timestamp)
            if stats.oldest_conversation is None or when < parse_timestamp(stats.oldest_conversation):
                stats.oldest_conversation = conversation.timestamp
            if stats.newest_conversation is None or when > parse_timestamp(stats.newest_conversation):
                stats.newest_conversation = conversation.timestamp
        return stats

    # ---------- Writes ----------

    async def save_conversation(self, conversation: Conversation | Mapping[str, Any]) -> str | None:
        """
        Inserts or updates a conversation; returns its id, or None when it has no messages.

        Missing id, title, timestamp, provider and model are filled in. A record
        with the same id is merged with the incoming fields, otherwise the
        conversation is prepended. The list is then re-sorted and capped.
        """
        incoming = self._incoming_fields(conversation)
        messages = incoming.get("messages")
        if not isinstance(messages, list):
            raise InvalidInputError("Invalid conversation object: 'messages' must be a list.")
        if not messages:
            logger.info("Skipping save of empty conversation")
            return None

        try:
            history = await self._read_history()
            conversation_id = incoming.get("id") or self._generate_id()
            existing_index = next((i for i, c in enumerate(history) if c.id == conversation_id), None)

            merged: dict[str, Any] = {}
            if existing_index is not None:
                merged.update(to_record(history[existing_index]))
            merged.update(incoming)
            merged["id"] = conversation_id
            merged["timestamp"] = incoming.get("timestamp") or iso_from_clock(self._clock)
            record = self._build_record(merged)

            if existing_index is not None:
                history[existing_index] = record
                logger.debug("Updated existing conversation: %s", conversation_id)
            else:
                history.insert(0, record)
                logger.debug("Added new conversation: %s", conversation_id)

            sort_newest_first(history)
            if len(history) > self.options.max_history:
                removed = len(history) - self.options.max_history
                del history[self.options.max_history :]
                logger.info("Removed %d old conversations", removed)

            await self.set_history(history)
            await self.set_recent_conversation(record)
        except StorageError:
            logger.exception("Error saving conversation")
            raise

        self._bus.emit(
            Signal.CONVERSATION_SAVED,
            ConversationSaved(id=record.id, conversation=record, timestamp=self._now_ms()),
        )
        return record.id

    async def delete_conversation(self, conversation_id: str) -> bool:
        try:
            history = await self._read_history()
            filtered = [c for c in history if c.id != conversation_id]
            if len(filtered) == len(history):
                return False

            await self.set_history(filtered)
            recent = await self.get_recent_conversation()
            if recent is not None and recent.id == conversation_id:
                await self.clear_recent_conversation()
        except StorageError:
            logger.exception("Error deleting conversation %s", conversation_id)
            raise

        self._bus.emit(
            Signal.CONVERSATION_DELETED,
            ConversationDeleted(id=conversation_id, timestamp=self._now_ms()),
        )
        logger.info("Deleted conversation: %s", conversation_id)
        return True

    async def update_conversation_title(self, conversation_id: str, new_title: str) -> bool:
        try:
            history = await self._read_history()
            index = next((i for i, c in enumerate(history) if c.id == conversation_id), None)
            if index is None:
                return False

            title = new_title.strip() or UNTITLED
            history[index] = structs.replace(history[index], title=title)
            await self.set_history(history)

            recent = await self.get_recent_conversation()
            if recent is not None and recent.id == conversation_id:
                await self.set_recent_conversation(structs.replace(recent, title=title))
        except StorageError:
            logger.exception("Error updating title of conversation %s", conversation_id)
            raise

        self._bus.emit(
            Signal.CONVERSATION_TITLE_UPDATED,
            ConversationTitleUpdated(id=conversation_id, title=title, timestamp=self._now_ms()),
        )
        return True

    async def set_history(self, history: list[Conversation]) -> None:
        await self._backend.set({self.options.storage_key: to_builtins(history)})
        self._cache.store_history(list(history))
        self._bus.emit(Signal.HISTORY_UPDATED, HistoryUpdated(timestamp=self._now_ms(), source="local"))

    async def set_recent_conversation(self, conversation: Conversation) -> None:
        await self._backend.set({self.options.recent_conversation_key: to_builtins(conversation)})
        self._cache.store_recent(conversation)

    async def clear_recent_conversation(self) -> None:
        await self._backend.set({self.options.recent_conversation_key: None})
        self._cache.recent = None

    async def clear_all_history(self) -> None:
        try:
            await self._backend.set({self.options.storage_key: [], self.options.recent_conversation_key: None})
        except StorageError:
            logger.exception("Error clearing all history")
            raise
        self._cache.invalidate()
        self._bus.emit(Signal.HISTORY_CLEARED, HistoryCleared(timestamp=self._now_ms()))
        logger.info("Cleared all conversation history")

    # ---------- Internal ----------

    async def _read_history(self) -> list[Conversation]:
        cached = self._cache.get_history()
        if cached is not None:
            return list(cached)

        key = self.options.storage_key
        result = await self._backend.get(key)
        raw = result.get(key)
        if raw is None:
            raw = []

        if not isinstance(raw, list):
            logger.warning("History data is not a list, resetting to an empty list")
            await self._write_back([])
            return []

        history = self._validate_history(raw)
        sort_newest_first(history)
        if len(history) != len(raw):
            logger.warning("Dropped %d invalid conversation entries", len(raw) - len(history))
            await self._write_back(history)

        self._cache.store_history(history)
        return list(history)

    async def _write_back(self, history: list[Conversation]) -> None:
        try:
            await self.set_history(history)
        except StorageError as e:
            logger.warning("Could not write repaired history back: %s", e)

    def _validate_history(self, raw: list[Any]) -> list[Conversation]:
        valid: list[Conversation] = []
        for entry in raw:
            if not isinstance(entry, Mapping) or not entry.get("id") or not entry.get("timestamp"):
                logger.warning("Removing invalid conversation entry: %r", entry)
                continue
            if not isinstance(entry.get("messages"), list):
                logger.warning("Removing conversation with invalid messages: %s", entry.get("id"))
                continue
            try:
                conversation = convert(dict(entry), Conversation)
            except msgspec.ValidationError as e:
                logger.warning("Removing malformed conversation %s: %s", entry.get("id"), e)
                continue
            valid.append(self._normalized(conversation))
        return valid

    def _normalized(self, conversation: Conversation) -> Conversation:
        provider = normalize_provider(conversation.provider)
        return structs.replace(
            conversation,
            title=conversation.title or generate_title(conversation.messages),
            provider=provider,
            model=normalize_model(conversation.model, provider),
        )

    def _incoming_fields(self, conversation: Conversation | Mapping[str, Any]) -> dict[str, Any]:
        match conversation:
            case Conversation():
                # omit_defaults drops the unset ("") fields
                return to_record(conversation)
            case Mapping():
                return dict(conversation)
            case _:
                raise InvalidInputError(f"Invalid conversation object: {type(conversation).__name__}")

    def _build_record(self, fields: dict[str, Any]) -> Conversation:
        try:
            messages = convert(fields.get("messages"), list[Message])
        except msgspec.ValidationError as e:
            raise InvalidInputError(f"Invalid conversation messages: {e}") from e

        if not fields.get("title") or self.options.auto_title:
            fields["title"] = generate_title(messages)
        fields["provider"] = normalize_provider(fields.get("provider"))
        fields["model"] = normalize_model(fields.get("model"), fields["provider"])
        fields["messages"] = to_builtins(messages)

        try:
            return convert(fields, Conversation)
        except msgspec.ValidationError as e:
            raise InvalidInputError(f"Invalid conversation object: {e}") from e

    def _generate_id(self) -> str:
        suffix = "".join(random.choices(_ID_ALPHABET, k=9))
        return f"conv_{self._now_ms()}_{suffix}"

    def _now_ms(self) -> int:
        return millis_from_clock(self._clock)
