import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

import msgspec
from msgspec import Struct, field, structs

from chatsync.clock import Clock, SystemClock, iso_from_clock
from chatsync.exceptions import MigrationError, StorageError
from chatsync.models import Conversation, Message
from chatsync.serialization import convert, to_builtins
from chatsync.storage import KeyValueBackend

from .normalize import UNTITLED, normalize_model, normalize_provider
from .service import DEFAULT_MAX_HISTORY, HISTORY_KEY, RECENT_CONVERSATION_KEY, sort_newest_first

logger = logging.getLogger(__name__)

LEGACY_HISTORY_KEYS = ("chat_history", "conversation_history")
LEGACY_RECENT_KEY = "recent_conversation"
LEGACY_TITLE_LENGTH = 50

# --- Legacy Schemas (Migration Source) ---


class LegacyConversationBody(Struct):
    """Nested layout: `{"conversation": {"messages": [...], ...}}`."""

    messages: list[Any] | None = None
    provider: str | None = None
    model: str | None = None
    timestamp: str | float | None = None


class LegacyConversation(Struct):
    """
    Flat layout: `{"messages": [...], ...}`; also the wrapper of the nested one.

    A bare list of messages is the third known layout and is wrapped into this
    struct before conversion.
    """

    # The first client keyed records by Date.now(), a number.
    id: str | int | None = None
    title: str | None = None
    provider: str | None = None
    model: str | None = None
    timestamp: str | float | None = None
    messages: list[Any] | None = None
    conversation: LegacyConversationBody | None = None


class MigrationOptions(Struct, frozen=True):
    old_keys: tuple[str, ...] = LEGACY_HISTORY_KEYS
    new_key: str = HISTORY_KEY
    recent_old_key: str = LEGACY_RECENT_KEY
    recent_new_key: str = RECENT_CONVERSATION_KEY
    dry_run: bool = False
    cleanup_old_keys: bool = True
    max_history: int = DEFAULT_MAX_HISTORY


class MigrationIssue(Struct):
    type: str
    error: str
    old_key: str | None = None
    conversation: Any = None


class MigrationResults(Struct):
    migrated_conversations: int = 0
    migrated_recent: bool = False
    errors: list[MigrationIssue] = field(default_factory=list)
    conversations_processed: int = 0
    old_data_found: bool = False


# --- Migration Logic ---


def simple_hash(text: str) -> str:
    """
    32-bit rolling string hash (h * 31 + code unit) rendered in base 36.

    Works on UTF-16 code units so ids match the ones produced by earlier
    versions of the client for the same content.
    """
    value = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        value = ((value << 5) - value + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return _to_base36(abs(value))


def _to_base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out: list[str] = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def are_similar_conversations(first: Conversation, second: Conversation) -> bool:
    """Same message count and same first user message."""
    if len(first.messages) != len(second.messages):
        return False
    first_user = next((m for m in first.messages if m.role == "user"), None)
    second_user = next((m for m in second.messages if m.role == "user"), None)
    if first_user is None or second_user is None:
        return False
    return first_user.content == second_user.content


def migrate_conversation(old: object, clock: Clock) -> Conversation | None:
    """
    Converts one legacy record; returns None when it has no usable messages.

    Raises:
        MigrationError: if the record matches none of the known layouts.
    """
    match old:
        case None:
            return None
        case list():
            legacy = LegacyConversation(messages=old)
        case Mapping():
            try:
                legacy = convert(dict(old), LegacyConversation)
            except msgspec.ValidationError as e:
                raise MigrationError(f"Unrecognized legacy conversation layout: {e}") from e
        case _:
            raise MigrationError(f"Unsupported legacy record type: {type(old).__name__}")

    body = legacy.conversation
    if legacy.messages is not None:
        raw_messages = legacy.messages
    elif body is not None and body.messages is not None:
        raw_messages = body.messages
    else:
        raw_messages = []
    if not raw_messages:
        return None

    first = raw_messages[0] if isinstance(raw_messages[0], Mapping) else {}
    timestamp = (
        _timestamp_or_none(legacy.timestamp)
        or _timestamp_or_none(body.timestamp if body else None)
        or _timestamp_or_none(first.get("timestamp"))
        or iso_from_clock(clock)
    )

    messages = _clean_messages(raw_messages, timestamp)
    if not messages:
        return None

    provider = normalize_provider(legacy.provider or (body.provider if body else None))
    model = normalize_model(legacy.model or (body.model if body else None), provider)

    title = legacy.title or _legacy_title(messages)
    conversation_id = _id_or_none(legacy.id) or f"migrated_{simple_hash(str(first.get('content') or '') + timestamp)}"

    return Conversation(
        id=conversation_id,
        title=title,
        provider=provider,
        model=model,
        timestamp=timestamp,
        messages=messages,
        migrated=True,
        migrated_at=iso_from_clock(clock),
    )


def _timestamp_or_none(value: object) -> str | None:
    """ISO strings pass through; numbers are epoch milliseconds."""
    match value:
        case bool():
            return None
        case str() if value:
            return value
        case int() | float():
            try:
                return datetime.fromtimestamp(value / 1000, UTC).isoformat()
            except (OverflowError, OSError, ValueError):
                return None
        case _:
            return None


def _id_or_none(value: str | int | None) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _clean_messages(raw_messages: list[Any], default_timestamp: str) -> list[Message]:
    messages: list[Message] = []
    for raw in raw_messages:
        if not isinstance(raw, Mapping) or not raw.get("role") or not raw.get("content"):
            continue
        try:
            message = convert(
                {
                    "role": raw["role"],
                    "content": raw["content"],
                    "timestamp": _timestamp_or_none(raw.get("timestamp")) or default_timestamp,
                },
                Message,
            )
        except msgspec.ValidationError:
            logger.debug("Dropping legacy message with unsupported shape: %r", raw)
            continue
        messages.append(message)
    return messages


def _legacy_title(messages: list[Message]) -> str:
    first_user = next((m for m in messages if m.role == "user"), None)
    if first_user is None:
        return UNTITLED
    title = first_user.content.strip()[:LEGACY_TITLE_LENGTH]
    if len(first_user.content) > LEGACY_TITLE_LENGTH:
        title += "..."
    return title or UNTITLED


def _load_current_history(raw: object) -> list[Conversation]:
    if not isinstance(raw, list):
        return []
    current: list[Conversation] = []
    for entry in raw:
        try:
            current.append(convert(entry, Conversation))
        except msgspec.ValidationError as e:
            logger.warning("Dropping malformed conversation during migration: %s", e)
    return current


async def migrate_chat_history(
    backend: KeyValueBackend,
    options: MigrationOptions | None = None,
    clock: Clock | None = None,
) -> MigrationResults:
    """
    Moves conversations stored under legacy keys into the current history key.

    Records are converted one by one; a record that fails lands in
    `results.errors` and the run continues. Duplicates (same id, or same message
    count and first user message) of records already present are skipped, which
    makes repeated runs no-ops.
    """
    options = options or MigrationOptions()
    clock = clock or SystemClock()
    results = MigrationResults()

    logger.info("Starting chat history migration")
    all_keys = [*options.old_keys, options.new_key, options.recent_old_key, options.recent_new_key]
    try:
        storage_data = await backend.get(all_keys)
    except StorageError as e:
        results.errors.append(MigrationIssue(type="migration", error=e.message))
        logger.exception("Migration failed")
        raise

    merged = _load_current_history(storage_data.get(options.new_key))
    # Keys holding a record that could not be converted are never cleaned up.
    unmigrated_keys: set[str] = set()

    for old_key in options.old_keys:
        old_history = storage_data.get(old_key)
        if old_history and not isinstance(old_history, list):
            logger.warning("Legacy key %s does not hold a list, leaving it alone", old_key)
            unmigrated_keys.add(old_key)
            continue
        if not old_history:
            continue

        logger.info("Found %d conversations in legacy key: %s", len(old_history), old_key)
        results.old_data_found = True

        for old_conversation in old_history:
            try:
                migrated = migrate_conversation(old_conversation, clock)
            except MigrationError as e:
                logger.warning("Error migrating conversation from %s: %s", old_key, e.message)
                results.errors.append(
                    MigrationIssue(type="conversation", error=e.message, old_key=old_key, conversation=old_conversation)
                )
                unmigrated_keys.add(old_key)
                continue

            results.conversations_processed += 1
            if migrated is None:
                continue
            if any(c.id == migrated.id or are_similar_conversations(c, migrated) for c in merged):
                logger.debug("Skipping duplicate conversation: %s", migrated.id)
                continue
            merged.append(migrated)
            results.migrated_conversations += 1

    old_recent = storage_data.get(options.recent_old_key)
    if old_recent:
        results.old_data_found = True
    if old_recent and not storage_data.get(options.recent_new_key):
        try:
            migrated_recent = migrate_conversation(old_recent, clock)
            if migrated_recent is not None and not options.dry_run:
                await backend.set({options.recent_new_key: to_builtins(migrated_recent)})
                results.migrated_recent = True
                logger.info("Migrated recent conversation")
        except (MigrationError, StorageError) as e:
            logger.warning("Error migrating recent conversation: %s", e.message)
            results.errors.append(MigrationIssue(type="recent", error=e.message))
            unmigrated_keys.add(options.recent_old_key)

    sort_newest_first(merged)
    if len(merged) > options.max_history:
        logger.info("Trimmed %d old conversations during migration", len(merged) - options.max_history)
        merged = merged[: options.max_history]

    if options.dry_run:
        logger.info("Migration dry run completed: %r", results)
        return results

    if results.migrated_conversations > 0:
        try:
            await backend.set({options.new_key: to_builtins(merged)})
        except StorageError as e:
            results.errors.append(MigrationIssue(type="migration", error=e.message))
            logger.exception("Migration failed")
            raise
        logger.info("Saved %d conversations to the current format", len(merged))

    if results.old_data_found and options.cleanup_old_keys:
        await _remove_legacy_keys(backend, options, storage_data, results, unmigrated_keys)

    if results.old_data_found:
        logger.info("Migration completed: %r", results)
    else:
        logger.info("No legacy data found, migration not needed")
    return results


async def _remove_legacy_keys(
    backend: KeyValueBackend,
    options: MigrationOptions,
    storage_data: Mapping[str, Any],
    results: MigrationResults,
    unmigrated_keys: set[str],
) -> None:
    legacy_keys = (*options.old_keys, options.recent_old_key)
    kept = [key for key in legacy_keys if storage_data.get(key) and key in unmigrated_keys]
    if kept:
        logger.warning("Keeping legacy keys with unmigrated records: %s", ", ".join(kept))
    keys_to_remove = [key for key in legacy_keys if storage_data.get(key) and key not in unmigrated_keys]
    if not keys_to_remove:
        return
    try:
        await backend.remove(keys_to_remove)
        logger.info("Cleaned up legacy storage keys: %s", ", ".join(keys_to_remove))
    except StorageError as e:
        logger.warning("Error cleaning up legacy keys: %s", e.message)
        results.errors.append(MigrationIssue(type="cleanup", error=e.message))


async def is_migration_needed(backend: KeyValueBackend, options: MigrationOptions | None = None) -> bool:
    options = options or MigrationOptions()
    keys = [*options.old_keys, options.recent_old_key]
    try:
        storage_data = await backend.get(keys)
    except StorageError as e:
        logger.warning("Error checking migration status: %s", e.message)
        return False

    for key in keys:
        if storage_data.get(key):
            logger.info("Legacy data found in key: %s", key)
            return True
    return False


async def auto_migrate(
    backend: KeyValueBackend,
    options: MigrationOptions | None = None,
    clock: Clock | None = None,
) -> MigrationResults | None:
    """Runs the migration only when legacy keys hold data; meant for surface startup."""
    options = options or MigrationOptions()
    if not await is_migration_needed(backend, options):
        logger.debug("No migration needed")
        return None

    logger.info("Auto-migration starting")
    return await migrate_chat_history(
        backend,
        structs.replace(options, dry_run=False, cleanup_old_keys=True),
        clock,
    )
