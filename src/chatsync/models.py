from datetime import UTC, datetime
from enum import Enum
from typing import Literal, TypeAlias

from msgspec import Struct, field


class Provider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    AZURE_OPENAI = "azureOpenai"
    LOCAL = "local"
    COMPATIBLE = "compatible"


Role: TypeAlias = Literal["system", "user", "assistant"]


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class Message(Struct):
    role: Role
    content: str
    timestamp: str = field(default_factory=utc_now_iso)


class Conversation(Struct, rename="camel", omit_defaults=True):
    """
    Canonical persisted chat record.

    Empty strings mean "not set yet"; the history service fills in id, title,
    timestamp, provider and model on save. Serialized with camelCase keys so the
    persisted layout matches what every surface reads (`migratedAt`).
    """

    id: str = ""
    title: str = ""
    provider: str = ""
    model: str = ""
    timestamp: str = ""
    messages: list[Message] = field(default_factory=list)
    migrated: bool | None = None
    migrated_at: str | None = None


class ConversationStats(Struct):
    total_conversations: int = 0
    total_messages: int = 0
    provider_breakdown: dict[str, int] = field(default_factory=dict)
    oldest_conversation: str | None = None
    newest_conversation: str | None = None


class TabSnapshot(Struct, rename="camel"):
    messages: list[Message] = field(default_factory=list)
    include_page_context: bool = False
    conversation_id: str | None = None
    timestamp: float = 0.0


def parse_timestamp(value: str | None) -> datetime:
    """
    Parses an ISO-8601 timestamp for ordering purposes.

    Unparseable values sort as the oldest possible moment; naive values are
    treated as UTC.
    """
    if not value:
        return datetime.min.replace(tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
