from collections.abc import Sequence
from typing import Final

import regex

from chatsync.models import Message, Provider

DEFAULT_TITLE: Final = "New Conversation"
UNTITLED: Final = "Untitled Conversation"
TITLE_MAX_LENGTH: Final = 50

_MARKUP_RE: Final = regex.compile(r"[#*`_~]")

_PROVIDER_ALIASES: Final[dict[str, Provider]] = {
    "gpt": Provider.OPENAI,
    "chatgpt": Provider.OPENAI,
    "openai": Provider.OPENAI,
    "claude": Provider.ANTHROPIC,
    "anthropic": Provider.ANTHROPIC,
    "gemini": Provider.GEMINI,
    "google": Provider.GEMINI,
    "bard": Provider.GEMINI,
    "deepseek": Provider.DEEPSEEK,
    "azure": Provider.AZURE_OPENAI,
    "azureopenai": Provider.AZURE_OPENAI,
    "azure-openai": Provider.AZURE_OPENAI,
    "local": Provider.LOCAL,
    "localapi": Provider.LOCAL,
    "local-api": Provider.LOCAL,
    "compatible": Provider.COMPATIBLE,
    "openai-compatible": Provider.COMPATIBLE,
}

DEFAULT_MODELS: Final[dict[str, str]] = {
    Provider.OPENAI.value: "gpt-3.5-turbo",
    Provider.ANTHROPIC.value: "claude-3-sonnet-20240229",
    Provider.GEMINI.value: "gemini-pro",
    Provider.DEEPSEEK.value: "deepseek-chat",
    Provider.AZURE_OPENAI.value: "gpt-35-turbo",
    Provider.LOCAL.value: "local-model",
    Provider.COMPATIBLE.value: "compatible-model",
}


def normalize_provider(provider: str | None) -> str:
    """
    Maps loose or legacy provider spellings onto the canonical names.

    Missing or "unknown" providers default to openai; unrecognized names are
    returned unchanged.
    """
    if not provider or provider == "unknown":
        return Provider.OPENAI.value
    canonical = _PROVIDER_ALIASES.get(provider.lower().strip())
    return canonical.value if canonical is not None else provider


def normalize_model(model: str | None, provider: str) -> str:
    if not model or model == "unknown":
        return DEFAULT_MODELS.get(provider, DEFAULT_MODELS[Provider.OPENAI.value])
    return model.strip()


def generate_title(messages: Sequence[Message]) -> str:
    """Title from the first user message, markup stripped, at most 50 characters."""
    first_user = next((m for m in messages if m.role == "user"), None)
    if first_user is None:
        return DEFAULT_TITLE

    title = _MARKUP_RE.sub("", first_user.content.strip())
    if len(title) > TITLE_MAX_LENGTH:
        title = title[: TITLE_MAX_LENGTH - 3] + "..."
    return title or DEFAULT_TITLE
