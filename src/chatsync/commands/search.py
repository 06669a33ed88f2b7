from rich.console import Console

from chatsync.console import conversation_table
from chatsync.context import ChatContext
from chatsync.exceptions import InvalidInputError
from chatsync.models import Conversation
from chatsync.session_loader import run_with_context


def search(term: str, titles_only: bool, messages_only: bool, limit: int) -> None:
    if titles_only and messages_only:
        raise InvalidInputError("--titles-only and --messages-only are mutually exclusive.")
    if limit < 1:
        raise InvalidInputError("--limit must be at least 1.")

    async def operation(context: ChatContext) -> list[Conversation]:
        return await context.history.search_conversations(
            term,
            search_titles=not messages_only,
            search_messages=not titles_only,
            limit=limit,
        )

    matches = run_with_context(operation)
    console = Console()
    if not matches:
        console.print(f"No conversations match '{term}'.", markup=False)
        return
    console.print(conversation_table(matches, title=f"{len(matches)} match(es) for '{term}'"))
