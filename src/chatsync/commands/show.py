from rich.console import Console

from chatsync.console import render_conversation
from chatsync.context import ChatContext
from chatsync.exceptions import InvalidInputError
from chatsync.session_loader import run_with_context


def show(conversation_id: str) -> None:
    async def operation(context: ChatContext) -> None:
        history = await context.history.get_history()
        conversation = next((c for c in history if c.id == conversation_id), None)
        if conversation is None:
            raise InvalidInputError(f"Conversation not found: {conversation_id}")
        Console().print(render_conversation(conversation))

    run_with_context(operation)
