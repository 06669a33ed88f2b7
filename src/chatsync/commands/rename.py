from chatsync.context import ChatContext
from chatsync.exceptions import InvalidInputError
from chatsync.history.normalize import UNTITLED
from chatsync.session_loader import run_with_context


def rename(conversation_id: str, title: str) -> None:
    async def operation(context: ChatContext) -> bool:
        return await context.history.update_conversation_title(conversation_id, title)

    if not run_with_context(operation):
        raise InvalidInputError(f"Conversation not found: {conversation_id}")
    print(f"Renamed conversation {conversation_id} to: {title.strip() or UNTITLED}")
