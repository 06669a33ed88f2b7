from chatsync.context import ChatContext
from chatsync.exceptions import InvalidInputError
from chatsync.session_loader import run_with_context


def delete(conversation_id: str) -> None:
    async def operation(context: ChatContext) -> bool:
        return await context.history.delete_conversation(conversation_id)

    if not run_with_context(operation):
        raise InvalidInputError(f"Conversation not found: {conversation_id}")
    print(f"Deleted conversation {conversation_id}")
