from rich.console import Console

from chatsync.console import conversation_table
from chatsync.context import ChatContext
from chatsync.session_loader import run_with_context


def conversation_list() -> None:
    async def operation(context: ChatContext) -> None:
        conversations = await context.history.get_history()
        console = Console()
        if not conversations:
            console.print("No conversations found.")
            return
        console.print(conversation_table(conversations))

    run_with_context(operation)
