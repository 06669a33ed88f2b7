import typer

from chatsync.context import ChatContext
from chatsync.session_loader import run_with_context


def clear(yes: bool = False) -> None:
    if not yes:
        _ = typer.confirm("Delete all stored conversations?", abort=True)

    async def operation(context: ChatContext) -> None:
        await context.history.clear_all_history()

    run_with_context(operation)
    print("Cleared all conversation history.")
