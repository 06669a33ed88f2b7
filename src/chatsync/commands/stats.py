from rich.console import Console
from rich.table import Table

from chatsync.console import format_timestamp
from chatsync.context import ChatContext
from chatsync.models import ConversationStats
from chatsync.serialization import to_json
from chatsync.session_loader import run_with_context


def stats(json_output: bool = False) -> None:
    async def operation(context: ChatContext) -> ConversationStats:
        return await context.history.get_statistics()

    result = run_with_context(operation)
    if json_output:
        print(to_json(result, indent=2).decode("utf-8"))
        return

    table = Table(title="Conversation statistics", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Conversations", str(result.total_conversations))
    table.add_row("Messages", str(result.total_messages))
    table.add_row("Oldest", format_timestamp(result.oldest_conversation or ""))
    table.add_row("Newest", format_timestamp(result.newest_conversation or ""))
    for provider, count in sorted(result.provider_breakdown.items()):
        table.add_row(f"  {provider}", str(count))
    Console().print(table)
