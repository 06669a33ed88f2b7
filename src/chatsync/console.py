"""Rich rendering helpers shared by the CLI commands."""

from collections.abc import Sequence

from rich.console import Group
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from chatsync.models import Conversation, parse_timestamp

_ROLE_STYLES = {"user": "bold cyan", "assistant": "bold green", "system": "bold magenta"}


def format_timestamp(value: str) -> str:
    """Short local-agnostic rendering; unparseable values are shown as-is."""
    parsed = parse_timestamp(value)
    if parsed.year == 1:
        return value or "-"
    return parsed.strftime("%Y-%m-%d %H:%M")


def conversation_table(conversations: Sequence[Conversation], title: str | None = None) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title")
    table.add_column("Provider")
    table.add_column("Messages", justify="right")
    table.add_column("Updated", no_wrap=True)
    for conversation in conversations:
        table.add_row(
            conversation.id,
            conversation.title,
            conversation.provider,
            str(len(conversation.messages)),
            format_timestamp(conversation.timestamp),
        )
    return table


def render_conversation(conversation: Conversation) -> Group:
    header = Text.assemble(
        (conversation.title, "bold"),
        (f"  {conversation.provider} / {conversation.model}", "dim"),
    )
    parts: list[Panel | Text] = [header]
    for message in conversation.messages:
        parts.append(
            Panel(
                Markdown(message.content),
                title=Text(message.role, style=_ROLE_STYLES.get(message.role, "bold")),
                title_align="left",
                border_style="dim",
            )
        )
    return Group(*parts)
