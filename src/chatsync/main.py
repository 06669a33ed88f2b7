from collections.abc import Sequence
from sys import exit
from typing import Annotated, Any, final

from typing_extensions import override

import typer
from typer.core import TyperGroup

from chatsync.exceptions import ChatsyncError

app: typer.Typer


@final
class ErrorHandlingGroup(TyperGroup):
    @override
    def main(  # pyright: ignore[reportAny]
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        windows_expand_args: bool = True,
        **extra: Any,  # pyright: ignore[reportAny, reportExplicitAny]
    ) -> Any:  # pyright: ignore[reportExplicitAny]
        try:
            return super().main(args, prog_name, complete_var, standalone_mode, windows_expand_args, **extra)  # pyright: ignore[reportAny]
        except ChatsyncError as e:
            typer.secho(f"Error: {e.message}", err=True, fg=typer.colors.RED)
            exit(e.exit_code)
        except Exception as e:
            typer.secho("Unexpected Internal Error", err=True, fg=typer.colors.RED)
            typer.echo(str(e), err=True)
            exit(1)


app = typer.Typer(cls=ErrorHandlingGroup, no_args_is_help=True)


@app.command("list")
def list_conversations() -> None:
    """
    List stored conversations, newest first.
    """
    from chatsync.commands import conversation_list

    conversation_list.conversation_list()


@app.command("show")
def show(
    conversation_id: Annotated[str, typer.Argument(help="ID of the conversation to display.")],
) -> None:
    """
    Display one conversation with all of its messages.
    """
    from chatsync.commands import show

    show.show(conversation_id)


@app.command("delete")
def delete(
    conversation_id: Annotated[str, typer.Argument(help="ID of the conversation to delete.")],
) -> None:
    """
    Delete a conversation from the history.
    """
    from chatsync.commands import delete

    delete.delete(conversation_id)


@app.command("rename")
def rename(
    conversation_id: Annotated[str, typer.Argument(help="ID of the conversation to rename.")],
    title: Annotated[str, typer.Argument(help="The new title. Empty resets to 'Untitled Conversation'.")],
) -> None:
    """
    Change the title of a conversation.
    """
    from chatsync.commands import rename

    rename.rename(conversation_id, title)


@app.command("search")
def search(
    term: Annotated[str, typer.Argument(help="Case-insensitive text to look for.")],
    titles_only: Annotated[bool, typer.Option("--titles-only", help="Only match conversation titles.")] = False,
    messages_only: Annotated[bool, typer.Option("--messages-only", help="Only match message contents.")] = False,
    limit: Annotated[int, typer.Option("--limit", help="Maximum number of results.")] = 20,
) -> None:
    """
    Search conversations by title and message content.
    """
    from chatsync.commands import search

    search.search(term, titles_only, messages_only, limit)


@app.command("stats")
def stats(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the statistics as JSON.",
        ),
    ] = False,
) -> None:
    """
    Show totals, provider breakdown and the time span of the history.
    """
    from chatsync.commands import stats

    stats.stats(json_output)


@app.command("migrate")
def migrate(
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Report what would be migrated without writing.")] = False,
    keep_legacy: Annotated[
        bool,
        typer.Option("--keep-legacy", help="Leave the legacy storage keys in place after migrating."),
    ] = False,
) -> None:
    """
    Move conversations stored under legacy keys into the current history.
    """
    from chatsync.commands import migrate

    migrate.migrate(dry_run, keep_legacy)


@app.command("clear")
def clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")] = False,
) -> None:
    """
    Delete every stored conversation.
    """
    from chatsync.commands import clear

    clear.clear(yes)


if __name__ == "__main__":
    app()
