from rich.console import Console

from chatsync.context import ChatContext
from chatsync.history import MigrationOptions, MigrationResults, migrate_chat_history
from chatsync.session_loader import run_with_context


def migrate(dry_run: bool = False, keep_legacy: bool = False) -> None:
    async def operation(context: ChatContext) -> MigrationResults:
        options = MigrationOptions(
            dry_run=dry_run,
            cleanup_old_keys=not keep_legacy,
            max_history=context.settings.max_history,
        )
        return await migrate_chat_history(context.backend, options, context.clock)

    results = run_with_context(operation, start=False)
    console = Console()
    if not results.old_data_found:
        console.print("No legacy data found, nothing to migrate.")
        return

    verb = "Would migrate" if dry_run else "Migrated"
    console.print(
        f"{verb} {results.migrated_conversations} of {results.conversations_processed} conversations"
        + (" and the recent conversation." if results.migrated_recent else ".")
    )
    for issue in results.errors:
        where = f" in {issue.old_key}" if issue.old_key else ""
        console.print(f"Skipped ({issue.type}{where}): {issue.error}", style="yellow", markup=False)
