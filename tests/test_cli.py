# pyright: standard

import asyncio
from pathlib import Path
from typing import Any

import msgspec
import pytest
from typer.testing import CliRunner

from chatsync.history import HISTORY_KEY
from chatsync.main import app
from chatsync.storage import JsonFileBackend
from tests.helpers import iso, make_conversation

runner = CliRunner()


@pytest.fixture
def storage_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "storage.json"
    monkeypatch.setenv("CHATSYNC_STORAGE_FILE", str(path))
    return path


def _seed(path: Path, data: dict[str, Any]) -> None:
    asyncio.run(JsonFileBackend(path).set(data))


def _stored(path: Path, key: str = HISTORY_KEY) -> Any:
    return asyncio.run(JsonFileBackend(path).get(key)).get(key)


def _history() -> list[dict[str, Any]]:
    return [
        make_conversation("older", minutes=1, title="Python tips", user="How do I sort?"),
        make_conversation("newer", minutes=2, title="Trip plan", user="Where to go?", provider="anthropic"),
    ]


def test_list_shows_conversations_newest_first(storage_file: Path) -> None:
    # GIVEN two stored conversations
    _seed(storage_file, {HISTORY_KEY: _history()})

    # WHEN listing
    result = runner.invoke(app, ["list"])

    # THEN both appear, the newer one first
    assert result.exit_code == 0
    assert result.stdout.index("newer") < result.stdout.index("older")
    assert "Trip plan" in result.stdout


def test_list_without_history(storage_file: Path) -> None:
    result = runner.invoke(app, ["list"])

    assert result.exit_code == 0
    assert "No conversations found." in result.stdout


def test_show_prints_messages(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    result = runner.invoke(app, ["show", "older"])

    assert result.exit_code == 0
    assert "Python tips" in result.stdout
    assert "How do I sort?" in result.stdout


def test_show_unknown_conversation_fails(storage_file: Path) -> None:
    result = runner.invoke(app, ["show", "missing"])

    assert result.exit_code == 1
    assert "Error: Conversation not found: missing" in result.stderr


def test_delete_removes_conversation(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    result = runner.invoke(app, ["delete", "older"])

    assert result.exit_code == 0
    assert "Deleted conversation older" in result.stdout
    assert [entry["id"] for entry in _stored(storage_file)] == ["newer"]


def test_delete_unknown_conversation_fails(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    result = runner.invoke(app, ["delete", "missing"])

    assert result.exit_code == 1
    assert "Error: Conversation not found: missing" in result.stderr
    assert len(_stored(storage_file)) == 2


def test_rename_updates_title(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    result = runner.invoke(app, ["rename", "older", "Sorting in Python"])

    assert result.exit_code == 0
    assert "Renamed conversation older to: Sorting in Python" in result.stdout
    titles = {entry["id"]: entry["title"] for entry in _stored(storage_file)}
    assert titles["older"] == "Sorting in Python"


def test_rename_to_blank_title_uses_placeholder(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    result = runner.invoke(app, ["rename", "older", "  "])

    assert result.exit_code == 0
    assert "to: Untitled Conversation" in result.stdout


def test_search_matches_titles_and_messages(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    by_message = runner.invoke(app, ["search", "sort"])
    titles_only = runner.invoke(app, ["search", "sort", "--titles-only"])

    assert by_message.exit_code == 0
    assert "1 match(es) for 'sort'" in by_message.stdout
    assert "older" in by_message.stdout
    assert titles_only.exit_code == 0
    assert "No conversations match 'sort'." in titles_only.stdout


def test_search_rejects_conflicting_flags(storage_file: Path) -> None:
    result = runner.invoke(app, ["search", "x", "--titles-only", "--messages-only"])

    assert result.exit_code == 1
    assert "mutually exclusive" in result.stderr


def test_search_rejects_non_positive_limit(storage_file: Path) -> None:
    result = runner.invoke(app, ["search", "x", "--limit", "0"])

    assert result.exit_code == 1
    assert "Error: --limit must be at least 1." in result.stderr


def test_stats_as_json(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    result = runner.invoke(app, ["stats", "--json"])

    assert result.exit_code == 0
    stats = msgspec.json.decode(result.stdout)
    assert stats["total_conversations"] == 2
    assert stats["total_messages"] == 4
    assert stats["provider_breakdown"] == {"openai": 1, "anthropic": 1}
    assert stats["oldest_conversation"] == iso(1)
    assert stats["newest_conversation"] == iso(2)


def test_stats_table(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 0
    assert "Conversations" in result.stdout
    assert "anthropic" in result.stdout


def test_migrate_dry_run_then_keep_legacy(storage_file: Path) -> None:
    # GIVEN only legacy data on disk
    legacy = [{"messages": [{"role": "user", "content": "Old question", "timestamp": iso(0)}]}]
    _seed(storage_file, {"chat_history": legacy})

    # WHEN previewing, then migrating while keeping the legacy key
    preview = runner.invoke(app, ["migrate", "--dry-run"])
    after_preview = _stored(storage_file)
    applied = runner.invoke(app, ["migrate", "--keep-legacy"])

    # THEN the preview writes nothing and the real run keeps the old key
    assert preview.exit_code == 0
    assert "Would migrate 1 of 1 conversations." in preview.stdout
    assert after_preview is None
    assert applied.exit_code == 0
    assert "Migrated 1 of 1 conversations." in applied.stdout
    assert [entry["title"] for entry in _stored(storage_file)] == ["Old question"]
    assert _stored(storage_file, "chat_history") == legacy


def test_migrate_without_legacy_data(storage_file: Path) -> None:
    result = runner.invoke(app, ["migrate"])

    assert result.exit_code == 0
    assert "No legacy data found, nothing to migrate." in result.stdout


def test_other_commands_migrate_legacy_data_first(storage_file: Path) -> None:
    _seed(storage_file, {"conversation_history": [[{"role": "user", "content": "Legacy chat"}]]})

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 0
    assert "Legacy chat" in result.stdout
    assert _stored(storage_file, "conversation_history") is None


def test_clear_with_confirmation_flag(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    result = runner.invoke(app, ["clear", "--yes"])

    assert result.exit_code == 0
    assert "Cleared all conversation history." in result.stdout
    assert _stored(storage_file) == []


def test_clear_declined_keeps_history(storage_file: Path) -> None:
    _seed(storage_file, {HISTORY_KEY: _history()})

    result = runner.invoke(app, ["clear"], input="n\n")

    assert result.exit_code == 1
    assert len(_stored(storage_file)) == 2


def test_invalid_configuration_is_reported(storage_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATSYNC_MAX_HISTORY", "0")

    result = runner.invoke(app, ["list"])

    assert result.exit_code == 1
    assert "Error: Invalid configuration: CHATSYNC_MAX_HISTORY" in result.stderr


def test_corrupt_storage_file_degrades_reads_and_fails_writes(storage_file: Path) -> None:
    # GIVEN a storage file that is not valid JSON
    _ = storage_file.write_text("{oops")

    # WHEN reading, then writing
    listing = runner.invoke(app, ["list"])
    deleting = runner.invoke(app, ["delete", "c1"])

    # THEN the read shows an empty history and the write reports the problem
    assert listing.exit_code == 0
    assert "No conversations found." in listing.stdout
    assert deleting.exit_code == 1
    assert "Error: Corrupt JSON" in deleting.stderr
