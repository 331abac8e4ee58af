from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from claude_stream import __version__
from claude_stream.cli import app, event_to_json
from claude_stream.model import FileChanged, SessionStarted

FIXTURES = Path(__file__).parent / "fixtures"

runner = CliRunner()


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_event_to_json() -> None:
    assert json.loads(event_to_json(SessionStarted("s1", "m", ("Read",)))) == {
        "event": "SessionStarted",
        "session_id": "s1",
        "model": "m",
        "tools": ["Read"],
    }
    assert json.loads(event_to_json(FileChanged("/a"))) == {
        "event": "FileChanged",
        "path": "/a",
    }


def test_replay_prints_rendered_events() -> None:
    result = runner.invoke(
        app, ["replay", str(FIXTURES / "claude_stream_json_session.jsonl")]
    )

    assert result.exit_code == 0, result.output
    lines = result.stdout.splitlines()
    assert lines[0] == "claude-sonnet-4-5 · 5f2c1c52-8a2b-4d7e-9d3c-2b7f2a1e0c11"
    assert "I'll create the notes file." in lines
    assert "✎ /home/dev/project/notes.md" in lines
    assert "Done. Added notes.md." in lines
    assert lines[-1].startswith("total: claude-sonnet-4-5 · in 8 / out 96")
    assert "ctx 7% of 200.0k" in lines[-1]


def test_replay_json_lines() -> None:
    result = runner.invoke(
        app, ["replay", "--json", str(FIXTURES / "claude_stream_json_session.jsonl")]
    )

    assert result.exit_code == 0, result.output
    payloads = [json.loads(line) for line in result.stdout.splitlines() if line]
    assert [payload["event"] for payload in payloads] == [
        "SessionStarted",
        "TextBlockStart",
        "TextDelta",
        "TextDelta",
        "ToolUseStarted",
        "ToolUseStarted",
        "FileChanged",
        "ToolResult",
        "TextBlockStart",
        "TextDelta",
        "Completed",
    ]
    completed = payloads[-1]["result"]
    assert completed["last_call_output_tokens"] == 12
    assert completed["input_tokens"] == 8


def test_replay_tolerates_unknown_lines() -> None:
    result = runner.invoke(
        app, ["replay", "--json", str(FIXTURES / "claude_stream_json_unknown.jsonl")]
    )

    assert result.exit_code == 0, result.output
    events = [json.loads(line)["event"] for line in result.stdout.splitlines() if line]
    assert events == ["SessionStarted", "ToolUseStarted", "FileChanged", "Completed"]


def test_replay_missing_file(tmp_path: Path) -> None:
    result = runner.invoke(app, ["replay", str(tmp_path / "missing.jsonl")])

    assert result.exit_code != 0


def test_command_uses_config(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        '[claude]\nmodel = "claude-opus-4-1"\nallowed_tools = ["Read"]\n',
        encoding="utf-8",
    )

    result = runner.invoke(
        app,
        ["command", "fix the bug", "--resume", "sess-1", "--config", str(config_path)],
    )

    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == (
        'claude -p --output-format stream-json --verbose --resume "sess-1" '
        '--model claude-opus-4-1 --allowedTools Read -- "fix the bug"'
    )


def test_command_defaults_without_config(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        "claude_stream.config.HOME_CONFIG_PATH", tmp_path / "missing.toml"
    )

    result = runner.invoke(app, ["command", "hello"])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == (
        "claude -p --output-format stream-json --verbose "
        '--allowedTools Bash,Read,Edit,Write -- "hello"'
    )


def test_command_reports_config_errors(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("[claude]\nunknown = 1\n", encoding="utf-8")

    result = runner.invoke(app, ["command", "hi", "--config", str(config_path)])

    assert result.exit_code == 1
