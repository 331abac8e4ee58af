from __future__ import annotations

import json
from pathlib import Path

import pytest

from claude_stream.logging import (
    get_logger,
    log_pipeline,
    setup_logging,
    suppress_logs,
)


@pytest.fixture
def json_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLAUDE_STREAM_LOG_FORMAT", "json")
    monkeypatch.delenv("CLAUDE_STREAM_LOG_LEVEL", raising=False)
    monkeypatch.delenv("CLAUDE_STREAM_TRACE_PIPELINE", raising=False)
    monkeypatch.delenv("CLAUDE_STREAM_LOG_FILE", raising=False)


def _records(err: str) -> list[dict]:
    return [json.loads(line) for line in err.splitlines() if line.strip()]


def test_secrets_are_redacted(json_logs: None, capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging(cache_logger_on_first_use=False)
    logger = get_logger("claude_stream.test")

    logger.info(
        "auth",
        key="sk-ant-REDACTED",
        header="Authorization: Bearer abcdefghijklmnop",
        nested={"items": ["sk-ant-abcdefghijk"]},
    )

    (record,) = _records(capsys.readouterr().err)
    assert record["event"] == "auth"
    assert record["logger"] == "claude_stream.test"
    assert record["key"] == "sk-ant-[REDACTED]"
    assert record["header"] == "Authorization: Bearer [REDACTED]"
    assert record["nested"] == {"items": ["sk-ant-[REDACTED]"]}


def test_pipeline_logs_follow_trace_flag(
    json_logs: None,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    setup_logging(cache_logger_on_first_use=False)
    logger = get_logger("claude_stream.test")
    log_pipeline(logger, "decoder.line.ignored")
    assert capsys.readouterr().err == ""

    monkeypatch.setenv("CLAUDE_STREAM_TRACE_PIPELINE", "1")
    setup_logging(cache_logger_on_first_use=False)
    log_pipeline(logger, "decoder.line.ignored", jsonl_seq=3)

    (record,) = _records(capsys.readouterr().err)
    assert record["event"] == "decoder.line.ignored"
    assert record["level"] == "info"
    assert record["jsonl_seq"] == 3


def test_debug_flag_enables_debug(
    json_logs: None, capsys: pytest.CaptureFixture[str]
) -> None:
    setup_logging(debug=True, cache_logger_on_first_use=False)

    get_logger().debug("visible")

    assert [r["event"] for r in _records(capsys.readouterr().err)] == ["visible"]


def test_suppress_logs(json_logs: None, capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging(cache_logger_on_first_use=False)
    logger = get_logger("claude_stream.test")

    with suppress_logs("error"):
        logger.warning("hidden")
        logger.error("shown")

    assert [r["event"] for r in _records(capsys.readouterr().err)] == ["shown"]


def test_log_file_sink(
    json_logs: None,
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    log_path = tmp_path / "claude-stream.log"
    monkeypatch.setenv("CLAUDE_STREAM_LOG_FILE", str(log_path))
    setup_logging(cache_logger_on_first_use=False)

    get_logger("claude_stream.test").info("to.file", token="sk-ant-abcdefghijk")
    monkeypatch.delenv("CLAUDE_STREAM_LOG_FILE")
    setup_logging(cache_logger_on_first_use=False)
    capsys.readouterr()

    (record,) = _records(log_path.read_text(encoding="utf-8"))
    assert record["event"] == "to.file"
    assert record["token"] == "sk-ant-[REDACTED]"
