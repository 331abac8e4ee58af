"""structlog setup shared by the decoder, the line source and the CLI.

Logs always go to stderr so stdout stays free for decoded events. Per-line
decoder steps go through :func:`log_pipeline`, which stays at debug unless
``CLAUDE_STREAM_TRACE_PIPELINE`` is set.
"""

from __future__ import annotations

import errno
import io
import os
import re
import sys
from collections.abc import Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, TextIO, cast

import structlog
from structlog.types import EventDict, Processor

ANTHROPIC_KEY_RE = re.compile(r"sk-ant-[A-Za-z0-9_-]{8,}")
BEARER_RE = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]{8,}=*")

LEVELS: dict[str, int] = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
    "exception": 40,
    "critical": 50,
}

_suppress_below: ContextVar[int | None] = ContextVar(
    "claude_stream_suppress_below", default=None
)


def _truthy(value: str | None) -> bool:
    return value is not None and value.strip().lower() in {"1", "true", "yes", "on"}


def _level(name: str | None, default: str) -> int:
    if name:
        found = LEVELS.get(name.strip().lower())
        if found is not None:
            return found
    return LEVELS[default]


@dataclass(frozen=True, slots=True)
class LogOptions:
    min_level: int = LEVELS["info"]
    trace_pipeline: bool = False
    json: bool = False
    colors: bool = False
    file: str | None = None

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, *, debug: bool = False
    ) -> LogOptions:
        env = os.environ if environ is None else environ
        color = env.get("CLAUDE_STREAM_LOG_COLOR")
        return cls(
            min_level=LEVELS["debug"]
            if debug
            else _level(env.get("CLAUDE_STREAM_LOG_LEVEL"), "info"),
            trace_pipeline=_truthy(env.get("CLAUDE_STREAM_TRACE_PIPELINE")),
            json=env.get("CLAUDE_STREAM_LOG_FORMAT", "").strip().lower() == "json",
            colors=sys.stderr.isatty() if color is None else _truthy(color),
            file=env.get("CLAUDE_STREAM_LOG_FILE") or None,
        )


_options = LogOptions()


def log_pipeline(logger: Any, event: str, **fields: Any) -> None:
    """Log a per-line decoder step; debug unless pipeline tracing is on."""
    if _options.trace_pipeline:
        logger.info(event, **fields)
    else:
        logger.debug(event, **fields)


def _filter_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    value = LEVELS.get(method_name, 0)
    floor = max(_options.min_level, _suppress_below.get() or 0)
    if value < floor:
        raise structlog.DropEvent
    return event_dict


def _scrub(value: Any, seen: dict[int, Any]) -> Any:
    match value:
        case str():
            text = ANTHROPIC_KEY_RE.sub("sk-ant-[REDACTED]", value)
            return BEARER_RE.sub("Bearer [REDACTED]", text)
        case bytes() | bytearray():
            return _scrub(bytes(value).decode("utf-8", errors="replace"), seen)
        case dict() | list() | tuple():
            if id(value) in seen:
                return seen[id(value)]
        case _:
            return value
    if isinstance(value, dict):
        out: dict[Any, Any] = {}
        seen[id(value)] = out
        out.update((key, _scrub(item, seen)) for key, item in value.items())
        return out
    items: list[Any] = []
    seen[id(value)] = items
    items.extend(_scrub(item, seen) for item in value)
    return tuple(items) if isinstance(value, tuple) else items


def _redact(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    return _scrub(event_dict, {})


def _logger_name(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    name = event_dict.pop("logger_name", None)
    if name and "logger" not in event_dict:
        event_dict["logger"] = name
    return event_dict


class _FileSink:
    """Appends every record as one JSON line to ``CLAUDE_STREAM_LOG_FILE``."""

    def __init__(self) -> None:
        self._handle: TextIO | None = None
        self._render = structlog.processors.JSONRenderer(default=str)

    def open(self, path: str | None) -> None:
        self.close()
        if not path:
            return
        try:
            self._handle = open(path, "a", encoding="utf-8")
        except OSError:
            self._handle = None

    def close(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.close()
        except OSError:
            pass
        self._handle = None

    def __call__(self, logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        if self._handle is None:
            return event_dict
        try:
            line = self._render(logger, method_name, dict(event_dict))
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            self._handle.write(line + "\n")
            self._handle.flush()
        except (OSError, ValueError):
            pass
        return event_dict


_file_sink = _FileSink()


class SafeWriter(io.TextIOBase):
    """stderr wrapper that goes quiet once the reading end of a pipe is gone."""

    def __init__(self, stream: Any) -> None:
        self._stream = stream
        self._broken = False

    def _guard(self, action: str, *args: Any) -> Any:
        if self._broken:
            return 0
        try:
            return getattr(self._stream, action)(*args)
        except (BrokenPipeError, ValueError):
            self._broken = True
        except OSError as exc:
            if exc.errno != errno.EPIPE:
                raise
            self._broken = True
        return 0

    def write(self, message: str) -> int:
        return self._guard("write", message)

    def flush(self) -> None:
        self._guard("flush")

    def isatty(self) -> bool:
        isatty = getattr(self._stream, "isatty", None)
        return bool(isatty()) if callable(isatty) else False


def _processors(options: LogOptions) -> list[Processor]:
    chain: list[Processor] = [
        _filter_level,
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        _logger_name,
    ]
    if options.json:
        chain.append(structlog.processors.format_exc_info)
    chain.extend([_redact, _file_sink])
    if options.json:
        chain.append(structlog.processors.JSONRenderer(default=str))
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=options.colors))
    return chain


def setup_logging(
    *, debug: bool = False, cache_logger_on_first_use: bool = True
) -> LogOptions:
    global _options

    _options = LogOptions.from_env(debug=debug)
    _file_sink.open(_options.file)
    structlog.configure(
        processors=_processors(_options),
        logger_factory=structlog.PrintLoggerFactory(
            file=cast(TextIO, SafeWriter(sys.stderr))
        ),
        cache_logger_on_first_use=cache_logger_on_first_use,
    )
    return _options


def get_logger(name: str | None = None) -> Any:
    if name:
        return structlog.get_logger(logger_name=name)
    return structlog.get_logger()


def bind_run_context(**fields: Any) -> None:
    structlog.contextvars.bind_contextvars(**fields)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def suppress_logs(level: str = "warning"):
    token = _suppress_below.set(_level(level, "warning"))
    try:
        yield
    finally:
        _suppress_below.reset(token)
