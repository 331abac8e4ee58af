from __future__ import annotations

import textwrap

from .model import (
    Completed,
    ControlRequest,
    FileChanged,
    ResultRecord,
    SessionStarted,
    StreamEvent,
    TextBlockStart,
    TextDelta,
    ToolResult,
    ToolUseStarted,
)

STATUS = {"running": "▸", "done": "✓", "fail": "✗", "ask": "?", "file": "✎"}
HEADER_SEP = " · "

MAX_INPUT_LEN = 120
MAX_RESULT_LEN = 80


def shorten(text: str, width: int | None) -> str:
    if width is None:
        return text
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    return textwrap.shorten(text, width=width, placeholder="…")


def format_tokens(value: int) -> str:
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}k"
    return str(value)


def format_usage(record: ResultRecord) -> str:
    parts = [record.model or "unknown model"]
    total = record.cumulative
    parts.append(
        f"in {format_tokens(total.input_tokens)}"
        f" / out {format_tokens(total.output_tokens)}"
        f" / cache r {format_tokens(total.cache_read_tokens)}"
        f" w {format_tokens(total.cache_creation_tokens)}"
    )
    percent = record.context_percent
    if percent is not None:
        parts.append(
            f"ctx {percent}% of {format_tokens(record.context_window)}"
        )
    if record.total_cost_usd is not None:
        parts.append(f"${record.total_cost_usd:.4f}")
    return HEADER_SEP.join(parts)


def render_event(event: StreamEvent) -> list[str]:
    match event:
        case SessionStarted(session_id=session_id, model=model, tools=tools):
            header = HEADER_SEP.join(
                part for part in (model or "claude", session_id) if part
            )
            return [header, f"tools: {', '.join(tools) or '-'}"]
        case TextBlockStart() | TextDelta():
            return []
        case ToolUseStarted(tool_name=tool_name, input=tool_input):
            return [
                f"{STATUS['running']} {tool_name} {shorten(tool_input, MAX_INPUT_LEN)}"
            ]
        case FileChanged(path=path):
            return [f"{STATUS['file']} {path}"]
        case ToolResult(tool_name=tool_name, content=content, is_error=is_error):
            status = STATUS["fail"] if is_error else STATUS["done"]
            preview = shorten(" ".join(content.split()), MAX_RESULT_LEN)
            return [f"{status} {tool_name} {preview}".rstrip()]
        case ControlRequest(request_id=request_id, tool_name=tool_name):
            return [f"{STATUS['ask']} {tool_name} needs permission ({request_id})"]
        case Completed(result=result):
            status = STATUS["fail"] if result.is_error else STATUS["done"]
            return [f"{status} {format_usage(result)}"]
        case _:
            return []


class EventRenderer:
    """Renders events as text lines, joining streamed text into paragraphs."""

    def __init__(self) -> None:
        self._text: list[str] = []

    def feed(self, event: StreamEvent) -> list[str]:
        if isinstance(event, TextDelta):
            self._text.append(event.text)
            return []
        if isinstance(event, TextBlockStart):
            return self.flush()
        return [*self.flush(), *render_event(event)]

    def flush(self) -> list[str]:
        if not self._text:
            return []
        text = "".join(self._text)
        self._text.clear()
        return text.splitlines()
