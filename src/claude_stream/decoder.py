"""Stateful decoder for Claude Code stream-json output.

``StreamDecoder.ingest`` takes one line at a time and turns it into zero or
more events from :mod:`claude_stream.model`. Lines that are blank, not JSON,
or of an unknown shape produce nothing; the decoder never raises because of
what a line contains.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

import msgspec

from .logging import get_logger, log_pipeline
from .model import (
    EVENT_TYPES,
    FILE_CHANGE_TOOLS,
    FILE_PATH_KEYS,
    UNKNOWN_TOOL,
    Completed,
    ControlRequest,
    FileChanged,
    SessionStarted,
    StreamEvent,
    TextBlockStart,
    TextDelta,
    ToolResult,
    ToolUseStarted,
)
from .schemas import claude as claude_schema
from .usage import TurnUsage

logger = get_logger(__name__)

type Subscriber = Callable[[Any], None]


@dataclass(slots=True)
class BlockCursor:
    """The single content block currently open, if any."""

    kind: Literal["text", "tool"] | None = None
    tool_name: str | None = None
    tool_use_id: str | None = None
    input_parts: list[str] = field(default_factory=list)

    def open_text(self) -> None:
        self.clear()
        self.kind = "text"

    def open_tool(self, name: str, tool_use_id: str, initial_input: str) -> None:
        self.clear()
        self.kind = "tool"
        self.tool_name = name
        self.tool_use_id = tool_use_id
        if initial_input:
            self.input_parts.append(initial_input)

    def append_input(self, fragment: str) -> None:
        if fragment:
            self.input_parts.append(fragment)

    def input_text(self) -> str:
        return "".join(self.input_parts)

    def clear(self) -> None:
        self.kind = None
        self.tool_name = None
        self.tool_use_id = None
        self.input_parts.clear()


@dataclass(slots=True)
class DecoderState:
    session_id: str | None = None
    model: str | None = None
    tools: tuple[str, ...] = ()
    cursor: BlockCursor = field(default_factory=BlockCursor)
    usage: TurnUsage = field(default_factory=TurnUsage)


def _normalize_tools(raw: Any) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    names: list[str] = []
    for item in raw:
        if isinstance(item, str):
            names.append(item)
        elif isinstance(item, dict):
            name = item.get("name")
            names.append(name if isinstance(name, str) else "")
    return tuple(names)


def _normalize_tool_result(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text = item.get("text")
                if isinstance(text, str):
                    parts.append(text)
            elif isinstance(item, str):
                parts.append(item)
        return "".join(parts)
    return ""


def _file_result_content(tool_use_result: Any) -> str | None:
    # Read results echo the file body under tool_use_result.file.content.
    if not isinstance(tool_use_result, dict):
        return None
    file_info = tool_use_result.get("file")
    if not isinstance(file_info, dict):
        return None
    content = file_info.get("content")
    return content if isinstance(content, str) else None


def _encode_input(tool_input: dict[str, Any]) -> str:
    return msgspec.json.encode(tool_input).decode("utf-8")


def _parse_tool_input(text: str, *, tool_name: str | None) -> dict[str, Any]:
    if not text.strip():
        return {}
    try:
        value = msgspec.json.decode(text)
    except (msgspec.DecodeError, UnicodeError, RecursionError) as exc:
        log_pipeline(
            logger,
            "decoder.tool_input.invalid",
            tool_name=tool_name,
            error=str(exc),
            input_len=len(text),
        )
        return {}
    if not isinstance(value, dict):
        return {}
    return value


def _file_change_path(tool_name: str, tool_input: dict[str, Any]) -> str | None:
    if tool_name not in FILE_CHANGE_TOOLS:
        return None
    for key in FILE_PATH_KEYS:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _tool_use_events(
    tool_name: str, tool_use_id: str, tool_input: dict[str, Any]
) -> list[StreamEvent]:
    out: list[StreamEvent] = [
        ToolUseStarted(
            tool_name=tool_name,
            tool_use_id=tool_use_id,
            input=_encode_input(tool_input),
        )
    ]
    path = _file_change_path(tool_name, tool_input)
    if path is not None:
        out.append(FileChanged(path=path))
    return out


def _content_block_start(
    raw_block: dict[str, Any], *, state: DecoderState
) -> list[StreamEvent]:
    block = claude_schema.convert_content_block(raw_block)
    match block:
        case claude_schema.StreamTextBlock():
            state.cursor.open_text()
            return [TextBlockStart()]
        case claude_schema.StreamToolUseBlock(
            id=tool_use_id, name=name, input=tool_input
        ):
            initial = _encode_input(tool_input)
            state.cursor.open_tool(name, tool_use_id, initial if tool_input else "")
            return [
                ToolUseStarted(tool_name=name, tool_use_id=tool_use_id, input=initial)
            ]
        case _:
            state.cursor.clear()
            return []


def _content_block_delta(
    delta: claude_schema.StreamDelta, *, state: DecoderState
) -> list[StreamEvent]:
    match delta:
        case claude_schema.TextDelta(text=text):
            return [TextDelta(text=text)]
        case claude_schema.InputJsonDelta(partial_json=partial_json):
            if state.cursor.kind == "tool":
                state.cursor.append_input(partial_json)
            return []
        case _:
            return []


def _content_block_stop(*, state: DecoderState) -> list[StreamEvent]:
    cursor = state.cursor
    if cursor.kind != "tool":
        cursor.clear()
        return []
    tool_name = cursor.tool_name or ""
    tool_use_id = cursor.tool_use_id or ""
    tool_input = _parse_tool_input(cursor.input_text(), tool_name=tool_name)
    # The name/id association ends with the block; later results are unnamed.
    cursor.clear()
    return _tool_use_events(tool_name, tool_use_id, tool_input)


def _sub_event(
    event: claude_schema.StreamSubEvent, *, state: DecoderState
) -> list[StreamEvent]:
    match event:
        case claude_schema.MessageStart(message=message):
            state.usage.message_started(message.usage)
            return []
        case claude_schema.MessageDelta(usage=usage):
            state.usage.message_delta(usage)
            return []
        case claude_schema.ContentBlockStart(content_block=content_block):
            return _content_block_start(content_block, state=state)
        case claude_schema.ContentBlockDelta(delta=delta):
            return _content_block_delta(delta, state=state)
        case claude_schema.ContentBlockStop():
            return _content_block_stop(state=state)
        case _:
            return []


def _system_message(
    event: claude_schema.StreamSystemMessage, *, state: DecoderState
) -> list[StreamEvent]:
    if event.session_id:
        state.session_id = event.session_id
    model = event.model or ""
    tools = _normalize_tools(event.tools)
    # Status lines such as compact_boundary carry neither; keep what init said.
    if event.model is not None:
        state.model = model
    if isinstance(event.tools, list):
        state.tools = tools
    if state.session_id is None:
        return []
    log_pipeline(
        logger,
        "decoder.session.started",
        session_id=state.session_id,
        model=model,
        tools=len(tools),
    )
    return [
        SessionStarted(
            session_id=state.session_id,
            model=model,
            tools=tools,
        )
    ]


def _assistant_message(
    event: claude_schema.StreamAssistantMessage,
) -> list[StreamEvent]:
    out: list[StreamEvent] = []
    for block in claude_schema.iter_content_blocks(event.message.content):
        if isinstance(block, claude_schema.StreamToolUseBlock):
            out.extend(_tool_use_events(block.name, block.id, block.input))
    return out


def _user_message(
    event: claude_schema.StreamUserMessage, *, state: DecoderState
) -> list[StreamEvent]:
    out: list[StreamEvent] = []
    for block in claude_schema.iter_content_blocks(event.message.content):
        if not isinstance(block, claude_schema.StreamToolResultBlock):
            continue
        content = _normalize_tool_result(block.content)
        file_content = _file_result_content(
            block.tool_use_result
            if block.tool_use_result is not None
            else event.tool_use_result
        )
        if file_content is not None:
            content = file_content
        out.append(
            ToolResult(
                tool_name=state.cursor.tool_name or UNKNOWN_TOOL,
                tool_use_id=block.tool_use_id,
                content=content,
                is_error=block.is_error is True,
            )
        )
    return out


def _result_message(
    event: claude_schema.StreamResultMessage, *, state: DecoderState
) -> list[StreamEvent]:
    if event.session_id:
        state.session_id = event.session_id
    record = state.usage.build_result(event, session_id=state.session_id)
    state.usage.reset()
    log_pipeline(
        logger,
        "decoder.turn.completed",
        session_id=record.session_id,
        model=record.model,
        is_error=record.is_error,
        input_tokens=record.input_tokens,
        output_tokens=record.output_tokens,
    )
    return [Completed(result=record)]


def _control_request(
    event: claude_schema.StreamControlRequest,
) -> list[StreamEvent]:
    match event.request:
        case claude_schema.ControlCanUseToolRequest(
            tool_name=tool_name, tool_use_id=tool_use_id, input=tool_input
        ):
            return [
                ControlRequest(
                    request_id=event.request_id,
                    tool_name=tool_name,
                    tool_use_id=tool_use_id or "",
                    input=_encode_input(tool_input),
                )
            ]
        case _:
            return []


def translate_stream_line(
    event: claude_schema.StreamJsonMessage, *, state: DecoderState
) -> list[StreamEvent]:
    match event:
        case claude_schema.StreamSystemMessage():
            return _system_message(event, state=state)
        case claude_schema.StreamEventMessage(event=sub_event):
            return _sub_event(sub_event, state=state)
        case claude_schema.StreamAssistantMessage():
            return _assistant_message(event)
        case claude_schema.StreamUserMessage():
            return _user_message(event, state=state)
        case claude_schema.StreamResultMessage():
            return _result_message(event, state=state)
        case claude_schema.StreamControlRequest():
            return _control_request(event)
        case claude_schema.LegacyContentBlockStart(content_block=content_block):
            return _content_block_start(content_block, state=state)
        case claude_schema.LegacyContentBlockDelta(delta=delta):
            return _content_block_delta(delta, state=state)
        case claude_schema.LegacyContentBlockStop():
            return _content_block_stop(state=state)
        case _:
            return []


class StreamDecoder:
    """Turns stream-json lines into events and hands them to subscribers.

    Delivery is synchronous: every event produced by a line reaches its
    subscribers, in order, before :meth:`ingest` returns. Subscribers that
    need another thread or event loop must hop there themselves.
    """

    def __init__(self) -> None:
        self._state = DecoderState()
        self._subscribers: dict[type, list[Subscriber]] = {}
        self._all_subscribers: list[Subscriber] = []

    @property
    def session_id(self) -> str | None:
        return self._state.session_id

    @property
    def model(self) -> str | None:
        return self._state.model

    @property
    def tools(self) -> tuple[str, ...]:
        return self._state.tools

    @property
    def state(self) -> DecoderState:
        return self._state

    def subscribe(
        self, event_type: type, callback: Subscriber
    ) -> Callable[[], None]:
        if event_type not in EVENT_TYPES:
            raise TypeError(f"unknown event type {event_type!r}")
        callbacks = self._subscribers.setdefault(event_type, [])
        callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def subscribe_all(self, callback: Subscriber) -> Callable[[], None]:
        self._all_subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._all_subscribers:
                self._all_subscribers.remove(callback)

        return unsubscribe

    def reset(self) -> None:
        self._state = DecoderState()

    def ingest(self, line: str | bytes) -> list[StreamEvent]:
        events = self._decode(line)
        for evt in events:
            self._deliver(evt)
        return events

    def _decode(self, line: str | bytes) -> list[StreamEvent]:
        text = line.strip()
        if not text:
            return []
        try:
            message = claude_schema.decode_stream_json_line(text)
        except msgspec.ValidationError as exc:
            log_pipeline(logger, "decoder.line.ignored", error=str(exc))
            return []
        except (msgspec.DecodeError, UnicodeError, RecursionError) as exc:
            log_pipeline(logger, "decoder.line.invalid", error=str(exc))
            return []
        return translate_stream_line(message, state=self._state)

    def _deliver(self, evt: StreamEvent) -> None:
        for callback in tuple(self._subscribers.get(type(evt), ())):
            callback(evt)
        for callback in tuple(self._all_subscribers):
            callback(evt)
