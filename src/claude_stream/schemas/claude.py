"""Msgspec models and decoder for Claude Code stream-json output.

Covers the lines written by ``claude -p --output-format stream-json --verbose``.
Unknown fields are ignored. Fields the decoder can live without are optional, and
those it never reads are typed `Any` so a surprising value there cannot drop
the whole line. Older and newer CLI versions that omit fields still decode.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

import msgspec


class _Line(msgspec.Struct, tag_field="type", forbid_unknown_fields=False):
    pass


class _SubEvent(msgspec.Struct, tag_field="type", forbid_unknown_fields=False):
    pass


class _Block(msgspec.Struct, tag_field="type", forbid_unknown_fields=False):
    pass


class _Delta(msgspec.Struct, tag_field="type", forbid_unknown_fields=False):
    pass


class _Control(msgspec.Struct, tag_field="subtype", forbid_unknown_fields=False):
    pass


# Content blocks (assistant/user message content and content_block_start).


class StreamTextBlock(_Block, tag="text"):
    text: str = ""


class StreamThinkingBlock(_Block, tag="thinking"):
    thinking: str = ""
    signature: str | None = None


class StreamToolUseBlock(_Block, tag="tool_use"):
    id: str = ""
    name: str = ""
    input: dict[str, Any] = msgspec.field(default_factory=dict)


class StreamToolResultBlock(_Block, tag="tool_result"):
    tool_use_id: str = ""
    content: str | list[Any] | None = None
    is_error: bool | None = None
    tool_use_result: Any = None


type StreamContentBlock = (
    StreamTextBlock | StreamThinkingBlock | StreamToolUseBlock | StreamToolResultBlock
)


# Usage payloads.


class MessageUsage(msgspec.Struct, forbid_unknown_fields=False):
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_read_input_tokens: int | None = None
    cache_creation_input_tokens: int | None = None


class ModelUsage(msgspec.Struct, forbid_unknown_fields=False):
    inputTokens: int | None = None
    outputTokens: int | None = None
    cacheReadInputTokens: int | None = None
    cacheCreationInputTokens: int | None = None
    contextWindow: int | None = None
    costUSD: float | None = None


# Deltas carried by content_block_delta.


class TextDelta(_Delta, tag="text_delta"):
    text: str = ""


class InputJsonDelta(_Delta, tag="input_json_delta"):
    partial_json: str = ""


class ThinkingDelta(_Delta, tag="thinking_delta"):
    thinking: str = ""


class SignatureDelta(_Delta, tag="signature_delta"):
    signature: str = ""


type StreamDelta = TextDelta | InputJsonDelta | ThinkingDelta | SignatureDelta


# Sub-events wrapped by stream_event lines.


class MessageStartBody(msgspec.Struct, forbid_unknown_fields=False):
    id: str | None = None
    model: str | None = None
    usage: MessageUsage | None = None


class MessageStart(_SubEvent, tag="message_start"):
    message: MessageStartBody = msgspec.field(default_factory=MessageStartBody)


class MessageDelta(_SubEvent, tag="message_delta"):
    delta: dict[str, Any] | None = None
    usage: MessageUsage | None = None


class MessageStop(_SubEvent, tag="message_stop"):
    pass


class ContentBlockStart(_SubEvent, tag="content_block_start"):
    index: int | None = None
    content_block: dict[str, Any] = msgspec.field(default_factory=dict)


class ContentBlockDelta(_SubEvent, tag="content_block_delta"):
    delta: StreamDelta
    index: int | None = None


class ContentBlockStop(_SubEvent, tag="content_block_stop"):
    index: int | None = None


type StreamSubEvent = (
    MessageStart
    | MessageDelta
    | MessageStop
    | ContentBlockStart
    | ContentBlockDelta
    | ContentBlockStop
)


# Control protocol (permission prompts and friends).


class ControlCanUseToolRequest(_Control, tag="can_use_tool"):
    tool_name: str = ""
    input: dict[str, Any] = msgspec.field(default_factory=dict)
    tool_use_id: str | None = None
    permission_suggestions: list[Any] | None = None
    blocked_path: str | None = None


class ControlInterruptRequest(_Control, tag="interrupt"):
    pass


class ControlHookCallbackRequest(_Control, tag="hook_callback"):
    callback_id: str = ""
    input: Any = None
    tool_use_id: str | None = None


type ControlRequest = (
    ControlCanUseToolRequest | ControlInterruptRequest | ControlHookCallbackRequest
)


# Top-level lines.


class StreamMessageBody(msgspec.Struct, forbid_unknown_fields=False):
    content: str | list[Any] = msgspec.field(default_factory=list)
    role: str | None = None
    model: str | None = None


class StreamSystemMessage(_Line, tag="system"):
    subtype: Any = None
    session_id: str | None = None
    model: str | None = None
    tools: Any = None
    cwd: Any = None
    permissionMode: Any = None
    mcp_servers: Any = None


class StreamEventMessage(_Line, tag="stream_event"):
    event: StreamSubEvent
    session_id: str | None = None
    uuid: str | None = None
    parent_tool_use_id: str | None = None


class StreamAssistantMessage(_Line, tag="assistant"):
    message: StreamMessageBody = msgspec.field(default_factory=StreamMessageBody)
    parent_tool_use_id: str | None = None
    session_id: str | None = None


class StreamUserMessage(_Line, tag="user"):
    message: StreamMessageBody = msgspec.field(default_factory=StreamMessageBody)
    parent_tool_use_id: str | None = None
    session_id: str | None = None
    tool_use_result: Any = None


class StreamResultMessage(_Line, tag="result"):
    subtype: Any = None
    session_id: str | None = None
    is_error: Any = None
    result: Any = None
    model: str | None = None
    usage: MessageUsage | None = None
    modelUsage: dict[str, ModelUsage] | None = None
    total_cost_usd: Any = None
    duration_ms: Any = None
    duration_api_ms: Any = None
    num_turns: Any = None


class StreamControlRequest(_Line, tag="control_request"):
    request: ControlRequest
    request_id: str = ""


class LegacyContentBlockStart(_Line, tag="content_block_start"):
    index: int | None = None
    content_block: dict[str, Any] = msgspec.field(default_factory=dict)


class LegacyContentBlockDelta(_Line, tag="content_block_delta"):
    delta: StreamDelta
    index: int | None = None


class LegacyContentBlockStop(_Line, tag="content_block_stop"):
    index: int | None = None


type StreamJsonMessage = (
    StreamSystemMessage
    | StreamEventMessage
    | StreamAssistantMessage
    | StreamUserMessage
    | StreamResultMessage
    | StreamControlRequest
    | LegacyContentBlockStart
    | LegacyContentBlockDelta
    | LegacyContentBlockStop
)


STREAM_JSON_SCHEMA = msgspec.json.schema(StreamJsonMessage)

_DECODER = msgspec.json.Decoder(StreamJsonMessage)


def decode_stream_json_line(line: str | bytes) -> StreamJsonMessage:
    return _DECODER.decode(line)


def convert_content_block(item: Any) -> StreamContentBlock | None:
    """Convert one raw content item, or return ``None`` for unknown kinds."""
    if not isinstance(item, dict):
        return None
    try:
        return msgspec.convert(item, type=StreamContentBlock)
    except (msgspec.ValidationError, RecursionError):
        return None


def iter_content_blocks(items: str | Iterable[Any] | None) -> Iterator[StreamContentBlock]:
    if items is None or isinstance(items, str):
        return
    for item in items:
        block = convert_content_block(item)
        if block is not None:
            yield block
