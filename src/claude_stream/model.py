"""Events and records produced by the stream decoder."""

from __future__ import annotations

from dataclasses import dataclass, field

UNKNOWN_TOOL = "Unknown"

FILE_CHANGE_TOOLS: frozenset[str] = frozenset(
    {"Write", "Edit", "MultiEdit", "NotebookEdit"}
)
FILE_PATH_KEYS: tuple[str, ...] = ("file_path", "notebook_path")


@dataclass(frozen=True, slots=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    @property
    def total_input_tokens(self) -> int:
        return self.input_tokens + self.cache_read_tokens + self.cache_creation_tokens


@dataclass(frozen=True, slots=True)
class ResultRecord:
    """Accounting for one finished turn.

    The plain token fields are the turn totals reported by the CLI. The
    ``last_call_*`` fields describe only the final model call of the turn.
    """

    session_id: str | None = None
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    context_window: int = 0
    last_call_input_tokens: int = 0
    last_call_output_tokens: int = 0
    last_call_cache_read_tokens: int = 0
    last_call_cache_creation_tokens: int = 0
    is_error: bool = False
    total_cost_usd: float | None = None
    duration_ms: int | None = None
    num_turns: int | None = None

    @property
    def cumulative(self) -> Usage:
        return Usage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_read_tokens=self.cache_read_tokens,
            cache_creation_tokens=self.cache_creation_tokens,
        )

    @property
    def last_call(self) -> Usage:
        return Usage(
            input_tokens=self.last_call_input_tokens,
            output_tokens=self.last_call_output_tokens,
            cache_read_tokens=self.last_call_cache_read_tokens,
            cache_creation_tokens=self.last_call_cache_creation_tokens,
        )

    @property
    def context_used(self) -> int:
        return self.last_call.total_input_tokens + self.last_call_output_tokens

    @property
    def context_percent(self) -> int | None:
        if self.context_window <= 0:
            return None
        return int(self.context_used * 100 / self.context_window)


@dataclass(frozen=True, slots=True)
class SessionStarted:
    session_id: str
    model: str = ""
    tools: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class TextBlockStart:
    pass


@dataclass(frozen=True, slots=True)
class TextDelta:
    text: str


@dataclass(frozen=True, slots=True)
class ToolUseStarted:
    tool_name: str
    tool_use_id: str
    input: str


@dataclass(frozen=True, slots=True)
class FileChanged:
    path: str


@dataclass(frozen=True, slots=True)
class ToolResult:
    tool_name: str
    tool_use_id: str
    content: str
    is_error: bool = False


@dataclass(frozen=True, slots=True)
class ControlRequest:
    request_id: str
    tool_name: str
    tool_use_id: str
    input: str


@dataclass(frozen=True, slots=True)
class Completed:
    result: ResultRecord


type StreamEvent = (
    SessionStarted
    | TextBlockStart
    | TextDelta
    | ToolUseStarted
    | FileChanged
    | ToolResult
    | ControlRequest
    | Completed
)

EVENT_TYPES: tuple[type, ...] = (
    SessionStarted,
    TextBlockStart,
    TextDelta,
    ToolUseStarted,
    FileChanged,
    ToolResult,
    ControlRequest,
    Completed,
)
