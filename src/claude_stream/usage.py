"""Per-turn token accounting.

A turn may span several model calls (call, tool use, follow-up call). The CLI
reports the turn totals on the final ``result`` line; it does not say what the
last call alone consumed. ``TurnUsage`` tracks that from the ``message_start``
and ``message_delta`` sub-events and merges both into a ``ResultRecord``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from .model import ResultRecord, Usage
from .schemas import claude as claude_schema


def _tokens(value: int | None) -> int:
    return value if isinstance(value, int) else 0


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return value
    return None


def _count(value: Any) -> int | None:
    number = _number(value)
    return int(number) if number is not None else None


@dataclass(slots=True)
class TurnUsage:
    last_call: Usage = field(default_factory=Usage)

    def message_started(self, usage: claude_schema.MessageUsage | None) -> None:
        # Each call replaces the snapshot; only the final call is reported.
        if usage is None:
            self.last_call = Usage()
            return
        self.last_call = Usage(
            input_tokens=_tokens(usage.input_tokens),
            output_tokens=0,
            cache_read_tokens=_tokens(usage.cache_read_input_tokens),
            cache_creation_tokens=_tokens(usage.cache_creation_input_tokens),
        )

    def message_delta(self, usage: claude_schema.MessageUsage | None) -> None:
        if usage is None or usage.output_tokens is None:
            return
        self.last_call = Usage(
            input_tokens=self.last_call.input_tokens,
            output_tokens=_tokens(usage.output_tokens),
            cache_read_tokens=self.last_call.cache_read_tokens,
            cache_creation_tokens=self.last_call.cache_creation_tokens,
        )

    def build_result(
        self,
        message: claude_schema.StreamResultMessage,
        *,
        session_id: str | None,
    ) -> ResultRecord:
        model, context_window = _model_and_window(message)
        totals = message.usage or claude_schema.MessageUsage()
        last = self.last_call
        return ResultRecord(
            session_id=session_id,
            model=model,
            input_tokens=_tokens(totals.input_tokens),
            output_tokens=_tokens(totals.output_tokens),
            cache_read_tokens=_tokens(totals.cache_read_input_tokens),
            cache_creation_tokens=_tokens(totals.cache_creation_input_tokens),
            context_window=context_window,
            last_call_input_tokens=last.input_tokens,
            last_call_output_tokens=last.output_tokens,
            last_call_cache_read_tokens=last.cache_read_tokens,
            last_call_cache_creation_tokens=last.cache_creation_tokens,
            is_error=message.is_error is True,
            total_cost_usd=_number(message.total_cost_usd),
            duration_ms=_count(message.duration_ms),
            num_turns=_count(message.num_turns),
        )

    def reset(self) -> None:
        self.last_call = Usage()


def _model_and_window(
    message: claude_schema.StreamResultMessage,
) -> tuple[str | None, int]:
    # modelUsage is keyed by model id; the first entry is the main model.
    if message.modelUsage:
        for name, entry in message.modelUsage.items():
            return name, _tokens(entry.contextWindow)
    return message.model, 0
