"""Command lines for running a turn through the Claude CLI.

Spawning the process is the caller's job; this module only decides what to
run. Follow-up turns pass the last session id with ``--resume``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from .escape import escape_json
from .logging import get_logger
from .settings import ClaudeSettings

logger = get_logger(__name__)

STREAM_ARGS: tuple[str, ...] = ("-p", "--output-format", "stream-json", "--verbose")

_BARE_ARG_RE = re.compile(r"^[A-Za-z0-9_@%+=:,./-]+$")


def _coerce_comma_list(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        parts = [str(item) for item in value if item is not None]
        joined = ",".join(part for part in parts if part)
        return joined or None
    text = str(value)
    return text or None


def quote_arg(arg: str) -> str:
    return f'"{escape_json(arg)}"'


def _render_arg(arg: str) -> str:
    if _BARE_ARG_RE.match(arg):
        return arg
    return quote_arg(arg)


@dataclass(slots=True)
class ClaudeInvocation:
    command: str = "claude"
    model: str | None = None
    allowed_tools: list[str] | None = None
    permission_mode: str | None = None
    dangerously_skip_permissions: bool = False
    extra_args: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: ClaudeSettings) -> ClaudeInvocation:
        return cls(
            command=settings.command,
            model=settings.model,
            allowed_tools=settings.allowed_tools,
            permission_mode=settings.permission_mode,
            dangerously_skip_permissions=settings.dangerously_skip_permissions,
            extra_args=list(settings.extra_args),
        )

    def _option_args(self, *, resume: str | None) -> list[str]:
        args: list[str] = list(STREAM_ARGS)
        if resume:
            args.extend(["--resume", resume])
        if self.model is not None:
            args.extend(["--model", str(self.model)])
        allowed_tools = _coerce_comma_list(self.allowed_tools)
        if allowed_tools is not None:
            args.extend(["--allowedTools", allowed_tools])
        if self.permission_mode is not None:
            args.extend(["--permission-mode", self.permission_mode])
        if self.dangerously_skip_permissions is True:
            args.append("--dangerously-skip-permissions")
        args.extend(self.extra_args)
        return args

    def build_args(self, prompt: str, *, resume: str | None = None) -> list[str]:
        args = self._option_args(resume=resume)
        args.append("--")
        args.append(prompt)
        return args

    def argv(self, prompt: str, *, resume: str | None = None) -> list[str]:
        return [self.command, *self.build_args(prompt, resume=resume)]

    def command_line(self, prompt: str, *, resume: str | None = None) -> str:
        """Render one command string with the prompt as a quoted argument."""
        parts = [_render_arg(self.command)]
        options = self._option_args(resume=None)
        parts.extend(_render_arg(arg) for arg in options[: len(STREAM_ARGS)])
        if resume:
            parts.extend(["--resume", quote_arg(resume)])
        parts.extend(_render_arg(arg) for arg in options[len(STREAM_ARGS) :])
        parts.extend(["--", quote_arg(prompt)])
        logger.debug(
            "invocation.command_line",
            command=self.command,
            resume=resume,
            prompt_len=len(prompt),
        )
        return " ".join(parts)
