from __future__ import annotations

_ESCAPES: tuple[tuple[str, str], ...] = (
    ("\\", "\\\\"),
    ('"', '\\"'),
    ("\n", "\\n"),
    ("\t", "\\t"),
    ("\r", "\\r"),
)


def escape_json(text: str) -> str:
    """Escape text for embedding inside a double-quoted argument."""
    # Backslash goes first so later escapes are not doubled.
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return text
