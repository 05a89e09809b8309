"""Prompt templates for continuation requests."""

from __future__ import annotations

from typing import Any

DEFAULT_CONTEXT_CHARS = 500
DEFAULT_STOP_SEQUENCES: tuple[str, ...] = ("\n\n\n", "---")


def system_prompt() -> str:
    """Instructions shared by every continuation request."""

    return (
        "You are a helpful writing assistant. Continue the user's text in a natural, coherent way.\n"
        "Match the tone and style of the existing text.\n"
        "Generate 2-3 sentences that flow naturally from what was written.\n"
        "Do not repeat the existing text."
    )


def user_prompt(context_text: str) -> str:
    return f"Continue writing from here:\n\n{context_text}"


def trailing_context(text: str, cursor_position: int, *, limit: int = DEFAULT_CONTEXT_CHARS) -> str:
    """Return at most ``limit`` characters of ``text`` ending at the cursor."""

    cursor = max(0, min(int(cursor_position), len(text)))
    start = max(0, cursor - max(0, int(limit)))
    return text[start:cursor]


def build_messages(context_text: str) -> list[dict[str, Any]]:
    return [
        {"role": "system", "content": system_prompt()},
        {"role": "user", "content": user_prompt(context_text)},
    ]


__all__ = [
    "DEFAULT_CONTEXT_CHARS",
    "DEFAULT_STOP_SEQUENCES",
    "build_messages",
    "system_prompt",
    "trailing_context",
    "user_prompt",
]
