"""Tests for continuation prompt helpers."""

from __future__ import annotations

import pytest

from ghostwriter.ai import prompts


@pytest.mark.parametrize(
    ("cursor", "limit", "expected"),
    [
        (5, 500, "Hello"),
        (11, 5, "world"),
        (0, 500, ""),
        (99, 3, "ld!"),
        (-4, 10, ""),
        (6, 0, ""),
    ],
)
def test_trailing_context(cursor: int, limit: int, expected: str) -> None:
    assert prompts.trailing_context("Hello world!", cursor, limit=limit) == expected


def test_trailing_context_default_limit() -> None:
    text = "a" * 600 + "b" * 100

    context = prompts.trailing_context(text, len(text))

    assert len(context) == prompts.DEFAULT_CONTEXT_CHARS
    assert context.endswith("b" * 100)


def test_build_messages() -> None:
    messages = prompts.build_messages("The fox ran.")

    assert [message["role"] for message in messages] == ["system", "user"]
    assert messages[0]["content"] == prompts.system_prompt()
    assert messages[1]["content"] == "Continue writing from here:\n\nThe fox ran."


def test_system_prompt_mentions_tone() -> None:
    assert "tone and style" in prompts.system_prompt()
