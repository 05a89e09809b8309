"""Shared pytest fixtures."""

from __future__ import annotations

import os

import pytest

from ghostwriter.editor.buffer import EditorBuffer
from ghostwriter.editor.mutator import DocumentMutator

# Widgets are created against the offscreen platform so the suite runs without a display.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

_ISOLATED_ENV = ("OPENAI_API_KEY", "GHOSTWRITER_SETTINGS_PATH", "GHOSTWRITER_DEBUG", "GHOSTWRITER_LOG_DIR")


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer credentials and overrides out of the tests."""

    for name in list(os.environ):
        if name.startswith("GHOSTWRITER_") or name in _ISOLATED_ENV:
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def buffer() -> EditorBuffer:
    return EditorBuffer("The quick brown fox")


@pytest.fixture
def mutator(buffer: EditorBuffer) -> DocumentMutator:
    return DocumentMutator(buffer)
