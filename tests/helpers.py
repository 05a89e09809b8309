"""Shared test helpers and stub classes.

This module contains reusable test stubs that are used across multiple test files.
Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

import httpx

from ghostwriter.editor.buffer import EditorBuffer
from ghostwriter.editor.mutator import DocumentMutator
from ghostwriter.ui.domain.generation_coordinator import GenerationCoordinator
from ghostwriter.ui.events import Event, EventBus


class ControlledClient:
    """Generation client whose requests stay outstanding until the test settles them.

    Example:
        client = ControlledClient()
        coordinator.request_continue(0)
        await settle()
        client.resolve("Hello world.")
        await coordinator.wait_for_generation()
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []
        self._pending: list[asyncio.Future[str]] = []

    async def generate(self, context_text: str, cursor_position: int) -> str:
        self.calls.append((context_text, cursor_position))
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending.append(future)
        return await future

    @property
    def outstanding(self) -> int:
        return sum(1 for future in self._pending if not future.done())

    def resolve(self, text: str, index: int = -1) -> None:
        self._pending[index].set_result(text)

    def fail(self, error: BaseException, index: int = -1) -> None:
        self._pending[index].set_exception(error)


class ImmediateClient:
    """Generation client answering every request with the same text."""

    def __init__(self, text: str = "Hello world.") -> None:
        self.text = text
        self.calls: list[tuple[str, int]] = []
        self.closed = False

    async def generate(self, context_text: str, cursor_position: int) -> str:
        self.calls.append((context_text, cursor_position))
        return self.text

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class Workspace:
    buffer: EditorBuffer
    mutator: DocumentMutator
    bus: EventBus
    coordinator: GenerationCoordinator
    events: list[Event] = field(default_factory=list)

    def events_of(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


def build_workspace(client: Any, text: str = "", *, context_chars: int = 500) -> Workspace:
    """Wire buffer, mutator, bus and coordinator the way the application does."""

    buffer = EditorBuffer(text)
    mutator = DocumentMutator(buffer)
    bus = EventBus()
    coordinator = GenerationCoordinator(client, mutator, event_bus=bus, context_chars=context_chars)
    coordinator.bind_buffer(buffer)
    workspace = Workspace(buffer=buffer, mutator=mutator, bus=bus, coordinator=coordinator)
    _record_all(bus, workspace.events)
    return workspace


def _record_all(bus: EventBus, sink: list[Event]) -> None:
    from ghostwriter.ui import events as events_module

    for name in events_module.__all__:
        candidate = getattr(events_module, name)
        if isinstance(candidate, type) and issubclass(candidate, Event) and candidate is not Event:
            bus.subscribe(candidate, sink.append)


async def settle(rounds: int = 5) -> None:
    """Let freshly created tasks run up to their first suspension point."""

    for _ in range(rounds):
        await asyncio.sleep(0)


def make_chat_response(content: str | None) -> SimpleNamespace:
    """Return an object shaped like ``ChatCompletion`` with a single choice."""

    message = SimpleNamespace(role="assistant", content=content)
    return SimpleNamespace(choices=[SimpleNamespace(index=0, message=message, finish_reason="stop")])


def make_http_response(status: int, body: dict[str, Any] | None = None) -> httpx.Response:
    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
    return httpx.Response(status, request=request, json=body or {})


def make_status_error(error_cls: type[Exception], status: int, body: dict[str, Any] | None = None) -> Exception:
    """Build an ``openai.APIStatusError`` subclass the way the SDK does."""

    payload = body or {"message": "boom", "type": "server_error", "code": None}
    response = make_http_response(status, payload)
    return error_cls("boom", response=response, body=payload)  # type: ignore[call-arg]
