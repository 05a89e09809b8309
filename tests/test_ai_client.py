"""Tests for the OpenAI-compatible chat client wrapper."""

from __future__ import annotations

import logging
from types import SimpleNamespace
from typing import Any

import httpx
import pytest
from openai import APIConnectionError, AuthenticationError

from ghostwriter.ai.client import AIClient, ClientSettings
from ghostwriter.ai.errors import AuthError, NetworkError
from tests.helpers import make_chat_response, make_status_error

_REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat/completions")


class _FakeCompletions:
    def __init__(self, outcomes: list[Any]) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    async def create(self, **payload: Any) -> Any:
        self.calls.append(payload)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _fake_openai(*outcomes: Any, closable: bool = True) -> SimpleNamespace:
    completions = _FakeCompletions(list(outcomes) or [make_chat_response("ok")])
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions), closed=False)
    if closable:

        async def close() -> None:
            fake.closed = True

        fake.close = close
    return fake


def _settings(**overrides: Any) -> ClientSettings:
    values: dict[str, Any] = {
        "base_url": "https://api.example.com/v1",
        "api_key": "sk-test",
        "model": "gpt-test",
        "max_retries": 3,
        "retry_min_seconds": 0.0,
        "retry_max_seconds": 0.0,
    }
    values.update(overrides)
    return ClientSettings(**values)


MESSAGES = [{"role": "user", "content": "Continue writing from here:\n\nOnce"}]


# =============================================================================
# Payload
# =============================================================================


class TestPayload:
    @pytest.mark.asyncio
    async def test_payload_carries_request_options(self) -> None:
        fake = _fake_openai(make_chat_response("  upon a time.  "))
        client = AIClient(_settings(metadata={"app": "ghostwriter"}), client=fake)  # type: ignore[arg-type]

        text = await client.complete_chat(
            MESSAGES,
            temperature=0.2,
            max_tokens=64,
            stop=["---"],
            metadata={"request": "continue"},
        )

        assert text == "upon a time."
        (payload,) = fake.chat.completions.calls
        assert payload["model"] == "gpt-test"
        assert payload["messages"] == MESSAGES
        assert payload["temperature"] == 0.2
        assert payload["max_tokens"] == 64
        assert payload["stop"] == ["---"]
        assert payload["metadata"] == {"app": "ghostwriter", "request": "continue"}

    @pytest.mark.asyncio
    async def test_optional_fields_are_omitted(self) -> None:
        fake = _fake_openai()
        client = AIClient(_settings(), client=fake)  # type: ignore[arg-type]

        await client.complete_chat(MESSAGES, temperature=None)

        (payload,) = fake.chat.completions.calls
        assert set(payload) == {"model", "messages"}

    @pytest.mark.asyncio
    async def test_extra_params_pass_through(self) -> None:
        fake = _fake_openai()
        client = AIClient(_settings(), client=fake)  # type: ignore[arg-type]

        await client.complete_chat(iter(MESSAGES), user="writer-1")

        assert fake.chat.completions.calls[0]["user"] == "writer-1"

    @pytest.mark.asyncio
    async def test_empty_messages_are_rejected(self) -> None:
        client = AIClient(_settings(), client=_fake_openai())  # type: ignore[arg-type]

        with pytest.raises(ValueError):
            await client.complete_chat([])

    @pytest.mark.asyncio
    async def test_missing_content_yields_empty_text(self) -> None:
        client = AIClient(_settings(), client=_fake_openai(make_chat_response(None)))  # type: ignore[arg-type]

        assert await client.complete_chat(MESSAGES) == ""

    @pytest.mark.asyncio
    async def test_debug_logging_dumps_payload(self, caplog: pytest.LogCaptureFixture) -> None:
        client = AIClient(_settings(debug_logging=True), client=_fake_openai())  # type: ignore[arg-type]

        with caplog.at_level(logging.DEBUG, logger="ghostwriter.ai.client"):
            await client.complete_chat(MESSAGES)

        assert "AI prompt payload" in caplog.text
        assert "gpt-test" in caplog.text


# =============================================================================
# Retries and failures
# =============================================================================


class TestRetries:
    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self) -> None:
        fake = _fake_openai(
            APIConnectionError(request=_REQUEST),
            APIConnectionError(request=_REQUEST),
            make_chat_response("recovered"),
        )
        client = AIClient(_settings(), client=fake)  # type: ignore[arg-type]

        assert await client.complete_chat(MESSAGES) == "recovered"
        assert len(fake.chat.completions.calls) == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_network_error(self) -> None:
        original = APIConnectionError(request=_REQUEST)
        fake = _fake_openai(original)
        client = AIClient(_settings(max_retries=2), client=fake)  # type: ignore[arg-type]

        with pytest.raises(NetworkError) as excinfo:
            await client.complete_chat(MESSAGES)

        assert excinfo.value.__cause__ is original
        assert len(fake.chat.completions.calls) == 2

    @pytest.mark.asyncio
    async def test_auth_failures_are_not_retried(self) -> None:
        fake = _fake_openai(make_status_error(AuthenticationError, 401))
        client = AIClient(_settings(), client=fake)  # type: ignore[arg-type]

        with pytest.raises(AuthError):
            await client.complete_chat(MESSAGES)

        assert len(fake.chat.completions.calls) == 1


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_aclose_closes_underlying_client(self) -> None:
        fake = _fake_openai()
        client = AIClient(_settings(), client=fake)  # type: ignore[arg-type]

        await client.aclose()

        assert fake.closed is True

    @pytest.mark.asyncio
    async def test_aclose_tolerates_clients_without_close(self) -> None:
        client = AIClient(_settings(), client=_fake_openai(closable=False))  # type: ignore[arg-type]

        await client.aclose()

    def test_settings_property(self) -> None:
        settings = _settings()
        assert AIClient(settings, client=_fake_openai()).settings is settings  # type: ignore[arg-type]
