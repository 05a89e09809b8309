"""Tests for the continuation clients and their selection."""

from __future__ import annotations

import logging
import random
from typing import Any

import pytest

from ghostwriter.ai.continuation import (
    KEYWORD_RESPONSES,
    MOCK_RESPONSES,
    ContentGenerationClient,
    MockContinuationClient,
    MockSettings,
    OpenAIContinuationClient,
    build_generation_client,
    uses_mock,
)
from ghostwriter.ai.errors import AuthError, QuotaExceeded
from ghostwriter.services.settings import Settings
from tests.helpers import ImmediateClient


class _ScriptedAIClient:
    """Stand-in for :class:`AIClient` returning or raising a scripted outcome."""

    def __init__(self, outcome: Any) -> None:
        self.outcome = outcome
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    async def complete_chat(self, messages: Any, **kwargs: Any) -> str:
        self.requests.append({"messages": list(messages), **kwargs})
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    async def aclose(self) -> None:
        self.closed = True


def _instant_mock(seed: int = 7) -> MockContinuationClient:
    return MockContinuationClient(MockSettings(min_delay=0, max_delay=0), rng=random.Random(seed))


# =============================================================================
# Mock client
# =============================================================================


class TestMockContinuationClient:
    @pytest.mark.asyncio
    async def test_returns_canned_response(self) -> None:
        client = _instant_mock()

        text = await client.generate("A plain sentence.", 17)

        assert text in MOCK_RESPONSES
        assert client.calls == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("context", "index"),
        [
            ("Once upon a time there was a fox.", 0),
            ("The technical design needs review.", 1),
            ("Our market share keeps growing.", 2),
        ],
    )
    async def test_keywords_pick_themed_response(self, context: str, index: int) -> None:
        text = await _instant_mock().generate(context, len(context))

        assert text == KEYWORD_RESPONSES[index][1]

    @pytest.mark.asyncio
    async def test_keyword_window_only_sees_recent_text(self) -> None:
        client = MockContinuationClient(
            MockSettings(min_delay=0, max_delay=0, keyword_window=10),
            rng=random.Random(1),
            responses=("generic",),
        )
        context = "story " + "x" * 40

        assert await client.generate(context, len(context)) == "generic"

    @pytest.mark.asyncio
    async def test_seeded_rng_is_deterministic(self) -> None:
        first = [await _instant_mock(3).generate("", 0) for _ in range(4)]
        second = [await _instant_mock(3).generate("", 0) for _ in range(4)]

        assert first[0] == second[0]

    def test_requires_responses(self) -> None:
        with pytest.raises(ValueError):
            MockContinuationClient(responses=())

    def test_delay_respects_bounds(self) -> None:
        client = MockContinuationClient(MockSettings(min_delay=0.5, max_delay=0.6), rng=random.Random(0))

        for _ in range(20):
            assert 0.5 <= client._delay() <= 0.6

    def test_satisfies_protocol(self) -> None:
        assert isinstance(_instant_mock(), ContentGenerationClient)


# =============================================================================
# OpenAI-backed client
# =============================================================================


class TestOpenAIContinuationClient:
    @pytest.mark.asyncio
    async def test_sends_prompt_and_options(self) -> None:
        ai_client = _ScriptedAIClient("And then it rained.")
        client = OpenAIContinuationClient(ai_client, temperature=0.3, max_tokens=42, stop=("---",))  # type: ignore[arg-type]

        text = await client.generate("It was sunny.", 13)

        assert text == "And then it rained."
        (request,) = ai_client.requests
        assert request["temperature"] == 0.3
        assert request["max_tokens"] == 42
        assert request["stop"] == ("---",)
        assert request["messages"][0]["role"] == "system"
        assert request["messages"][1]["content"].endswith("It was sunny.")

    @pytest.mark.asyncio
    async def test_quota_exhaustion_uses_fallback(self) -> None:
        reports: list[QuotaExceeded] = []
        fallback = ImmediateClient("Substitute text.")
        client = OpenAIContinuationClient(
            _ScriptedAIClient(QuotaExceeded()),  # type: ignore[arg-type]
            fallback=fallback,
            on_fallback=reports.append,
        )

        text = await client.generate("Context", 7)

        assert text == "Substitute text."
        assert fallback.calls == [("Context", 7)]
        assert client.fallback_count == 1
        assert len(reports) == 1

    @pytest.mark.asyncio
    async def test_failing_fallback_callback_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        def explode(_: QuotaExceeded) -> None:
            raise RuntimeError("callback bug")

        client = OpenAIContinuationClient(
            _ScriptedAIClient(QuotaExceeded()),  # type: ignore[arg-type]
            fallback=ImmediateClient("Substitute text."),
            on_fallback=explode,
        )

        with caplog.at_level(logging.ERROR, logger="ghostwriter.ai.continuation"):
            assert await client.generate("Context", 7) == "Substitute text."

        assert "Fallback diagnostics callback failed" in caplog.text

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self) -> None:
        fallback = ImmediateClient()
        client = OpenAIContinuationClient(_ScriptedAIClient(AuthError()), fallback=fallback)  # type: ignore[arg-type]

        with pytest.raises(AuthError):
            await client.generate("Context", 7)

        assert fallback.calls == []
        assert client.fallback_count == 0

    @pytest.mark.asyncio
    async def test_aclose_closes_ai_client(self) -> None:
        ai_client = _ScriptedAIClient("x")
        client = OpenAIContinuationClient(ai_client)  # type: ignore[arg-type]

        await client.aclose()

        assert ai_client.closed is True


# =============================================================================
# Client selection
# =============================================================================


class TestBuildGenerationClient:
    @pytest.mark.parametrize(
        ("settings", "expected"),
        [
            (Settings(), True),
            (Settings(api_key="   "), True),
            (Settings(api_key="sk-live", use_mock_ai=True), True),
            (Settings(api_key="sk-live"), False),
        ],
    )
    def test_uses_mock(self, settings: Settings, expected: bool) -> None:
        assert uses_mock(settings) is expected

    def test_without_credentials_builds_mock(self) -> None:
        client = build_generation_client(Settings(mock_min_delay=0.1, mock_max_delay=0.2))

        assert isinstance(client, MockContinuationClient)
        assert client.settings.min_delay == 0.1
        assert client.settings.max_delay == 0.2

    def test_with_credentials_builds_openai_client(self) -> None:
        ai_client = _ScriptedAIClient("x")
        client = build_generation_client(Settings(api_key="sk-live"), ai_client=ai_client)  # type: ignore[arg-type]

        assert isinstance(client, OpenAIContinuationClient)
        assert client.client is ai_client

    def test_real_client_is_configured_from_settings(self) -> None:
        settings = Settings(api_key="sk-live", model="gpt-4o-mini", request_timeout=12.0, max_retries=5)

        client = build_generation_client(settings)

        assert isinstance(client, OpenAIContinuationClient)
        assert client.client.settings.model == "gpt-4o-mini"
        assert client.client.settings.request_timeout == 12.0
        assert client.client.settings.max_retries == 5
