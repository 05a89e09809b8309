"""Content generation clients producing text continuations."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence, runtime_checkable

from ..services.settings import Settings, has_usable_credentials
from . import prompts
from .client import AIClient, ClientSettings
from .errors import QuotaExceeded

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 100
DEFAULT_TEMPERATURE = 0.7

MOCK_RESPONSES: tuple[str, ...] = (
    "This is a continuation generated by the mock AI service. It demonstrates how the state machine "
    "works without requiring OpenAI credits.",
    "The mock AI service is now generating content to help you test the application. This text flows "
    "naturally from your previous writing.",
    "Here's some sample AI-generated text that shows the review functionality. You can accept, clear, "
    "or discard this content using the toolbar buttons.",
    "This simulated AI response helps you understand the complete workflow of the writing assistant "
    "without API costs.",
    "The mock service generates contextual content based on your input. This allows full testing of "
    "the state machine transitions.",
)

KEYWORD_RESPONSES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("story", "once"),
        "The adventure continued as our hero faced new challenges ahead. Each step brought unexpected "
        "discoveries and moments of wonder.",
    ),
    (
        ("technical", "code"),
        "The implementation follows best practices for maintainability and performance. This approach "
        "ensures scalable and robust solutions.",
    ),
    (
        ("business", "market"),
        "Market analysis reveals significant opportunities for growth and innovation. Strategic "
        "positioning will be crucial for success.",
    ),
)

FallbackCallback = Callable[[QuotaExceeded], None]


@runtime_checkable
class ContentGenerationClient(Protocol):
    """Anything able to continue a piece of text."""

    async def generate(self, context_text: str, cursor_position: int) -> str:
        """Return a continuation for ``context_text`` (text ending at the cursor)."""
        ...


@dataclass(slots=True)
class MockSettings:
    min_delay: float = 1.0
    max_delay: float = 3.0
    keyword_window: int = 100


class MockContinuationClient:
    """Offline substitute returning canned continuations after a short delay."""

    def __init__(
        self,
        settings: MockSettings | None = None,
        *,
        rng: random.Random | None = None,
        responses: Sequence[str] = MOCK_RESPONSES,
    ) -> None:
        self._settings = settings or MockSettings()
        self._rng = rng or random.Random()
        self._responses = tuple(responses)
        if not self._responses:
            raise ValueError("Mock client requires at least one canned response")
        self.calls = 0

    @property
    def settings(self) -> MockSettings:
        return self._settings

    async def generate(self, context_text: str, cursor_position: int) -> str:
        self.calls += 1
        delay = self._delay()
        if delay > 0:
            await asyncio.sleep(delay)
        window = max(0, self._settings.keyword_window)
        lowered = context_text[-window:].lower() if window else ""
        for keywords, response in KEYWORD_RESPONSES:
            if any(keyword in lowered for keyword in keywords):
                return response
        return self._rng.choice(self._responses)

    def _delay(self) -> float:
        low = max(0.0, float(self._settings.min_delay))
        high = max(low, float(self._settings.max_delay))
        if high <= 0:
            return 0.0
        return self._rng.uniform(low, high)


class OpenAIContinuationClient:
    """Continuation client backed by an OpenAI-compatible chat endpoint.

    When the account runs out of quota the request is transparently served
    by ``fallback`` instead; the substitution is logged, counted in
    :attr:`fallback_count` and reported through ``on_fallback``.
    """

    def __init__(
        self,
        client: AIClient,
        *,
        fallback: ContentGenerationClient | None = None,
        on_fallback: FallbackCallback | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        stop: Sequence[str] = prompts.DEFAULT_STOP_SEQUENCES,
    ) -> None:
        self._client = client
        self._fallback = fallback or MockContinuationClient()
        self._on_fallback = on_fallback
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._stop = tuple(stop)
        self.fallback_count = 0

    @property
    def client(self) -> AIClient:
        return self._client

    async def generate(self, context_text: str, cursor_position: int) -> str:
        messages = prompts.build_messages(context_text)
        try:
            return await self._client.complete_chat(
                messages,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                stop=self._stop,
            )
        except QuotaExceeded as exc:
            self.fallback_count += 1
            LOGGER.warning("AI quota exhausted; serving continuation from the substitute client")
            if self._on_fallback is not None:
                try:
                    self._on_fallback(exc)
                except Exception:  # pragma: no cover - callback failures are logged
                    LOGGER.exception("Fallback diagnostics callback failed")
            return await self._fallback.generate(context_text, cursor_position)

    async def aclose(self) -> None:
        await self._client.aclose()


def uses_mock(settings: Settings) -> bool:
    """Return ``True`` when ``settings`` route generation to the substitute."""

    return not has_usable_credentials(settings)


def build_generation_client(
    settings: Settings,
    *,
    ai_client: AIClient | None = None,
    on_fallback: FallbackCallback | None = None,
    rng: random.Random | None = None,
) -> ContentGenerationClient:
    """Pick the real or substitute client according to ``settings``."""

    mock = MockContinuationClient(
        MockSettings(min_delay=settings.mock_min_delay, max_delay=settings.mock_max_delay),
        rng=rng,
    )
    if uses_mock(settings):
        LOGGER.info("Using mock AI service (no API key or mock mode enabled)")
        return mock
    client = ai_client or AIClient(
        ClientSettings(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=settings.default_headers or None,
            metadata=settings.metadata or None,
            debug_logging=settings.debug_logging,
        )
    )
    return OpenAIContinuationClient(
        client,
        fallback=mock,
        on_fallback=on_fallback,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        stop=settings.stop_sequences or prompts.DEFAULT_STOP_SEQUENCES,
    )


__all__ = [
    "ContentGenerationClient",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TEMPERATURE",
    "KEYWORD_RESPONSES",
    "MOCK_RESPONSES",
    "MockContinuationClient",
    "MockSettings",
    "OpenAIContinuationClient",
    "build_generation_client",
    "uses_mock",
]
