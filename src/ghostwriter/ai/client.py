"""Thin async wrapper over the OpenAI chat completions endpoint.

Any OpenAI-compatible server works; the base URL, key and model come from
:class:`ClientSettings`. The SDK's own retry loop is disabled and replaced
by tenacity so the retry policy follows the user's settings.
"""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence, cast

import httpx
from openai import APIConnectionError, APITimeoutError, AsyncOpenAI, InternalServerError
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .errors import translate_exception

LOGGER = logging.getLogger(__name__)

# Retried; everything else fails on the first attempt.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    APIConnectionError,
    APITimeoutError,
    InternalServerError,
    httpx.TimeoutException,
)


@dataclass(slots=True)
class ClientSettings:
    """Connection and retry options for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 30.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False


class AIClient:
    """Send a chat request, retry transient failures, return the reply text.

    ``max_retries`` counts total attempts. Errors that survive the retries
    are translated into :class:`~ghostwriter.ai.errors.GenerationError`
    subclasses with the SDK exception chained as ``__cause__``.
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client if client is not None else _open_sdk_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete_chat(
        self,
        messages: Iterable[Mapping[str, Any] | ChatCompletionMessageParam],
        *,
        temperature: float | None = 0.7,
        max_tokens: int | None = None,
        stop: Sequence[str] | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra_params: Any,
    ) -> str:
        """Return the stripped text of the first choice, or ``""`` when there is none."""

        request = self._request(list(messages), temperature, max_tokens, stop, metadata)
        request.update(extra_params)
        LOGGER.debug("Chat completion: model=%s messages=%d", request["model"], len(request["messages"]))
        if self._settings.debug_logging:
            self._log_prompt_payload(request)

        try:
            async for attempt in self._attempts():
                with attempt:
                    response = await self._client.chat.completions.create(**request)
        except Exception as exc:
            error = translate_exception(exc)
            LOGGER.warning("Chat completion failed with %s: %s", error.error_code, exc)
            raise error from exc
        return _reply_text(response)

    async def aclose(self) -> None:
        """Release the SDK client's HTTP connections."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        try:
            outcome = close()
        except Exception:  # pragma: no cover - SDK dependent
            LOGGER.debug("Closing the OpenAI client failed", exc_info=True)
            return
        if inspect.isawaitable(outcome):
            await outcome

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _request(
        self,
        messages: List[Any],
        temperature: float | None,
        max_tokens: int | None,
        stop: Sequence[str] | None,
        metadata: Mapping[str, str] | None,
    ) -> Dict[str, Any]:
        if not messages:
            raise ValueError("At least one message is required to start a chat")
        request: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": [cast(ChatCompletionMessageParam, dict(message)) for message in messages],
        }
        tags = {**(self._settings.metadata or {}), **(metadata or {})}
        optional = {
            "metadata": tags or None,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stop": list(stop) if stop else None,
        }
        request.update({key: value for key, value in optional.items() if value is not None})
        return request

    def _attempts(self) -> AsyncRetrying:
        policy = self._settings
        return AsyncRetrying(
            stop=stop_after_attempt(max(1, policy.max_retries)),
            wait=wait_exponential(multiplier=policy.retry_min_seconds, max=policy.retry_max_seconds),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        )

    def _log_prompt_payload(self, request: Mapping[str, Any]) -> None:
        try:
            rendered = json.dumps(request, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            rendered = repr(request)
        LOGGER.debug("AI prompt payload:\n%s", rendered)


def _open_sdk_client(settings: ClientSettings) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=settings.api_key,
        base_url=settings.base_url,
        organization=settings.organization,
        timeout=settings.request_timeout,
        default_headers=dict(settings.default_headers or {}) or None,
        max_retries=0,
    )


def _reply_text(response: Any) -> str:
    choices = getattr(response, "choices", None)
    if not choices:
        return ""
    content = getattr(getattr(choices[0], "message", None), "content", None)
    return (content or "").strip()


__all__ = ["AIClient", "ClientSettings", "RETRYABLE_ERRORS"]
