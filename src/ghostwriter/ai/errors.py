"""Typed failures raised by content generation clients.

Every failure carries a machine-readable ``error_code``, a human-readable
``message`` suitable for the status bar and whether a retry makes sense.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    PermissionDeniedError,
)

LOGGER = logging.getLogger(__name__)


class ErrorCode:
    """Constants for generation error codes."""

    AUTH = "auth_error"
    RATE_LIMIT = "rate_limit"
    QUOTA_EXCEEDED = "quota_exceeded"
    SERVICE_UNAVAILABLE = "service_unavailable"
    NETWORK = "network_error"
    UNKNOWN = "unknown_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class GenerationError(Exception):
    """Base exception for all content generation failures.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable description shown to the user.
        details: Additional structured information for diagnostics.
    """

    error_code: str = ErrorCode.UNKNOWN
    message: str = "Failed to generate content. Please try again."
    details: dict[str, Any] = field(default_factory=dict)

    retryable: ClassVar[bool] = True

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and diagnostics."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return self.message


# -----------------------------------------------------------------------------
# Taxonomy
# -----------------------------------------------------------------------------

@dataclass
class AuthError(GenerationError):
    """The configured credential was rejected; the user must reconfigure."""

    error_code: str = field(default=ErrorCode.AUTH)
    message: str = field(default="Invalid API key. Please check your OpenAI API key.")

    retryable: ClassVar[bool] = False


@dataclass
class RateLimitError(GenerationError):
    """The service throttled the request."""

    error_code: str = field(default=ErrorCode.RATE_LIMIT)
    message: str = field(default="Rate limit exceeded. Please try again in a moment.")


@dataclass
class QuotaExceeded(RateLimitError):
    """The account ran out of quota; clients fall back to the substitute."""

    error_code: str = field(default=ErrorCode.QUOTA_EXCEEDED)
    message: str = field(default="The AI service quota has been exhausted.")


@dataclass
class ServiceUnavailable(GenerationError):
    """The service answered with a server-side failure."""

    error_code: str = field(default=ErrorCode.SERVICE_UNAVAILABLE)
    message: str = field(default="OpenAI service error. Please try again later.")


@dataclass
class NetworkError(GenerationError):
    """The service could not be reached."""

    error_code: str = field(default=ErrorCode.NETWORK)
    message: str = field(default="No internet connection. Please check your network.")


@dataclass
class UnknownError(GenerationError):
    """Catch-all for anything else."""

    error_code: str = field(default=ErrorCode.UNKNOWN)
    message: str = field(default="Failed to generate content. Please try again.")


# -----------------------------------------------------------------------------
# Translation
# -----------------------------------------------------------------------------

def translate_exception(exc: BaseException) -> GenerationError:
    """Map an SDK/transport exception onto the generation taxonomy."""

    if isinstance(exc, GenerationError):
        return exc
    details: dict[str, Any] = {"exception": type(exc).__name__}
    if isinstance(exc, (AuthenticationError, PermissionDeniedError)):
        return AuthError(details=details)
    if isinstance(exc, APIStatusError):
        status = exc.status_code
        details["status"] = status
        if status in (401, 403):
            return AuthError(details=details)
        if status == 429:
            if _error_code_of(exc) == "insufficient_quota":
                return QuotaExceeded(details=details)
            return RateLimitError(details=details)
        if status >= 500:
            return ServiceUnavailable(details=details)
        return UnknownError(details=details)
    if isinstance(exc, (APIConnectionError, APITimeoutError, httpx.TransportError, httpx.TimeoutException)):
        return NetworkError(details=details)
    LOGGER.debug("Unclassified generation failure: %r", exc)
    return UnknownError(details=details)


def _error_code_of(exc: APIStatusError) -> str | None:
    code = getattr(exc, "code", None)
    if code:
        return str(code)
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        nested = body.get("error") if isinstance(body.get("error"), dict) else body
        value = nested.get("code") if isinstance(nested, dict) else None
        return str(value) if value else None
    return None


__all__ = [
    "AuthError",
    "ErrorCode",
    "GenerationError",
    "NetworkError",
    "QuotaExceeded",
    "RateLimitError",
    "ServiceUnavailable",
    "UnknownError",
    "translate_exception",
]
