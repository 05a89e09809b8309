"""AI clients producing continuations for the editor."""

from .client import AIClient, ClientSettings
from .continuation import (
    ContentGenerationClient,
    MockContinuationClient,
    OpenAIContinuationClient,
    build_generation_client,
)
from .errors import (
    AuthError,
    GenerationError,
    NetworkError,
    RateLimitError,
    ServiceUnavailable,
    UnknownError,
)

__all__ = [
    "AIClient",
    "AuthError",
    "ClientSettings",
    "ContentGenerationClient",
    "GenerationError",
    "MockContinuationClient",
    "NetworkError",
    "OpenAIContinuationClient",
    "RateLimitError",
    "ServiceUnavailable",
    "UnknownError",
    "build_generation_client",
]
