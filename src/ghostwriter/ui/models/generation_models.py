"""Generation lifecycle models shared by the coordinator and presentation.

These dataclasses and enums describe the continuation workflow: which state
the coordinator is in, the context record it owns, and the events that
drive its transitions.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

from ...core.ranges import TextRange

if TYPE_CHECKING:  # pragma: no cover
    from ...ai.errors import GenerationError
    from ...editor.document_model import DocumentSnapshot
    from ...editor.mapping import Mapping


class GenerationState(Enum):
    """State of the continuation workflow.

    Values:
        IDLE: Nothing pending; the user may request a continuation.
        GENERATING: A request to the generation client is outstanding.
        REVIEW: A continuation sits in the document awaiting accept/discard.
        ERROR: The last request failed; the user may retry or dismiss.
    """

    IDLE = "idle"
    GENERATING = "generating"
    REVIEW = "review"
    ERROR = "error"


class ErrorKind(str, Enum):
    GENERATION = "generation"
    INTEGRITY = "integrity"


@dataclass(slots=True, frozen=True)
class PendingRange:
    """Span occupied by an unconfirmed continuation."""

    insert_position: int
    length: int

    def __post_init__(self) -> None:
        if self.insert_position < 0:
            raise ValueError("insert_position must be non-negative")
        if self.length <= 0:
            raise ValueError("length must be positive")

    @property
    def end(self) -> int:
        return self.insert_position + self.length

    def as_range(self) -> TextRange:
        return TextRange(self.insert_position, self.end)

    @classmethod
    def from_range(cls, span: TextRange) -> PendingRange:
        return cls(span.start, span.length)


@dataclass(slots=True)
class GenerationContext:
    """Mutable record owned by the coordinator.

    Attributes:
        document_snapshot: Latest document snapshot seen.
        generated_text: Most recent continuation; empty outside ``review``.
        error_message: User-facing failure description; only set in ``error``.
        error_kind: ``generation`` or ``integrity``; only set in ``error``.
        error_code: Taxonomy code of the failure.
        retryable: Whether presentation should offer retry.
        cursor_position: Offset the next/last generation is anchored at.
        pending_range: Span of the continuation; only set in ``review``.
        generation_id: Identifier of the latest issued request.
    """

    document_snapshot: DocumentSnapshot | None = None
    generated_text: str = ""
    error_message: str | None = None
    error_kind: ErrorKind | None = None
    error_code: str | None = None
    retryable: bool = False
    cursor_position: int = 0
    pending_range: PendingRange | None = None
    generation_id: int = 0

    def clear_error(self) -> None:
        self.error_message = None
        self.error_kind = None
        self.error_code = None
        self.retryable = False

    def clear_suggestion(self) -> None:
        self.generated_text = ""
        self.pending_range = None

    def copy(self) -> GenerationContext:
        return replace(self)


@dataclass(slots=True, frozen=True)
class GenerationSnapshot:
    """Observable coordinator state handed to presentation code."""

    value: GenerationState
    context: GenerationContext

    @property
    def has_suggestion(self) -> bool:
        return self.value is GenerationState.REVIEW

    def matches(self, *states: GenerationState) -> bool:
        return self.value in states


# ---------------------------------------------------------------------------
# Coordinator events
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class RequestContinue:
    cursor_position: int

    def __post_init__(self) -> None:
        if isinstance(self.cursor_position, bool) or not isinstance(self.cursor_position, int):
            raise TypeError("cursor_position must be an integer")
        if self.cursor_position < 0:
            raise ValueError("cursor_position must be non-negative")


@dataclass(slots=True, frozen=True)
class GenerationSucceeded:
    generation_id: int
    text: str


@dataclass(slots=True, frozen=True)
class GenerationFailed:
    generation_id: int
    error: GenerationError


@dataclass(slots=True, frozen=True)
class Accept:
    pass


@dataclass(slots=True, frozen=True)
class Discard:
    pass


@dataclass(slots=True, frozen=True)
class Retry:
    pass


@dataclass(slots=True, frozen=True)
class Dismiss:
    pass


@dataclass(slots=True, frozen=True)
class DocumentChanged:
    """The document changed; ``mapping`` carries offsets from the previous snapshot.

    ``mapping=None`` means the coordinator must ask the mutator for a map
    from the version it last tracked.
    """

    snapshot: DocumentSnapshot
    mapping: Mapping | None = field(default=None, compare=False)


CoordinatorEvent = (
    RequestContinue
    | GenerationSucceeded
    | GenerationFailed
    | Accept
    | Discard
    | Retry
    | Dismiss
    | DocumentChanged
)


__all__ = [
    "Accept",
    "CoordinatorEvent",
    "Discard",
    "Dismiss",
    "DocumentChanged",
    "ErrorKind",
    "GenerationContext",
    "GenerationFailed",
    "GenerationSnapshot",
    "GenerationState",
    "GenerationSucceeded",
    "PendingRange",
    "RequestContinue",
    "Retry",
]
