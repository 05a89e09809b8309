"""Generation coordinator domain service.

Serializes asynchronous continuation requests against the mutable document.
The coordinator is the single source of truth for the continuation workflow:
it owns the :class:`GenerationContext`, drives the document mutator and
keeps the pending range (or the request anchor) in sync with user edits.

Events are handled one at a time. Events sent while a handler runs (for
example the change notification produced by the coordinator's own insert)
are queued and handled once the current handler returns.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Callable

from ...ai.errors import GenerationError, UnknownError, translate_exception
from ...ai.prompts import DEFAULT_CONTEXT_CHARS, trailing_context
from ...editor.mutator import MutationError, RevertUnavailable
from ...editor.pending_range import PendingRangeTracker, RangeLost
from ..events import (
    DocumentIntegrityAlert,
    EventBus,
    GenerationErrorRaised,
    GenerationStateChanged,
    SuggestionAccepted,
    SuggestionDiscarded,
    SuggestionInserted,
)
from ..models.generation_models import (
    Accept,
    CoordinatorEvent,
    Discard,
    Dismiss,
    DocumentChanged,
    ErrorKind,
    GenerationContext,
    GenerationFailed,
    GenerationSnapshot,
    GenerationState,
    GenerationSucceeded,
    PendingRange,
    RequestContinue,
    Retry,
)

if TYPE_CHECKING:  # pragma: no cover
    from ...ai.continuation import ContentGenerationClient
    from ...core.ranges import TextRange
    from ...editor.buffer import BufferChange, EditorBuffer
    from ...editor.document_model import DocumentSnapshot
    from ...editor.mapping import Mapping
    from ...editor.mutator import DocumentMutator

LOGGER = logging.getLogger(__name__)

INTEGRITY_ERROR_CODE = "integrity_error"
INTEGRITY_MESSAGE = (
    "The suggestion could not be removed cleanly. Please check the document before continuing."
)

StateListener = Callable[[GenerationSnapshot], None]


class GenerationCoordinator:
    """State machine for requesting, reviewing and resolving continuations.

    States: ``idle -> generating -> (review | error)``; ``review`` resolves
    to ``idle`` through accept or discard, ``error`` through dismiss or back
    to ``generating`` through retry (or a fresh continue request).

    Events Emitted:
        - GenerationStateChanged: On every transition
        - SuggestionInserted: When a continuation enters review
        - SuggestionAccepted / SuggestionDiscarded: When review resolves
        - GenerationErrorRaised: When a request fails
        - DocumentIntegrityAlert: When a suggestion cannot be reverted exactly
    """

    def __init__(
        self,
        client: ContentGenerationClient,
        mutator: DocumentMutator,
        *,
        event_bus: EventBus | None = None,
        tracker: PendingRangeTracker | None = None,
        context_chars: int = DEFAULT_CONTEXT_CHARS,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._client = client
        self._mutator = mutator
        self._bus = event_bus
        self._tracker = tracker or PendingRangeTracker()
        self._context_chars = max(0, int(context_chars))
        self._loop = loop
        self._state = GenerationState.IDLE
        self._context = GenerationContext(document_snapshot=mutator.snapshot())
        self._queue: deque[CoordinatorEvent] = deque()
        self._dispatching = False
        self._task: asyncio.Task[None] | None = None
        self._listeners: list[StateListener] = []
        self._closed = False
        self._calls_issued = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def context(self) -> GenerationContext:
        """The live context record; treat as read-only."""
        return self._context

    @property
    def tracker(self) -> PendingRangeTracker:
        return self._tracker

    @property
    def mutator(self) -> DocumentMutator:
        return self._mutator

    @property
    def calls_issued(self) -> int:
        """Number of generation requests started so far."""
        return self._calls_issued

    def snapshot(self) -> GenerationSnapshot:
        return GenerationSnapshot(self._state, self._context.copy())

    def is_generating(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for state snapshots; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def bind_buffer(self, buffer: EditorBuffer) -> Callable[[], None]:
        """Forward every change of ``buffer`` as :class:`DocumentChanged`."""

        def _forward(change: BufferChange) -> None:
            self.send(DocumentChanged(change.snapshot, change.mapping))

        buffer.add_change_listener(_forward)
        return lambda: buffer.remove_change_listener(_forward)

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def send(self, event: CoordinatorEvent) -> None:
        """Queue ``event`` and process the queue unless already processing."""

        if self._closed:
            LOGGER.debug("GenerationCoordinator closed; ignoring %s", type(event).__name__)
            return
        self._queue.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._queue:
                self._handle(self._queue.popleft())
        except Exception:
            if self._queue:
                LOGGER.warning("Dropping %s queued event(s) after handler failure", len(self._queue))
                self._queue.clear()
            raise
        finally:
            self._dispatching = False

    def request_continue(self, cursor_position: int) -> None:
        self.send(RequestContinue(cursor_position))

    def accept(self) -> None:
        self.send(Accept())

    def discard(self) -> None:
        self.send(Discard())

    def retry(self) -> None:
        self.send(Retry())

    def dismiss(self) -> None:
        self.send(Dismiss())

    def document_changed(self, snapshot: DocumentSnapshot | None = None, mapping: Mapping | None = None) -> None:
        self.send(DocumentChanged(snapshot or self._mutator.snapshot(), mapping))

    async def wait_for_generation(self) -> None:
        """Wait until the outstanding request (if any) has been handled."""

        while self._task is not None and not self._task.done():
            await asyncio.gather(self._task, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel the outstanding request on shutdown and stop handling events."""

        self._closed = True
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        close = getattr(self._client, "aclose", None)
        if close is not None:
            await close()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _handle(self, event: CoordinatorEvent) -> None:
        if isinstance(event, DocumentChanged):
            self._on_document_changed(event)
        elif isinstance(event, RequestContinue):
            self._on_request_continue(event)
        elif isinstance(event, GenerationSucceeded):
            self._on_generation_succeeded(event)
        elif isinstance(event, GenerationFailed):
            self._on_generation_failed(event)
        elif isinstance(event, Accept):
            self._on_accept()
        elif isinstance(event, Discard):
            self._on_discard()
        elif isinstance(event, Retry):
            self._on_retry()
        elif isinstance(event, Dismiss):
            self._on_dismiss()
        else:
            raise TypeError(f"Unsupported coordinator event: {event!r}")

    def _ignore(self, event_name: str) -> None:
        LOGGER.debug("GenerationCoordinator: %s ignored in state %s", event_name, self._state.value)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_request_continue(self, event: RequestContinue) -> None:
        if self._state not in (GenerationState.IDLE, GenerationState.ERROR):
            self._ignore("RequestContinue")
            return
        self._context.clear_error()
        snapshot = self._mutator.snapshot()
        self._context.cursor_position = min(event.cursor_position, len(snapshot.text))
        self._start_generation()

    def _on_retry(self) -> None:
        if self._state is not GenerationState.ERROR:
            self._ignore("Retry")
            return
        self._context.clear_error()
        self._current_anchor()
        self._start_generation()

    def _on_dismiss(self) -> None:
        if self._state is not GenerationState.ERROR:
            self._ignore("Dismiss")
            return
        self._context.clear_error()
        self._tracker.clear()
        self._transition(GenerationState.IDLE)

    def _on_generation_succeeded(self, event: GenerationSucceeded) -> None:
        if not self._is_current(event.generation_id):
            LOGGER.debug("Dropping stale generation result %s", event.generation_id)
            return
        text = event.text.strip()
        if not text:
            self._enter_error(UnknownError(details={"reason": "empty_continuation"}))
            return

        anchor = self._current_anchor()
        try:
            span = self._mutator.insert(text, anchor)
        except (MutationError, ValueError) as exc:
            LOGGER.warning("Unable to insert continuation at %s: %s", anchor, exc)
            self._enter_error(UnknownError(details={"reason": "insert_failed"}))
            return

        snapshot = self._mutator.snapshot()
        self._tracker.track(span, snapshot.version_id)
        self._context.document_snapshot = snapshot
        self._context.cursor_position = span.start
        self._context.generated_text = text
        self._context.pending_range = PendingRange.from_range(span)
        self._transition(GenerationState.REVIEW)
        self._publish(SuggestionInserted(span.start, span.end, text, event.generation_id))

    def _on_generation_failed(self, event: GenerationFailed) -> None:
        if not self._is_current(event.generation_id):
            LOGGER.debug("Dropping stale generation failure %s", event.generation_id)
            return
        self._current_anchor()
        self._enter_error(event.error)

    def _on_accept(self) -> None:
        if self._state is not GenerationState.REVIEW:
            self._ignore("Accept")
            return
        span = self._sync_range()
        if span is None:
            return
        self._mutator.finalize(span)
        self._finish_review()
        self._publish(SuggestionAccepted(span.start, span.end))

    def _on_discard(self) -> None:
        if self._state is not GenerationState.REVIEW:
            self._ignore("Discard")
            return
        span = self._sync_range()
        if span is None:
            return
        try:
            self._mutator.revert(span)
        except RevertUnavailable as exc:
            LOGGER.warning("Suggestion at %s could not be reverted (%s): %s", span.to_tuple(), exc.reason, exc)
            self._mutator.strip_provisional_marks()
            self._tracker.clear()
            self._context.clear_suggestion()
            self._context.document_snapshot = self._mutator.snapshot()
            self._context.error_message = INTEGRITY_MESSAGE
            self._context.error_kind = ErrorKind.INTEGRITY
            self._context.error_code = INTEGRITY_ERROR_CODE
            self._context.retryable = False
            self._transition(GenerationState.ERROR)
            self._publish(DocumentIntegrityAlert(reason=exc.reason, message=INTEGRITY_MESSAGE))
            return
        self._finish_review()
        self._publish(SuggestionDiscarded(span.start, span.end))

    def _on_document_changed(self, event: DocumentChanged) -> None:
        current = self._context.document_snapshot
        if current is None or event.snapshot.version_id >= current.version_id:
            self._context.document_snapshot = event.snapshot

        if self._state is GenerationState.REVIEW:
            before = self._tracker.current
            span = self._sync_range(fallback=event.mapping)
            if span is not None and span != before:
                self._context.pending_range = PendingRange.from_range(span)
                self._notify()
        elif self._state in (GenerationState.GENERATING, GenerationState.ERROR):
            self._current_anchor(fallback=event.mapping)

    # ------------------------------------------------------------------
    # Generation task
    # ------------------------------------------------------------------

    def _start_generation(self) -> None:
        snapshot = self._mutator.snapshot()
        cursor = min(self._context.cursor_position, len(snapshot.text))
        generation_id = self._context.generation_id + 1
        context_text = trailing_context(snapshot.text, cursor, limit=self._context_chars)

        # Nothing is committed until the request is actually scheduled.
        request = self._run_generation(generation_id, context_text, cursor)
        try:
            loop = self._loop or asyncio.get_running_loop()
            task = loop.create_task(request)
        except RuntimeError as exc:
            request.close()
            LOGGER.error("Cannot schedule continuation %s: %s", generation_id, exc)
            self._enter_error(UnknownError(details={"reason": "no_event_loop"}))
            return

        self._context.cursor_position = cursor
        self._context.document_snapshot = snapshot
        self._context.clear_suggestion()
        self._context.generation_id = generation_id
        self._tracker.track_anchor(cursor, snapshot.version_id)
        self._calls_issued += 1
        self._task = task
        LOGGER.debug(
            "GenerationCoordinator: requesting continuation %s at %s (%s context chars)",
            generation_id,
            cursor,
            len(context_text),
        )
        self._transition(GenerationState.GENERATING)

    async def _run_generation(self, generation_id: int, context_text: str, cursor: int) -> None:
        try:
            text = await self._client.generate(context_text, cursor)
        except asyncio.CancelledError:
            LOGGER.debug("Generation %s canceled", generation_id)
            raise
        except GenerationError as exc:
            LOGGER.warning("Generation %s failed (%s): %s", generation_id, exc.error_code, exc.message)
            self.send(GenerationFailed(generation_id, exc))
        except Exception as exc:
            LOGGER.warning("Generation %s failed unexpectedly: %s", generation_id, exc, exc_info=True)
            self.send(GenerationFailed(generation_id, translate_exception(exc)))
        else:
            self.send(GenerationSucceeded(generation_id, text if isinstance(text, str) else ""))

    def _is_current(self, generation_id: int) -> bool:
        return (
            not self._closed
            and self._state is GenerationState.GENERATING
            and generation_id == self._context.generation_id
        )

    # ------------------------------------------------------------------
    # Offset tracking
    # ------------------------------------------------------------------

    def _mapping_to_now(self, fallback: Mapping | None) -> tuple[Mapping | None, int]:
        version = self._mutator.snapshot().version_id
        mapping = self._mutator.mapping_since(self._tracker.version)
        # A change notification maps exactly one version forward.
        if mapping is None and fallback is not None and version == self._tracker.version + 1:
            return fallback, version
        return mapping, version

    def _current_anchor(self, fallback: Mapping | None = None) -> int:
        """Bring the request anchor up to date and return it."""

        length = len(self._mutator.snapshot().text)
        anchor = self._tracker.anchor
        if anchor is None:
            return min(self._context.cursor_position, length)
        mapping, version = self._mapping_to_now(fallback)
        if self._tracker.should_remap(version):
            if mapping is None:
                self._tracker.track_anchor(min(anchor, length), version)
            else:
                self._tracker.remap_anchor(mapping, version)
        anchor = min(self._tracker.anchor or 0, length)
        self._context.cursor_position = anchor
        return anchor

    def _sync_range(self, fallback: Mapping | None = None) -> TextRange | None:
        """Bring the pending range up to date; ``None`` when it was lost."""

        span = self._tracker.current
        if span is None:
            LOGGER.warning("Review state without a tracked range; clearing suggestion")
            self._lose_range()
            return None
        mapping, version = self._mapping_to_now(fallback)
        if not self._tracker.should_remap(version):
            return span
        try:
            if mapping is None:
                raise RangeLost(span, "Document was replaced while a suggestion was pending")
            return self._tracker.remap(mapping, version)
        except RangeLost as exc:
            LOGGER.debug("GenerationCoordinator: %s; treating as discard", exc)
            self._lose_range(exc.span)
            return None

    def _lose_range(self, span: TextRange | None = None) -> None:
        self._tracker.clear()
        self._mutator.strip_provisional_marks()
        self._finish_review()
        if span is not None:
            self._publish(SuggestionDiscarded(span.start, span.end, implicit=True))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _finish_review(self) -> None:
        self._tracker.clear()
        self._context.clear_suggestion()
        self._context.document_snapshot = self._mutator.snapshot()
        self._transition(GenerationState.IDLE)

    def _enter_error(self, error: GenerationError) -> None:
        self._context.clear_suggestion()
        self._context.error_message = error.message or UnknownError().message
        self._context.error_kind = ErrorKind.GENERATION
        self._context.error_code = error.error_code
        self._context.retryable = bool(error.retryable)
        self._transition(GenerationState.ERROR)
        self._publish(GenerationErrorRaised(error.error_code, self._context.error_message, error.retryable))

    def _transition(self, state: GenerationState) -> None:
        previous = self._state
        self._state = state
        if state is not GenerationState.ERROR:
            self._context.clear_error()
        LOGGER.debug(
            "GenerationCoordinator: %s -> %s (generation=%s)",
            previous.value,
            state.value,
            self._context.generation_id,
        )
        self._publish(GenerationStateChanged(state.value, previous.value, self._context.generation_id))
        self._notify()

    def _publish(self, event: Any) -> None:
        if self._bus is not None:
            self._bus.publish(event)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.exception("Generation state listener %r failed", listener)


__all__ = ["GenerationCoordinator", "INTEGRITY_ERROR_CODE", "INTEGRITY_MESSAGE"]
