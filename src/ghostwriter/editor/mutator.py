"""Document mutation protocol used by the generation coordinator.

The mutator is the only component allowed to write AI text into the
buffer. Each insertion is recorded as a reversible command so a later
discard can rebuild the exact inverse even after the user kept editing
around (or inside) the suggestion. The record follows every buffer change
as it is applied, so it stays exact however long the review lasts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from ..core.ranges import TextRange
from .buffer import ORIGIN_PROGRAMMATIC, BufferChange, EditorBuffer
from .document_model import PROVISIONAL_MARK, DocumentSnapshot, SelectionRange
from .mapping import ASSOC_LEFT, ASSOC_RIGHT, Mapping

LOGGER = logging.getLogger(__name__)

DEFAULT_SEPARATOR = " "


class MutationError(RuntimeError):
    """Base class for document mutation failures."""


class RevertUnavailable(MutationError):
    """Raised when an insertion can no longer be undone exactly."""

    def __init__(self, message: str, *, reason: str = "unavailable") -> None:
        super().__init__(message)
        self.reason = reason


@dataclass(slots=True, frozen=True)
class InsertionRecord:
    """Everything needed to invert one insertion.

    ``position``, ``selection_before`` and ``version`` describe the moment of
    insertion. ``span`` and ``restore`` are in the current document's
    coordinates: the inserted text (``None`` once it was deleted outright)
    and the pre-insertion selection carried past every later edit.
    """

    position: int
    inserted_text: str
    selection_before: SelectionRange
    version: int
    epoch: str
    span: TextRange | None
    restore: SelectionRange

    def advance(self, mapping: Mapping) -> InsertionRecord:
        span = None if self.span is None else _map_span(self.span, mapping)
        restore = SelectionRange(
            mapping.map(self.restore.start, ASSOC_LEFT),
            mapping.map(self.restore.end, ASSOC_LEFT),
        )
        return replace(self, span=span, restore=restore)


class DocumentMutator:
    """Narrow adapter over :class:`EditorBuffer` for AI insertions."""

    def __init__(
        self,
        buffer: EditorBuffer,
        *,
        separator: str = DEFAULT_SEPARATOR,
        mark_kind: str = PROVISIONAL_MARK,
    ) -> None:
        self._buffer = buffer
        self._separator = separator
        self._mark_kind = mark_kind
        self._record: InsertionRecord | None = None
        buffer.add_change_listener(self._follow_change)

    @property
    def buffer(self) -> EditorBuffer:
        return self._buffer

    @property
    def record(self) -> InsertionRecord | None:
        return self._record

    @property
    def mark_kind(self) -> str:
        return self._mark_kind

    def snapshot(self) -> DocumentSnapshot:
        return self._buffer.snapshot()

    def mapping_since(self, version: int) -> Mapping | None:
        return self._buffer.mapping_since(version)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def insert(self, text: str, at_position: int) -> TextRange:
        """Insert ``text`` (prefixed with the separator) and mark it provisional.

        Returns the inserted span, separator included, in post-insertion
        coordinates.
        """

        if not text:
            raise ValueError("Cannot insert empty text")
        if self._record is not None:
            raise MutationError("A provisional insertion is already pending")
        position = max(0, min(int(at_position), len(self._buffer)))
        payload = f"{self._separator}{text}"
        span = TextRange(position, position + len(payload))
        selection_before = self._buffer.selection

        tx = self._buffer.transaction(ORIGIN_PROGRAMMATIC)
        tx.insert(position, payload)
        tx.add_mark(span.start, span.end, self._mark_kind)
        tx.set_selection(SelectionRange(span.end, span.end))
        change = self._buffer.apply(tx)

        self._record = InsertionRecord(
            position=position,
            inserted_text=payload,
            selection_before=selection_before,
            version=change.version_id,
            epoch=self._buffer.epoch,
            span=span,
            restore=SelectionRange(
                _past_insertion(selection_before.start, position, len(payload)),
                _past_insertion(selection_before.end, position, len(payload)),
            ),
        )
        LOGGER.debug("Inserted provisional span %s (version=%s)", span.to_tuple(), change.version_id)
        return span

    def finalize(self, span: TextRange) -> None:
        """Drop the provisional mark over ``span`` and keep the text."""

        self._record = None
        span = span.clamp(upper=len(self._buffer))
        if not any(mark.kind == self._mark_kind and mark.range.overlaps(span) for mark in self._buffer.marks):
            LOGGER.debug("Finalize on %s is a no-op (no provisional mark)", span.to_tuple())
            return
        tx = self._buffer.transaction(ORIGIN_PROGRAMMATIC).remove_mark(span.start, span.end, self._mark_kind)
        tx.set_selection(self._buffer.selection)
        self._buffer.apply(tx)
        LOGGER.debug("Finalized provisional span %s", span.to_tuple())

    def revert(self, span: TextRange) -> None:
        """Undo the recorded insertion, preserving unrelated edits.

        Raises :class:`RevertUnavailable` when the insertion cannot be
        inverted exactly; the record is kept so callers may inspect it.
        """

        record = self._record
        if record is None:
            raise RevertUnavailable("No provisional insertion to revert", reason="no-record")
        if record.epoch != self._buffer.epoch:
            raise RevertUnavailable("The document was replaced after the insertion", reason="document-replaced")

        expected = record.span
        if expected is None:
            raise RevertUnavailable("The inserted text no longer exists", reason="span-deleted")
        if expected != span:
            raise RevertUnavailable(
                f"Pending range {span.to_tuple()} does not match the insertion at {expected.to_tuple()}",
                reason="range-mismatch",
            )

        selection = SelectionRange(
            _collapse_onto(record.restore.start, expected),
            _collapse_onto(record.restore.end, expected),
        )
        self._record = None
        tx = self._buffer.transaction(ORIGIN_PROGRAMMATIC).delete(expected.start, expected.end)
        tx.set_selection(selection)
        self._buffer.apply(tx)
        LOGGER.debug("Reverted provisional span %s", expected.to_tuple())

    def strip_provisional_marks(self) -> None:
        """Remove every provisional mark from the document."""

        self._record = None
        marks = [mark for mark in self._buffer.marks if mark.kind == self._mark_kind]
        if not marks:
            return
        tx = self._buffer.transaction(ORIGIN_PROGRAMMATIC)
        for mark in marks:
            tx.remove_mark(mark.start, mark.end, self._mark_kind)
        tx.set_selection(self._buffer.selection)
        self._buffer.apply(tx)

    def forget(self) -> None:
        """Drop the insertion record without touching the document."""

        self._record = None

    def _follow_change(self, change: BufferChange) -> None:
        # Wholesale replacements carry no mapping; the epoch check covers them.
        if self._record is not None and change.mapping is not None:
            self._record = self._record.advance(change.mapping)


def _map_span(span: TextRange, mapping: Mapping) -> TextRange | None:
    """Carry ``span`` through ``mapping``; ``None`` when every character was removed."""

    for step in mapping:
        if step.is_identity:
            continue
        if step.removed and TextRange(step.start, step.end).covers(span):
            return None
        start = step.map(span.start, ASSOC_RIGHT)
        end = step.map(span.end, ASSOC_LEFT)
        if end <= start:
            return None
        span = TextRange(start, end)
    return span


def _past_insertion(offset: int, position: int, length: int) -> int:
    # Offsets at the insertion point stay before the inserted text.
    return offset + length if offset > position else offset


def _collapse_onto(offset: int, removed: TextRange) -> int:
    """Where ``offset`` lands once ``removed`` is deleted."""

    if offset >= removed.end:
        return offset - removed.length
    return min(offset, removed.start)


__all__ = [
    "DEFAULT_SEPARATOR",
    "DocumentMutator",
    "InsertionRecord",
    "MutationError",
    "RevertUnavailable",
]
