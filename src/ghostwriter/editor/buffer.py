"""Headless text engine backing the editor widget.

The buffer owns the document text, the selection and mark spans. Every
mutation goes through a :class:`Transaction` made of steps so the buffer
can publish an exact position map for each version. Consumers that hold
offsets across edits (the pending-range tracker, the mutator's revert
records) use :meth:`EditorBuffer.mapping_since` to carry them forward.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol, Sequence

from ..core.ranges import TextRange
from .document_model import (
    DocumentSnapshot,
    DocumentState,
    MarkSpan,
    SelectionRange,
    normalize_marks,
)
from .mapping import ASSOC_LEFT, ASSOC_RIGHT, Mapping, StepMap

LOGGER = logging.getLogger(__name__)

ORIGIN_USER = "user"
ORIGIN_PROGRAMMATIC = "programmatic"
ORIGIN_HISTORY = "history"


# ------------------------------------------------------------------
# Steps
# ------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class ReplaceStep:
    """Replace ``[start, end)`` with ``text``."""

    start: int
    end: int
    text: str = ""

    def step_map(self) -> StepMap:
        return StepMap(self.start, self.end, len(self.text))


@dataclass(slots=True, frozen=True)
class AddMarkStep:
    start: int
    end: int
    kind: str


@dataclass(slots=True, frozen=True)
class RemoveMarkStep:
    start: int
    end: int
    kind: str


Step = ReplaceStep | AddMarkStep | RemoveMarkStep


@dataclass(slots=True)
class Transaction:
    """Ordered group of steps applied atomically."""

    steps: list[Step] = field(default_factory=list)
    origin: str = ORIGIN_USER
    selection: SelectionRange | None = None
    add_to_history: bool = True

    def replace(self, start: int, end: int, text: str) -> Transaction:
        self.steps.append(ReplaceStep(start, end, text))
        return self

    def insert(self, position: int, text: str) -> Transaction:
        return self.replace(position, position, text)

    def delete(self, start: int, end: int) -> Transaction:
        return self.replace(start, end, "")

    def add_mark(self, start: int, end: int, kind: str) -> Transaction:
        self.steps.append(AddMarkStep(start, end, kind))
        return self

    def remove_mark(self, start: int, end: int, kind: str) -> Transaction:
        self.steps.append(RemoveMarkStep(start, end, kind))
        return self

    def set_selection(self, selection: SelectionRange) -> Transaction:
        self.selection = selection
        return self


@dataclass(slots=True, frozen=True)
class BufferChange:
    """Notification describing one applied transaction."""

    snapshot: DocumentSnapshot
    mapping: Mapping | None
    origin: str
    previous_version: int

    @property
    def is_reset(self) -> bool:
        """True when the document was replaced wholesale and offsets cannot be mapped."""

        return self.mapping is None

    @property
    def version_id(self) -> int:
        return self.snapshot.version_id


class ChangeListener(Protocol):
    """Callback invoked after every applied transaction."""

    def __call__(self, change: BufferChange) -> None:
        ...


@dataclass(slots=True)
class _HistoryEntry:
    """Inverse of an applied transaction plus the selection to restore."""

    steps: tuple[ReplaceStep, ...]
    selection: SelectionRange


class EditorBuffer:
    """In-memory document engine with transactions and position maps."""

    MAX_HISTORY = 50
    MAX_MAP_LOG = 512

    def __init__(self, text: str = "", *, document: DocumentState | None = None) -> None:
        self._state = document or DocumentState(text=text)
        self._epoch = uuid.uuid4().hex
        self._map_log: deque[tuple[int, tuple[StepMap, ...]]] = deque()
        self._log_floor = self._state.version_id
        self._undo_stack: list[_HistoryEntry] = []
        self._redo_stack: list[_HistoryEntry] = []
        self._listeners: list[ChangeListener] = []

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def text(self) -> str:
        return self._state.text

    @property
    def selection(self) -> SelectionRange:
        return self._state.selection

    @property
    def marks(self) -> tuple[MarkSpan, ...]:
        return self._state.marks

    @property
    def version(self) -> int:
        return self._state.version_id

    @property
    def epoch(self) -> str:
        """Identifier that changes whenever the document is replaced wholesale."""

        return self._epoch

    def __len__(self) -> int:
        return len(self._state.text)

    def snapshot(self) -> DocumentSnapshot:
        return self._state.snapshot()

    def to_document(self) -> DocumentState:
        return self._state

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def load_document(self, document: DocumentState | str) -> None:
        """Replace the whole document, discarding history and position maps."""

        if isinstance(document, str):
            document = DocumentState(text=document)
        previous_version = self._state.version_id
        document.version_id = max(document.version_id, previous_version + 1)
        document.marks = normalize_marks(document.marks)
        document.selection = self._clamp_selection(document.selection, len(document.text))
        self._state = document
        self._epoch = uuid.uuid4().hex
        self._map_log.clear()
        self._log_floor = document.version_id
        self._undo_stack.clear()
        self._redo_stack.clear()
        LOGGER.debug("Buffer loaded document %s (version=%s)", document.document_id, document.version_id)
        self._emit(BufferChange(self.snapshot(), None, ORIGIN_PROGRAMMATIC, previous_version))

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def transaction(self, origin: str = ORIGIN_USER) -> Transaction:
        return Transaction(origin=origin)

    def apply(self, transaction: Transaction) -> BufferChange:
        """Apply ``transaction`` atomically and notify listeners."""

        text = self._state.text
        marks = list(self._state.marks)
        selection = self._state.selection
        step_maps: list[StepMap] = []
        inverse: list[ReplaceStep] = []

        for step in transaction.steps:
            if isinstance(step, ReplaceStep):
                start, end = self._validate_span(step.start, step.end, len(text))
                removed = text[start:end]
                text = text[:start] + step.text + text[end:]
                step_map = StepMap(start, end, len(step.text))
                step_maps.append(step_map)
                inverse.append(ReplaceStep(start, start + len(step.text), removed))
                marks = [self._map_mark(mark, step_map) for mark in marks]
                selection = SelectionRange(
                    step_map.map(selection.start, ASSOC_RIGHT),
                    step_map.map(selection.end, ASSOC_RIGHT),
                )
            elif isinstance(step, AddMarkStep):
                start, end = self._validate_span(step.start, step.end, len(text))
                marks.append(MarkSpan(start, end, step.kind))
            elif isinstance(step, RemoveMarkStep):
                start, end = self._validate_span(step.start, step.end, len(text))
                marks = self._remove_mark(marks, TextRange(start, end), step.kind)
            else:  # pragma: no cover - guarded by typing
                raise TypeError(f"Unsupported step: {step!r}")

        previous_version = self._state.version_id
        previous_selection = self._state.selection
        if transaction.selection is not None:
            selection = transaction.selection
        selection = self._clamp_selection(selection, len(text))

        if text != self._state.text:
            self._state.replace_text(text)
        self._state.marks = normalize_marks(marks)
        self._state.selection = selection
        self._state.version_id = previous_version + 1
        self._record_maps(self._state.version_id, step_maps)

        if inverse and transaction.add_to_history:
            self._push_history(self._undo_stack, _HistoryEntry(tuple(reversed(inverse)), previous_selection))
            if transaction.origin != ORIGIN_HISTORY:
                self._redo_stack.clear()

        change = BufferChange(
            snapshot=self.snapshot(),
            mapping=Mapping(step_maps),
            origin=transaction.origin,
            previous_version=previous_version,
        )
        self._emit(change)
        return change

    def insert_text(self, text: str, position: int | None = None, *, origin: str = ORIGIN_USER) -> BufferChange:
        """Insert ``text`` at ``position`` or the current selection start."""

        start = self._state.selection.start if position is None else position
        start = max(0, min(start, len(self._state.text)))
        caret = start + len(text)
        tx = self.transaction(origin).insert(start, text).set_selection(SelectionRange(caret, caret))
        return self.apply(tx)

    def delete_range(self, start: int, end: int, *, origin: str = ORIGIN_USER) -> BufferChange:
        begin, finish = self._clamp_range(start, end)
        tx = self.transaction(origin).delete(begin, finish).set_selection(SelectionRange(begin, begin))
        return self.apply(tx)

    def replace_range(self, start: int, end: int, replacement: str, *, origin: str = ORIGIN_USER) -> BufferChange:
        """Replace the slice ``[start:end]`` with ``replacement``."""

        begin, finish = self._clamp_range(start, end)
        caret = begin + len(replacement)
        tx = self.transaction(origin).replace(begin, finish, replacement)
        tx.set_selection(SelectionRange(caret, caret))
        return self.apply(tx)

    def set_selection(self, selection: SelectionRange | TextRange | Sequence[int]) -> None:
        """Move the selection without touching the text or the version."""

        resolved = SelectionRange.from_value(selection)
        self._state.selection = self._clamp_selection(resolved, len(self._state.text))

    # ------------------------------------------------------------------
    # Host undo/redo
    # ------------------------------------------------------------------
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    def undo(self) -> BufferChange | None:
        """Revert the most recent text transaction, if any."""

        if not self._undo_stack:
            return None
        entry = self._undo_stack.pop()
        change = self._apply_history(entry)
        self._push_history(self._redo_stack, self._undo_stack.pop())
        return change

    def redo(self) -> BufferChange | None:
        if not self._redo_stack:
            return None
        entry = self._redo_stack.pop()
        return self._apply_history(entry)

    # ------------------------------------------------------------------
    # Position mapping
    # ------------------------------------------------------------------
    def mapping_since(self, version: int) -> Mapping | None:
        """Return the composed map from ``version`` to the current version.

        ``None`` means the log no longer reaches ``version`` (or it belongs to
        a previously loaded document), so offsets taken at that version can
        not be carried forward reliably.
        """

        current = self._state.version_id
        if version == current:
            return Mapping.identity()
        if version < self._log_floor or version > current:
            return None
        mapping = Mapping()
        for produced, steps in self._map_log:
            if produced > version:
                mapping.extend(steps)
        return mapping

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _apply_history(self, entry: _HistoryEntry) -> BufferChange:
        tx = Transaction(steps=list(entry.steps), origin=ORIGIN_HISTORY, selection=entry.selection)
        return self.apply(tx)

    def _push_history(self, stack: list[_HistoryEntry], entry: _HistoryEntry) -> None:
        stack.append(entry)
        if len(stack) > self.MAX_HISTORY:
            stack.pop(0)

    def _record_maps(self, version: int, steps: Iterable[StepMap]) -> None:
        self._map_log.append((version, tuple(steps)))
        while len(self._map_log) > self.MAX_MAP_LOG:
            dropped_version, _ = self._map_log.popleft()
            self._log_floor = dropped_version

    def _emit(self, change: BufferChange) -> None:
        for listener in list(self._listeners):
            listener(change)

    @staticmethod
    def _map_mark(mark: MarkSpan, step_map: StepMap) -> MarkSpan:
        start = step_map.map(mark.start, ASSOC_RIGHT)
        end = step_map.map(mark.end, ASSOC_LEFT)
        return MarkSpan(start, max(start, end), mark.kind)

    @staticmethod
    def _remove_mark(marks: list[MarkSpan], span: TextRange, kind: str) -> list[MarkSpan]:
        remaining: list[MarkSpan] = []
        for mark in marks:
            if mark.kind != kind or not mark.range.overlaps(span):
                remaining.append(mark)
                continue
            if mark.start < span.start:
                remaining.append(MarkSpan(mark.start, span.start, kind))
            if mark.end > span.end:
                remaining.append(MarkSpan(span.end, mark.end, kind))
        return remaining

    @staticmethod
    def _validate_span(start: int, end: int, length: int) -> tuple[int, int]:
        if start < 0 or end < start or end > length:
            raise ValueError(f"Span [{start}, {end}) is outside the document (length={length})")
        return start, end

    def _clamp_range(self, start: int, end: int) -> tuple[int, int]:
        length = len(self._state.text)
        start = max(0, min(start, length))
        end = max(0, min(end, length))
        if end < start:
            start, end = end, start
        return start, end

    @staticmethod
    def _clamp_selection(selection: SelectionRange, length: int) -> SelectionRange:
        start = max(0, min(selection.start, length))
        end = max(0, min(selection.end, length))
        if end < start:
            start, end = end, start
        return SelectionRange(start, end)


__all__ = [
    "AddMarkStep",
    "BufferChange",
    "ChangeListener",
    "EditorBuffer",
    "ORIGIN_HISTORY",
    "ORIGIN_PROGRAMMATIC",
    "ORIGIN_USER",
    "RemoveMarkStep",
    "ReplaceStep",
    "Transaction",
]
