"""Document state records shared by the buffer, the mutator and the coordinator."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from ..core.ranges import TextRange

PROVISIONAL_MARK = "provisional"


def hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


@dataclass(slots=True, frozen=True)
class SelectionRange:
    """Selection bounds in document order; ``start == end`` is a bare caret."""

    start: int = 0
    end: int = 0

    @property
    def is_caret(self) -> bool:
        return self.start == self.end

    @classmethod
    def from_value(cls, value: Any) -> SelectionRange:
        if isinstance(value, cls):
            return value
        low, high = TextRange.from_value(value)
        return cls(low, high)


@dataclass(slots=True, frozen=True)
class MarkSpan:
    """Named attribute over ``[start, end)``.

    Marks do not grow: text typed exactly at either edge stays unmarked.
    """

    start: int
    end: int
    kind: str = PROVISIONAL_MARK

    @property
    def range(self) -> TextRange:
        return TextRange(self.start, self.end)


@dataclass(slots=True)
class DocumentState:
    """Mutable document owned by :class:`~ghostwriter.editor.buffer.EditorBuffer`.

    ``version_id`` increases by one per applied transaction and never goes
    backwards, even across :meth:`EditorBuffer.load_document`.
    """

    text: str = ""
    marks: tuple[MarkSpan, ...] = ()
    selection: SelectionRange = field(default_factory=SelectionRange)
    dirty: bool = False
    document_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    version_id: int = 1
    content_hash: str = ""

    def __post_init__(self) -> None:
        self.content_hash = self.content_hash or hash_text(self.text)

    def replace_text(self, text: str) -> None:
        self.text = text
        self.content_hash = hash_text(text)
        self.dirty = True

    def snapshot(self) -> DocumentSnapshot:
        return DocumentSnapshot(
            self.text,
            self.selection,
            self.marks,
            self.document_id,
            self.version_id,
            self.content_hash,
        )


@dataclass(slots=True, frozen=True)
class DocumentSnapshot:
    """Immutable copy of a :class:`DocumentState` at one version."""

    text: str
    selection: SelectionRange
    marks: tuple[MarkSpan, ...]
    document_id: str
    version_id: int
    content_hash: str

    def has_mark(self, kind: str = PROVISIONAL_MARK) -> bool:
        return any(mark.kind == kind for mark in self.marks)

    def marked_text(self, kind: str = PROVISIONAL_MARK) -> list[str]:
        """Text under every ``kind`` mark, in document order."""

        return [mark.range.slice(self.text) for mark in self.marks if mark.kind == kind]


def normalize_marks(marks: Iterable[MarkSpan | Mapping[str, Any]]) -> tuple[MarkSpan, ...]:
    """Drop empty marks and fuse touching or overlapping marks of the same kind.

    The result is ordered by ``(start, end, kind)``.
    """

    by_kind: dict[str, list[MarkSpan]] = {}
    for item in marks:
        mark = item if isinstance(item, MarkSpan) else MarkSpan(
            int(item["start"]), int(item["end"]), str(item.get("kind", PROVISIONAL_MARK))
        )
        if mark.end > mark.start:
            by_kind.setdefault(mark.kind, []).append(mark)

    fused: list[MarkSpan] = []
    for kind, group in by_kind.items():
        group.sort(key=lambda mark: (mark.start, mark.end))
        current = group[0]
        for mark in group[1:]:
            if mark.start <= current.end:
                current = MarkSpan(current.start, max(current.end, mark.end), kind)
            else:
                fused.append(current)
                current = mark
        fused.append(current)
    return tuple(sorted(fused, key=lambda mark: (mark.start, mark.end, mark.kind)))


__all__ = [
    "PROVISIONAL_MARK",
    "DocumentSnapshot",
    "DocumentState",
    "MarkSpan",
    "SelectionRange",
    "hash_text",
    "normalize_marks",
]
