"""Position mapping through document edits.

Every change to an :class:`~ghostwriter.editor.buffer.EditorBuffer` is
described by one or more :class:`StepMap` instances. A step map records that
the half-open span ``[start, end)`` of the old document was replaced by
``inserted`` characters. Offsets captured before the change can be carried
into the new coordinate space with :meth:`StepMap.map`; a sequence of step
maps is composed by :class:`Mapping`.

``assoc`` decides which side an offset sticks to when text is inserted
exactly at it: ``-1`` keeps the offset before the inserted text, ``1`` moves
it after.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

ASSOC_LEFT = -1
ASSOC_RIGHT = 1


@dataclass(slots=True, frozen=True)
class MapResult:
    """Outcome of mapping a single offset."""

    pos: int
    deleted: bool = False


@dataclass(slots=True, frozen=True)
class StepMap:
    """Replacement of ``[start, end)`` by ``inserted`` characters."""

    start: int
    end: int
    inserted: int = 0

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start or self.inserted < 0:
            raise ValueError(
                f"Invalid step map: start={self.start} end={self.end} inserted={self.inserted}"
            )

    @property
    def removed(self) -> int:
        return self.end - self.start

    @property
    def delta(self) -> int:
        """Net change in document length."""

        return self.inserted - self.removed

    @property
    def is_identity(self) -> bool:
        return self.removed == 0 and self.inserted == 0

    def map(self, pos: int, assoc: int = ASSOC_RIGHT) -> int:
        return self.map_result(pos, assoc).pos

    def map_result(self, pos: int, assoc: int = ASSOC_RIGHT) -> MapResult:
        if self.is_identity or pos < self.start:
            return MapResult(pos)
        if pos > self.end:
            return MapResult(pos + self.delta)
        if self.removed == 0:
            side = assoc
        elif pos == self.start:
            side = ASSOC_LEFT
        elif pos == self.end:
            side = ASSOC_RIGHT
        else:
            side = assoc
        deleted = self.start < pos < self.end
        mapped = self.start if side < 0 else self.start + self.inserted
        return MapResult(mapped, deleted=deleted)


@dataclass(slots=True)
class Mapping:
    """Ordered composition of step maps."""

    maps: list[StepMap] = field(default_factory=list)

    def __iter__(self) -> Iterator[StepMap]:
        return iter(self.maps)

    def __len__(self) -> int:
        return len(self.maps)

    def __bool__(self) -> bool:
        return any(not step.is_identity for step in self.maps)

    def append(self, step: StepMap) -> None:
        self.maps.append(step)

    def extend(self, steps: Iterable[StepMap]) -> None:
        self.maps.extend(steps)

    def map(self, pos: int, assoc: int = ASSOC_RIGHT) -> int:
        return self.map_result(pos, assoc).pos

    def map_result(self, pos: int, assoc: int = ASSOC_RIGHT) -> MapResult:
        deleted = False
        for step in self.maps:
            result = step.map_result(pos, assoc)
            pos = result.pos
            deleted = deleted or result.deleted
        return MapResult(pos, deleted=deleted)

    @classmethod
    def identity(cls) -> Mapping:
        return cls()


__all__ = ["ASSOC_LEFT", "ASSOC_RIGHT", "MapResult", "Mapping", "StepMap"]
