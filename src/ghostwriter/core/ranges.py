"""Character spans shared by the buffer, the mutator and the coordinator."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Iterator

_START_KEYS = ("start", "from")
_END_KEYS = ("end", "to")


@dataclass(slots=True, frozen=True)
class TextRange(Sequence[int]):
    """Half-open ``[start, end)`` span using absolute character offsets.

    Bounds are normalised on construction: reversed bounds are swapped and
    negative offsets clamp to ``0``. Unpacks like a ``(start, end)`` pair.
    """

    start: int
    end: int

    def __post_init__(self) -> None:
        low, high = sorted((_offset(self.start, "start"), _offset(self.end, "end")))
        object.__setattr__(self, "start", low)
        object.__setattr__(self, "end", high)

    # ------------------------------------------------------------------
    # Sequence protocol
    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return 2

    def __getitem__(self, index: int | slice) -> int | tuple[int, ...]:
        pair = self.to_tuple()
        if isinstance(index, slice):
            return pair[index]
        if index not in (0, 1):
            raise IndexError("TextRange index out of range")
        return pair[index]

    def __iter__(self) -> Iterator[int]:
        return iter(self.to_tuple())

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    @property
    def length(self) -> int:
        return self.end - self.start

    @property
    def is_caret(self) -> bool:
        return self.start == self.end

    def contains(self, position: int) -> bool:
        """``True`` when ``position`` lies strictly between the bounds."""

        return self.start < position < self.end

    def overlaps(self, other: TextRange) -> bool:
        """``True`` when both spans share at least one character."""

        return self.start < other.end and other.start < self.end

    def covers(self, other: TextRange) -> bool:
        return self.start <= other.start and other.end <= self.end

    def clamp(self, *, lower: int = 0, upper: int | None = None) -> TextRange:
        """Pull both bounds into ``[lower, upper]``."""

        ceiling = max(self.end, lower) if upper is None else upper
        return TextRange(min(max(self.start, lower), ceiling), min(max(self.end, lower), ceiling))

    def slice(self, text: str) -> str:
        return text[self.start : self.end]

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------
    def to_tuple(self) -> tuple[int, int]:
        return (self.start, self.end)

    def to_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def caret(cls, position: int) -> TextRange:
        return cls(position, position)

    @classmethod
    def from_value(cls, value: Any, *, fallback: tuple[int, int] | None = None) -> TextRange:
        """Coerce ``value`` into a :class:`TextRange`.

        Accepts another range, a ``{"start", "end"}`` (or ``from``/``to``)
        mapping, a two-item sequence, or any object exposing ``start`` and
        ``end``. ``fallback`` fills in ``None`` and missing mapping keys.
        """

        if isinstance(value, TextRange):
            return value
        if value is None:
            if fallback is None:
                raise ValueError("TextRange value is required")
            return cls(*fallback)
        if isinstance(value, Mapping):
            start = _first_present(value, _START_KEYS)
            end = _first_present(value, _END_KEYS)
            if start is None or end is None:
                if fallback is None:
                    raise ValueError("TextRange mappings require start and end keys")
                start = fallback[0] if start is None else start
                end = fallback[1] if end is None else end
            return cls(start, end)
        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            if len(value) != 2:
                raise ValueError("TextRange sequences must have exactly two entries")
            return cls(value[0], value[1])
        start, end = getattr(value, "start", None), getattr(value, "end", None)
        if start is None or end is None:
            raise TypeError(f"Cannot build a TextRange from {type(value).__name__}")
        return cls(start, end)


def _offset(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"TextRange {label} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"TextRange {label} must be an integer") from exc
    return max(0, number)


def _first_present(mapping: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return None


__all__ = ["TextRange"]
