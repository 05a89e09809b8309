"""Tracks the span of the suggestion awaiting a user decision.

The tracker holds two kinds of offsets:

* the pending range, the span currently occupied by AI text while the
  suggestion is under review;
* the anchor, the caret offset a generation was requested at, while the
  request is still in flight (or failed and may be retried).

Both are expressed in the buffer's coordinate space at :attr:`version` and
must be remapped through every subsequent edit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..core.ranges import TextRange
from .mapping import ASSOC_LEFT, ASSOC_RIGHT, Mapping

LOGGER = logging.getLogger(__name__)


class RangeLost(Exception):
    """Raised when an edit removed the whole tracked span."""

    def __init__(self, span: TextRange, message: str | None = None) -> None:
        super().__init__(message or f"Pending range {span.to_tuple()} was deleted")
        self.span = span


@dataclass(slots=True)
class _Tracked:
    span: TextRange | None = None
    anchor: int | None = None
    version: int = 0


class PendingRangeTracker:
    """Keeps the pending range and the generation anchor in sync with edits."""

    def __init__(self) -> None:
        self._tracked = _Tracked()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def current(self) -> TextRange | None:
        return self._tracked.span

    @property
    def anchor(self) -> int | None:
        return self._tracked.anchor

    @property
    def version(self) -> int:
        """Buffer version the tracked offsets are expressed in."""

        return self._tracked.version

    def is_tracking(self) -> bool:
        return self._tracked.span is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def track(self, span: TextRange, version: int) -> None:
        """Start tracking ``span`` (replaces any anchor)."""

        if span.is_caret:
            raise ValueError("Cannot track an empty pending range")
        self._tracked = _Tracked(span=span, version=version)
        LOGGER.debug("Tracking pending range %s at version %s", span.to_tuple(), version)

    def track_anchor(self, position: int, version: int) -> None:
        if position < 0:
            raise ValueError("Anchor position must be non-negative")
        self._tracked = _Tracked(anchor=position, version=version)

    def clear(self) -> None:
        self._tracked = _Tracked()

    # ------------------------------------------------------------------
    # Remapping
    # ------------------------------------------------------------------
    def should_remap(self, version: int) -> bool:
        """Return ``True`` when ``version`` is newer than the tracked offsets."""

        return version > self._tracked.version

    def remap(self, mapping: Mapping, version: int) -> TextRange:
        """Carry the pending range through ``mapping``.

        The start sticks to the right and the end to the left, so text typed
        at either boundary stays outside the range while edits strictly
        inside grow or shrink it. Raises :class:`RangeLost` when the edit
        removed every character of the range; the tracker is cleared in that
        case.
        """

        span = self._tracked.span
        if span is None:
            raise RuntimeError("No pending range is being tracked")
        if not self.should_remap(version):
            return span

        for step in mapping:
            if step.is_identity:
                continue
            if step.removed and TextRange(step.start, step.end).covers(span):
                self.clear()
                raise RangeLost(span)
            start = step.map(span.start, ASSOC_RIGHT)
            end = step.map(span.end, ASSOC_LEFT)
            if end <= start:
                self.clear()
                raise RangeLost(span)
            span = TextRange(start, end)

        self._tracked.span = span
        self._tracked.version = version
        return span

    def remap_anchor(self, mapping: Mapping, version: int) -> int:
        """Carry the generation anchor through ``mapping``.

        Text typed at the anchor pushes it to the right so the continuation
        lands after what the user typed while waiting.
        """

        anchor = self._tracked.anchor
        if anchor is None:
            raise RuntimeError("No generation anchor is being tracked")
        if not self.should_remap(version):
            return anchor
        anchor = mapping.map(anchor, ASSOC_RIGHT)
        self._tracked.anchor = anchor
        self._tracked.version = version
        return anchor


__all__ = ["PendingRangeTracker", "RangeLost"]
