"""Event bus carrying document and generation notifications.

The coordinator and the editor widget publish here; the window, the status
line and tests subscribe without holding references to the publishers.
Delivery is synchronous, in subscription order, on the Qt/asyncio thread.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    Subclasses are ``@dataclass(slots=True)`` records, for example::

        @dataclass(slots=True)
        class SuggestionAccepted(Event):
            start: int
            end: int
    """


# Published on every keystroke; delivery is not logged.
_QUIET_EVENT_TYPES: set[type[Event]] = set()


# =============================================================================
# Document Events
# =============================================================================


@dataclass(slots=True)
class DocumentModified(Event):
    """Emitted after every applied edit to the editor buffer.

    Attributes:
        document_id: Identifier of the edited document.
        version_id: Buffer version after the edit.
        content_hash: Hash of the new content for change detection.
        origin: ``user``, ``programmatic`` or ``history``.
    """

    document_id: str
    version_id: int
    content_hash: str
    origin: str = "user"


_QUIET_EVENT_TYPES.add(DocumentModified)


# =============================================================================
# Generation Events
# =============================================================================


@dataclass(slots=True)
class GenerationStateChanged(Event):
    """Emitted on every coordinator transition.

    Attributes:
        state: Name of the state entered.
        previous: Name of the state left.
        generation_id: Identifier of the latest generation request.
    """

    state: str
    previous: str
    generation_id: int = 0


@dataclass(slots=True)
class SuggestionInserted(Event):
    """Emitted when a continuation was placed in the document for review."""

    start: int
    end: int
    text: str
    generation_id: int


@dataclass(slots=True)
class SuggestionAccepted(Event):
    start: int
    end: int


@dataclass(slots=True)
class SuggestionDiscarded(Event):
    """Emitted when a suggestion left the document.

    Attributes:
        start: Start of the removed span (before removal).
        end: End of the removed span (before removal).
        implicit: True when the user's own edit deleted the span.
    """

    start: int
    end: int
    implicit: bool = False


@dataclass(slots=True)
class GenerationErrorRaised(Event):
    """Emitted when a generation request failed."""

    error_code: str
    message: str
    retryable: bool = True


@dataclass(slots=True)
class DocumentIntegrityAlert(Event):
    """Emitted when a suggestion could not be removed exactly.

    The document may not match what the user expects; presentation should
    flag this more prominently than a generation error.
    """

    reason: str
    message: str


@dataclass(slots=True)
class FallbackGenerationUsed(Event):
    """Emitted when the substitute client served a request in place of the service."""

    reason: str
    count: int


@dataclass(slots=True)
class StatusMessage(Event):
    message: str
    timeout_ms: int = 0




# =============================================================================
# Event Bus
# =============================================================================


class EventBus(Generic[E]):
    """Typed publish/subscribe hub keyed by exact event class.

    Bound methods are held weakly, so a closed window drops out of the bus
    without unsubscribing; functions and other callables are held strongly.
    A handler that raises is logged and does not stop delivery to the rest.

    Example::

        bus = EventBus()
        unsubscribe = bus.subscribe(SuggestionAccepted, on_accepted)
        bus.publish(SuggestionAccepted(start=0, end=13))
        unsubscribe()
    """

    __slots__ = ("_subscriptions",)

    def __init__(self) -> None:
        self._subscriptions: defaultdict[type[Event], list[_Subscription]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> Callable[[], None]:
        """Deliver ``event_type`` events to ``handler``; returns an unsubscribe callable.

        Subscribing the same handler twice delivers each event twice.
        """

        subscription = _Subscription.wrap(handler)
        self._subscriptions[event_type].append(subscription)
        logger.debug("%s subscribed to %s", _describe(handler), event_type.__name__)

        def _unsubscribe() -> None:
            entries = self._subscriptions.get(event_type)
            if entries and subscription in entries:
                entries.remove(subscription)

        return _unsubscribe

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Drop the earliest subscription of ``handler``; unknown handlers are ignored."""

        entries = self._subscriptions.get(event_type, [])
        match = next((entry for entry in entries if entry.refers_to(handler)), None)
        if match is not None:
            entries.remove(match)
            logger.debug("%s unsubscribed from %s", _describe(handler), event_type.__name__)

    def publish(self, event: E) -> int:
        """Deliver ``event`` synchronously; returns how many handlers ran."""

        event_type = type(event)
        entries = self._subscriptions.get(event_type)
        if not entries:
            return 0
        if event_type not in _QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(entries))

        delivered = 0
        for entry in tuple(entries):
            handler = entry.target()
            if handler is None:
                if entry in entries:
                    entries.remove(entry)
                continue
            delivered += 1
            try:
                handler(event)
            except Exception:
                logger.exception("%s failed while handling %s", _describe(handler), event_type.__name__)
        return delivered

    def clear(self) -> None:
        self._subscriptions.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Live subscriptions for ``event_type``, or across all types when ``None``."""

        if event_type is not None:
            return len(self._subscriptions.get(event_type, ()))
        return sum(len(entries) for entries in self._subscriptions.values())


@dataclass(slots=True, eq=False)
class _Subscription:
    """One registered handler, weakly referenced when it is a bound method."""

    target: Callable[[], Any]

    @classmethod
    def wrap(cls, handler: Handler) -> _Subscription:
        if getattr(handler, "__self__", None) is not None and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler))
            except TypeError:
                pass
        return cls(lambda: handler)

    def refers_to(self, handler: Handler) -> bool:
        current = self.target()
        return current is not None and current == handler


def _describe(handler: Any) -> str:
    owner = getattr(handler, "__self__", None)
    func = getattr(handler, "__func__", None)
    if owner is not None and func is not None:
        return f"{type(owner).__name__}.{func.__name__}"
    return getattr(handler, "__qualname__", None) or repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "DocumentModified",
    "GenerationStateChanged",
    "SuggestionInserted",
    "SuggestionAccepted",
    "SuggestionDiscarded",
    "GenerationErrorRaised",
    "DocumentIntegrityAlert",
    "FallbackGenerationUsed",
    "StatusMessage",
]
