"""Translate user gestures into generation coordinator events."""

from __future__ import annotations

import logging
from typing import Callable, Mapping

from .domain.generation_coordinator import GenerationCoordinator
from .models.actions import ToolbarSpec, WindowAction
from .models.generation_models import GenerationState

LOGGER = logging.getLogger(__name__)

CONTINUE = "continue"
ACCEPT = "accept"
DISCARD = "discard"
RETRY = "retry"
DISMISS = "dismiss"

COMMANDS: tuple[str, ...] = (CONTINUE, ACCEPT, DISCARD, RETRY, DISMISS)

DEFAULT_SHORTCUTS: Mapping[str, str] = {
    CONTINUE: "Ctrl+K",
    ACCEPT: "Ctrl+Return",
    DISCARD: "Escape",
    RETRY: "Ctrl+R",
}

_LABELS: Mapping[str, tuple[str, str]] = {
    CONTINUE: ("Continue Writing", "Ask the AI to continue from the cursor"),
    ACCEPT: ("Accept", "Keep the suggested text"),
    DISCARD: ("Discard", "Remove the suggested text"),
    RETRY: ("Retry", "Repeat the failed request"),
    DISMISS: ("Dismiss", "Clear the error"),
}

_VALID_STATES: Mapping[str, tuple[GenerationState, ...]] = {
    CONTINUE: (GenerationState.IDLE, GenerationState.ERROR),
    ACCEPT: (GenerationState.REVIEW,),
    DISCARD: (GenerationState.REVIEW,),
    RETRY: (GenerationState.ERROR,),
    DISMISS: (GenerationState.ERROR,),
}

TOOLBAR = ToolbarSpec(name="generation", actions=COMMANDS)


class CommandDispatcher:
    """Boundary between buttons/shortcuts and the coordinator.

    ``dispatch`` returns ``False`` (without raising) when a command would be
    ignored by the coordinator in its current state.
    """

    def __init__(
        self,
        coordinator: GenerationCoordinator,
        *,
        cursor_provider: Callable[[], int],
        shortcuts: Mapping[str, str] | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._cursor_provider = cursor_provider
        merged = dict(DEFAULT_SHORTCUTS)
        if shortcuts:
            merged.update(shortcuts)
        self._shortcuts = merged
        self._chords = {_normalize_chord(chord): name for name, chord in merged.items() if chord}

    @property
    def shortcuts(self) -> Mapping[str, str]:
        return dict(self._shortcuts)

    def can_dispatch(self, command: str) -> bool:
        states = _VALID_STATES.get(command)
        if states is None:
            return False
        return self._coordinator.state in states

    def dispatch(self, command: str) -> bool:
        """Send ``command`` to the coordinator; ``False`` when rejected."""

        if command not in _VALID_STATES:
            raise ValueError(f"Unknown command '{command}'")
        if not self.can_dispatch(command):
            LOGGER.debug("Command %s rejected in state %s", command, self._coordinator.state.value)
            return False
        if command == CONTINUE:
            cursor = max(0, int(self._cursor_provider()))
            self._coordinator.request_continue(cursor)
        elif command == ACCEPT:
            self._coordinator.accept()
        elif command == DISCARD:
            self._coordinator.discard()
        elif command == RETRY:
            self._coordinator.retry()
        else:
            self._coordinator.dismiss()
        return True

    def handle_shortcut(self, chord: str) -> bool:
        """Dispatch the command bound to ``chord``; ``False`` when unbound or rejected."""

        command = self._chords.get(_normalize_chord(chord))
        if command is None:
            return False
        return self.dispatch(command)

    def build_actions(self) -> dict[str, WindowAction]:
        actions: dict[str, WindowAction] = {}
        for name in COMMANDS:
            text, tip = _LABELS[name]
            actions[name] = WindowAction(
                name=name,
                text=text,
                shortcut=self._shortcuts.get(name),
                status_tip=tip,
                callback=lambda command=name: self.dispatch(command),
            )
        return actions


def _normalize_chord(chord: str) -> str:
    parts = [part.strip().lower() for part in chord.replace("-", "+").split("+") if part.strip()]
    aliases = {"control": "ctrl", "cmd": "meta", "enter": "return", "esc": "escape"}
    parts = [aliases.get(part, part) for part in parts]
    modifiers = sorted(part for part in parts[:-1])
    return "+".join([*modifiers, parts[-1]]) if parts else ""


__all__ = [
    "ACCEPT",
    "COMMANDS",
    "CONTINUE",
    "CommandDispatcher",
    "DEFAULT_SHORTCUTS",
    "DISCARD",
    "DISMISS",
    "RETRY",
    "TOOLBAR",
]
