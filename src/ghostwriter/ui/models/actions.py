"""UI action data structures used by the main window and the dispatcher."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(slots=True)
class WindowAction:
    """Represents a high-level action exposed through toolbars and shortcuts."""

    name: str
    text: str
    shortcut: str | None = None
    status_tip: str | None = None
    callback: Callable[[], Any] | None = None

    def trigger(self) -> Any:
        """Invoke the registered callback, if available."""

        if self.callback is not None:
            return self.callback()
        return None


@dataclass(slots=True)
class ToolbarSpec:
    """Declarative toolbar definition used for headless + Qt builds."""

    name: str
    actions: tuple[str, ...]


__all__ = [
    "WindowAction",
    "ToolbarSpec",
]
