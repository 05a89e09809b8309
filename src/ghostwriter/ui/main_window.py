"""Main window: editor, generation toolbar and status line.

The window contains no workflow logic; toolbar actions and shortcuts go
through :class:`CommandDispatcher` and the status line reacts to events
published by the generation coordinator.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from .command_dispatcher import ACCEPT, CONTINUE, DISCARD, DISMISS, RETRY, TOOLBAR, CommandDispatcher
from .events import (
    DocumentIntegrityAlert,
    EventBus,
    FallbackGenerationUsed,
    GenerationErrorRaised,
    GenerationStateChanged,
    StatusMessage,
)
from .models.actions import WindowAction
from .models.generation_models import GenerationState

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..editor.editor_widget import EditorWidget
    from .domain.generation_coordinator import GenerationCoordinator

LOGGER = logging.getLogger(__name__)

WINDOW_APP_NAME = "Ghostwriter"

# Qt imports with headless fallback
try:  # pragma: no cover - PySide6 optional in CI
    from PySide6.QtGui import QAction, QKeySequence
    from PySide6.QtWidgets import QLabel, QMainWindow, QMessageBox

    _QT_AVAILABLE = True
except Exception:  # pragma: no cover - runtime stubs keep tests headless
    _QT_AVAILABLE = False
    QAction = None  # type: ignore[assignment,misc]
    QKeySequence = None  # type: ignore[assignment,misc]
    QLabel = None  # type: ignore[assignment,misc]
    QMessageBox = None  # type: ignore[assignment,misc]

    class QMainWindow:  # type: ignore[no-redef]
        """Stub for headless testing."""

        def __init__(self, *args: object, **kwargs: object) -> None:
            pass

        def setWindowTitle(self, title: str) -> None:
            pass

        def setCentralWidget(self, widget: Any) -> None:
            pass

        def show(self) -> None:
            pass

        def close(self) -> None:
            pass


_STATE_MESSAGES: dict[GenerationState, str] = {
    GenerationState.IDLE: "Ready. Press {continue} to continue writing.",
    GenerationState.GENERATING: "Generating continuation...",
    GenerationState.REVIEW: "Suggestion ready: {accept} to accept, {discard} to discard.",
}


class MainWindow(QMainWindow):
    """Thin presentation shell for the editor window."""

    def __init__(
        self,
        event_bus: EventBus,
        coordinator: GenerationCoordinator,
        editor: EditorWidget,
        *,
        dispatcher: CommandDispatcher | None = None,
        skip_widgets: bool = False,
    ) -> None:
        super().__init__()
        self._event_bus = event_bus
        self._coordinator = coordinator
        self._editor = editor
        self._dispatcher = dispatcher or CommandDispatcher(coordinator, cursor_provider=editor.cursor_position)
        self._actions: dict[str, WindowAction] = self._dispatcher.build_actions()
        self._qt_actions: dict[str, Any] = {}
        self._status_label: Any = None
        self._status_text = ""
        self._alerts: list[str] = []

        if not skip_widgets and _QT_AVAILABLE:
            self._setup_chrome()

        self._event_bus.subscribe(GenerationStateChanged, self._on_state_changed)
        self._event_bus.subscribe(GenerationErrorRaised, self._on_error_raised)
        self._event_bus.subscribe(DocumentIntegrityAlert, self._on_integrity_alert)
        self._event_bus.subscribe(FallbackGenerationUsed, self._on_fallback_used)
        self._event_bus.subscribe(StatusMessage, self._on_status_message)

        self.setWindowTitle(WINDOW_APP_NAME)
        self._refresh(self._coordinator.state)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def editor(self) -> EditorWidget:
        return self._editor

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    @property
    def actions(self) -> dict[str, WindowAction]:
        return self._actions

    @property
    def status_text(self) -> str:
        return self._status_text

    @property
    def alerts(self) -> tuple[str, ...]:
        """Integrity alerts shown during this session."""
        return tuple(self._alerts)

    def action_enabled(self, name: str) -> bool:
        return self._dispatcher.can_dispatch(name)

    # ------------------------------------------------------------------
    # Qt chrome
    # ------------------------------------------------------------------

    def _setup_chrome(self) -> None:
        qt_editor_host = self._editor if getattr(self._editor, "qt_editor", None) is not None else None
        if qt_editor_host is not None:
            self.setCentralWidget(qt_editor_host)

        toolbar = self.addToolBar(TOOLBAR.name)  # type: ignore[attr-defined]
        toolbar.setObjectName("generationToolbar")
        for name in TOOLBAR.actions:
            action = self._actions[name]
            qt_action = QAction(action.text, self)
            if action.shortcut:
                qt_action.setShortcut(QKeySequence(action.shortcut))
            if action.status_tip:
                qt_action.setStatusTip(action.status_tip)
            qt_action.triggered.connect(_trigger(action))  # type: ignore[attr-defined]
            toolbar.addAction(qt_action)
            self._qt_actions[name] = qt_action

        undo = QAction("Undo", self)
        undo.setShortcut(QKeySequence.StandardKey.Undo)
        undo.triggered.connect(lambda: self._editor.undo())  # type: ignore[attr-defined]
        self.addAction(undo)  # type: ignore[attr-defined]
        redo = QAction("Redo", self)
        redo.setShortcut(QKeySequence.StandardKey.Redo)
        redo.triggered.connect(lambda: self._editor.redo())  # type: ignore[attr-defined]
        self.addAction(redo)  # type: ignore[attr-defined]

        self._status_label = QLabel(self)
        self._status_label.setObjectName("generationStatus")
        self.statusBar().addPermanentWidget(self._status_label, 1)  # type: ignore[attr-defined]
        self.resize(900, 640)  # type: ignore[attr-defined]

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_state_changed(self, event: GenerationStateChanged) -> None:
        self._refresh(GenerationState(event.state))

    def _on_error_raised(self, event: GenerationErrorRaised) -> None:
        suffix = f" {self._shortcut_hint(RETRY)} to retry." if event.retryable else ""
        self._set_status(f"{event.message}{suffix}")

    def _on_integrity_alert(self, event: DocumentIntegrityAlert) -> None:
        self._alerts.append(event.message)
        self._set_status(event.message)
        if QMessageBox is not None and self._status_label is not None:
            QMessageBox.warning(self, WINDOW_APP_NAME, event.message)

    def _on_fallback_used(self, event: FallbackGenerationUsed) -> None:
        LOGGER.info("Substitute generation used (%s, total=%s)", event.reason, event.count)

    def _on_status_message(self, event: StatusMessage) -> None:
        self._set_status(event.message, timeout_ms=event.timeout_ms)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _refresh(self, state: GenerationState) -> None:
        for name, qt_action in self._qt_actions.items():
            qt_action.setEnabled(self._dispatcher.can_dispatch(name))
        if state is GenerationState.ERROR:
            message = self._coordinator.context.error_message or ""
            self._set_status(message)
            return
        template = _STATE_MESSAGES[state]
        self._set_status(
            template.format(
                **{
                    "continue": self._shortcut_hint(CONTINUE),
                    "accept": self._shortcut_hint(ACCEPT),
                    "discard": self._shortcut_hint(DISCARD),
                    "dismiss": self._shortcut_hint(DISMISS),
                }
            )
        )

    def _shortcut_hint(self, name: str) -> str:
        return self._actions[name].shortcut or self._actions[name].text

    def _set_status(self, message: str, *, timeout_ms: int = 0) -> None:
        self._status_text = message
        if self._status_label is not None:
            self._status_label.setText(message)
        elif timeout_ms:
            LOGGER.debug("Status (%sms): %s", timeout_ms, message)


def _trigger(action: WindowAction) -> Callable[..., Any]:
    def _invoke(*_args: Any) -> None:
        action.trigger()

    return _invoke


__all__ = ["MainWindow", "WINDOW_APP_NAME"]
