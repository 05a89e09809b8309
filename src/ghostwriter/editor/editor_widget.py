"""``QPlainTextEdit`` front-end for :class:`~ghostwriter.editor.buffer.EditorBuffer`.

The buffer is authoritative for text, selection and provisional marks.
Buffer changes are pushed into Qt (provisional spans rendered as italic
on a pale yellow background); Qt ``contentsChange`` notifications are
turned back into ``user``-origin transactions so undo and version
tracking stay in one place. Without PySide6 the widget is a plain object
exposing the same buffer-facing API.
"""

from __future__ import annotations

import contextlib
from typing import Any, Iterator, Mapping, Protocol, Sequence

from ..core.ranges import TextRange
from ..ui.events import DocumentModified
from .buffer import ORIGIN_USER, BufferChange, EditorBuffer
from .document_model import PROVISIONAL_MARK, DocumentState, SelectionRange

try:  # pragma: no cover - exercised only where PySide6 is installed
    from PySide6 import QtGui, QtWidgets
except ImportError:  # pragma: no cover - headless installs
    QtGui = None  # type: ignore[assignment]
    QtWidgets = None  # type: ignore[assignment]

_WidgetBase: Any = QtWidgets.QWidget if QtWidgets is not None else object

PROVISIONAL_BACKGROUND = (255, 243, 196)
PROVISIONAL_FOREGROUND = (96, 96, 104)


class SelectionListener(Protocol):
    def __call__(self, selection: SelectionRange) -> None:
        ...


class EditorWidget(_WidgetBase):
    """Text editing surface bound to one buffer and, optionally, an event bus.

    Every buffer change publishes :class:`DocumentModified` on ``event_bus``.
    Read-only mode rejects edits made through this widget (``PermissionError``)
    while programmatic buffer edits keep flowing.
    """

    def __init__(
        self,
        parent: Any | None = None,
        *,
        buffer: EditorBuffer | None = None,
        event_bus: Any | None = None,
    ) -> None:
        if QtWidgets is not None:
            super().__init__(parent)
        self._buffer = buffer or EditorBuffer()
        self._bus = event_bus
        self._readonly = False
        self._listeners: list[SelectionListener] = []
        self._last_change_origin = "init"
        self._mirroring = False
        self._provisional_format: Any = None
        self._qt_editor: Any = self._create_qt_editor()
        self._buffer.add_change_listener(self._on_buffer_change)

    def _create_qt_editor(self) -> Any:
        if QtWidgets is None or QtWidgets.QApplication.instance() is None:
            return None
        editor = QtWidgets.QPlainTextEdit(self)
        editor.setPlainText(self._buffer.text)
        # Undo history lives in the buffer.
        editor.setUndoRedoEnabled(False)
        editor.document().contentsChange.connect(self._on_qt_contents_change)
        editor.cursorPositionChanged.connect(self._on_qt_cursor_moved)
        editor.selectionChanged.connect(self._on_qt_cursor_moved)

        column = QtWidgets.QVBoxLayout(self)
        column.setContentsMargins(0, 0, 0, 0)
        column.addWidget(editor)
        return editor

    @property
    def buffer(self) -> EditorBuffer:
        return self._buffer

    @property
    def qt_editor(self) -> Any:
        """The ``QPlainTextEdit``, or ``None`` when running headless."""

        return self._qt_editor

    @property
    def last_change_origin(self) -> str:
        return self._last_change_origin

    # ------------------------------------------------------------------
    # Editing API
    # ------------------------------------------------------------------
    def set_readonly(self, readonly: bool) -> None:
        self._readonly = bool(readonly)
        if self._qt_editor is not None:
            self._qt_editor.setReadOnly(self._readonly)

    def is_readonly(self) -> bool:
        return self._readonly

    def load_document(self, document: DocumentState | str) -> None:
        self._buffer.load_document(document)

    def to_document(self) -> DocumentState:
        return self._buffer.to_document()

    def text(self) -> str:
        return self._buffer.text

    def cursor_position(self) -> int:
        """Caret offset used as the anchor for continuation requests."""

        return self._buffer.selection.end

    def selection_range(self) -> SelectionRange:
        return self._buffer.selection

    def set_selection(self, selection: SelectionRange | TextRange | Mapping[str, Any] | Sequence[int]) -> None:
        self._buffer.set_selection(SelectionRange.from_value(selection))
        self._mirror_selection()
        self._notify_selection()

    def type_text(self, text: str, position: int | None = None) -> BufferChange:
        """Insert ``text`` as the user would, at the caret unless ``position`` is given."""

        self._require_writable()
        return self._buffer.insert_text(text, position, origin=ORIGIN_USER)

    def delete_text(self, start: int, end: int) -> BufferChange:
        self._require_writable()
        return self._buffer.delete_range(start, end, origin=ORIGIN_USER)

    def undo(self) -> None:
        self._buffer.undo()

    def redo(self) -> None:
        self._buffer.redo()

    def provisional_spans(self) -> tuple[TextRange, ...]:
        return tuple(mark.range for mark in self._buffer.marks if mark.kind == PROVISIONAL_MARK)

    def add_selection_listener(self, listener: SelectionListener) -> None:
        self._listeners.append(listener)

    def apply_font(self, family: str | None, size: int | None = None) -> None:
        if self._qt_editor is None or not family:
            return
        font = QtGui.QFont(family)
        if size:
            font.setPointSize(int(size))
        self._qt_editor.setFont(font)

    def _require_writable(self) -> None:
        if self._readonly:
            raise PermissionError("Editor is read-only")

    def _notify_selection(self) -> None:
        current = self._buffer.selection
        for listener in tuple(self._listeners):
            listener(current)

    # ------------------------------------------------------------------
    # Buffer to Qt
    # ------------------------------------------------------------------
    def _on_buffer_change(self, change: BufferChange) -> None:
        self._last_change_origin = change.origin
        snapshot = change.snapshot
        if self._qt_editor is not None:
            text_differs = self._qt_editor.toPlainText() != snapshot.text
            if text_differs:
                with self._qt_guard():
                    self._qt_editor.setPlainText(snapshot.text)
            # Typing already placed Qt's caret.
            if text_differs or change.origin != ORIGIN_USER:
                self._mirror_selection()
            self._paint_provisional_spans()
        if self._bus is not None:
            self._bus.publish(
                DocumentModified(snapshot.document_id, snapshot.version_id, snapshot.content_hash, change.origin)
            )

    def _mirror_selection(self) -> None:
        if self._qt_editor is None:
            return
        with self._qt_guard():
            self._qt_editor.setTextCursor(self._cursor_over(self._buffer.selection))

    def _paint_provisional_spans(self) -> None:
        painted = []
        for span in self.provisional_spans():
            extra = QtWidgets.QTextEdit.ExtraSelection()
            extra.cursor = self._cursor_over(span)
            extra.format = self._highlight_format()
            painted.append(extra)
        self._qt_editor.setExtraSelections(painted)

    def _highlight_format(self) -> Any:
        if self._provisional_format is None:
            fmt = QtGui.QTextCharFormat()
            fmt.setBackground(QtGui.QColor(*PROVISIONAL_BACKGROUND))
            fmt.setForeground(QtGui.QColor(*PROVISIONAL_FOREGROUND))
            fmt.setFontItalic(True)
            self._provisional_format = fmt
        return self._provisional_format

    def _cursor_over(self, span: SelectionRange | TextRange) -> Any:
        cursor = self._qt_editor.textCursor()
        cursor.setPosition(span.start)
        cursor.setPosition(span.end, QtGui.QTextCursor.MoveMode.KeepAnchor)
        return cursor

    @contextlib.contextmanager
    def _qt_guard(self) -> Iterator[None]:
        """Suppress the Qt to buffer direction while the buffer writes into Qt."""

        self._mirroring = True
        try:
            yield
        finally:
            self._mirroring = False

    # ------------------------------------------------------------------
    # Qt to buffer
    # ------------------------------------------------------------------
    def _on_qt_contents_change(self, position: int, removed: int, added: int) -> None:
        if self._mirroring or self._qt_editor is None:
            return
        start, end, inserted = _resolve_edit(self._buffer.text, self._qt_editor.toPlainText(), position, removed, added)
        if start == end and not inserted:
            return
        caret = self._qt_editor.textCursor()
        tx = self._buffer.transaction(ORIGIN_USER).replace(start, end, inserted)
        tx.set_selection(SelectionRange(caret.selectionStart(), caret.selectionEnd()))
        self._buffer.apply(tx)

    def _on_qt_cursor_moved(self) -> None:
        if self._mirroring or self._qt_editor is None:
            return
        if self._qt_editor.toPlainText() != self._buffer.text:
            # Text edit still in flight; contentsChange carries the selection.
            return
        caret = self._qt_editor.textCursor()
        self._buffer.set_selection(SelectionRange(caret.selectionStart(), caret.selectionEnd()))
        self._notify_selection()


def _resolve_edit(old: str, new: str, position: int, removed: int, added: int) -> tuple[int, int, str]:
    """Return ``(start, end, inserted)`` turning ``old`` into ``new``.

    Qt's ``contentsChange`` counts are trusted when they reproduce ``new``;
    otherwise the edit is recovered from the common prefix and suffix.
    """

    if 0 <= position <= len(old) and position + removed <= len(old):
        inserted = new[position : position + added]
        if old[:position] + inserted + old[position + removed :] == new:
            return position, position + removed, inserted

    shared = min(len(old), len(new))
    head = 0
    while head < shared and old[head] == new[head]:
        head += 1
    tail = 0
    while tail < shared - head and old[-1 - tail] == new[-1 - tail]:
        tail += 1
    return head, len(old) - tail, new[head : len(new) - tail]


__all__ = ["EditorWidget", "SelectionListener"]
