"""Tests for the document mutation protocol."""

from __future__ import annotations

import pytest

from ghostwriter.core.ranges import TextRange
from ghostwriter.editor.buffer import EditorBuffer
from ghostwriter.editor.document_model import PROVISIONAL_MARK, MarkSpan, SelectionRange
from ghostwriter.editor.mutator import DocumentMutator, MutationError, RevertUnavailable


class TestInsert:
    def test_insert_prefixes_separator_and_marks_span(self) -> None:
        buffer = EditorBuffer()
        mutator = DocumentMutator(buffer)

        span = mutator.insert("Hello world.", 0)

        assert span == TextRange(0, 13)
        assert buffer.text == " Hello world."
        assert buffer.marks == (MarkSpan(0, 13, PROVISIONAL_MARK),)
        assert buffer.selection == SelectionRange(13, 13)
        assert mutator.record is not None
        assert mutator.record.span == span

    def test_insert_in_the_middle(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        span = mutator.insert("lazy", 9)
        assert buffer.text == "The quick lazy brown fox"
        assert span.slice(buffer.text) == " lazy"

    def test_position_is_clamped_to_document(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        span = mutator.insert("jumps.", 500)
        assert span.start == 19
        assert buffer.text.endswith("fox jumps.")

    def test_empty_text_is_rejected(self, mutator: DocumentMutator) -> None:
        with pytest.raises(ValueError):
            mutator.insert("", 0)

    def test_only_one_pending_insertion(self, mutator: DocumentMutator) -> None:
        mutator.insert("one", 0)
        with pytest.raises(MutationError):
            mutator.insert("two", 0)

    def test_custom_separator(self) -> None:
        buffer = EditorBuffer("abc")
        mutator = DocumentMutator(buffer, separator="")
        assert mutator.insert("def", 3) == TextRange(3, 6)
        assert buffer.text == "abcdef"


class TestFinalize:
    def test_finalize_keeps_text_and_drops_mark(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        span = mutator.insert("jumps.", 19)
        text_before = buffer.text

        mutator.finalize(span)

        assert buffer.text == text_before
        assert buffer.marks == ()
        assert mutator.record is None

    def test_finalize_without_mark_is_noop(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        version = buffer.version
        mutator.finalize(TextRange(0, 3))
        assert buffer.version == version


class TestRevert:
    def test_revert_restores_text_and_selection(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        buffer.set_selection((9, 9))
        span = mutator.insert("lazy", 9)

        mutator.revert(span)

        assert buffer.text == "The quick brown fox"
        assert buffer.selection == SelectionRange(9, 9)
        assert buffer.marks == ()
        assert mutator.record is None

    def test_revert_preserves_edits_outside_the_span(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        span = mutator.insert("lazy", 9)
        buffer.insert_text("Oh! ", 0)
        buffer.insert_text(" Indeed.", len(buffer))
        moved = TextRange(span.start + 4, span.end + 4)

        mutator.revert(moved)

        assert buffer.text == "Oh! The quick brown fox Indeed."

    def test_revert_removes_text_typed_inside_the_span(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        span = mutator.insert("lazy", 9)
        buffer.insert_text("XX", span.start + 2)

        mutator.revert(TextRange(span.start, span.end + 2))

        assert buffer.text == "The quick brown fox"

    def test_revert_rejects_mismatched_range(self, mutator: DocumentMutator) -> None:
        span = mutator.insert("lazy", 9)
        with pytest.raises(RevertUnavailable) as excinfo:
            mutator.revert(TextRange(span.start + 1, span.end + 1))
        assert excinfo.value.reason == "range-mismatch"
        assert mutator.record is not None

    def test_revert_without_record(self, mutator: DocumentMutator) -> None:
        with pytest.raises(RevertUnavailable) as excinfo:
            mutator.revert(TextRange(0, 3))
        assert excinfo.value.reason == "no-record"

    def test_revert_after_document_replaced(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        span = mutator.insert("lazy", 9)
        buffer.load_document("Something else entirely")
        with pytest.raises(RevertUnavailable) as excinfo:
            mutator.revert(span)
        assert excinfo.value.reason == "document-replaced"
        assert buffer.text == "Something else entirely"

    def test_revert_outlasts_the_map_log(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        buffer.MAX_MAP_LOG = 1
        buffer.set_selection((9, 9))
        span = mutator.insert("lazy", 9)
        for _ in range(5):
            buffer.insert_text("x", 0)
        assert buffer.mapping_since(mutator.record.version) is None

        mutator.revert(TextRange(span.start + 5, span.end + 5))

        assert buffer.text == "xxxxxThe quick brown fox"
        assert buffer.selection == SelectionRange(14, 14)
        assert mutator.record is None

    def test_record_follows_edits_inside_the_span(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        mutator.insert("lazy", 9)
        buffer.delete_range(11, 13)
        assert mutator.record is not None
        assert mutator.record.span == TextRange(9, 12)

    def test_revert_after_span_deleted(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        span = mutator.insert("lazy", 9)
        buffer.delete_range(span.start, span.end)
        with pytest.raises(RevertUnavailable) as excinfo:
            mutator.revert(TextRange(span.start, span.start + 1))
        assert excinfo.value.reason == "span-deleted"


class TestStripMarks:
    def test_strip_removes_marks_and_record(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        mutator.insert("jumps.", 19)
        mutator.strip_provisional_marks()
        assert buffer.marks == ()
        assert mutator.record is None
        assert buffer.text.endswith(" jumps.")

    def test_forget_keeps_document(self, buffer: EditorBuffer, mutator: DocumentMutator) -> None:
        mutator.insert("jumps.", 19)
        mutator.forget()
        assert mutator.record is None
        assert buffer.snapshot().has_mark()
