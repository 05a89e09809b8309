"""Editor package: headless buffer engine, mutation protocol and Qt widget."""

from .buffer import BufferChange, EditorBuffer, Transaction
from .document_model import PROVISIONAL_MARK, DocumentSnapshot, DocumentState, MarkSpan, SelectionRange
from .mapping import Mapping, StepMap
from .mutator import DocumentMutator, MutationError, RevertUnavailable
from .pending_range import PendingRangeTracker, RangeLost

__all__ = [
    "BufferChange",
    "DocumentMutator",
    "DocumentSnapshot",
    "DocumentState",
    "EditorBuffer",
    "Mapping",
    "MarkSpan",
    "MutationError",
    "PROVISIONAL_MARK",
    "PendingRangeTracker",
    "RangeLost",
    "RevertUnavailable",
    "SelectionRange",
    "StepMap",
    "Transaction",
]
