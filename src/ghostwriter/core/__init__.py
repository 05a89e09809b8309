"""Core domain types and utilities shared by the editor and the coordinator."""

from .ranges import TextRange

__all__ = ["TextRange"]
