# solver/errors.py
from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised by the constraint engine."""


class InvariantViolation(EngineError, AssertionError):
    """
    The committed history is inconsistent with the revealed clues.

    This can only come from a bug in move validation and is never handled by
    the engine itself.
    """


class SolveCancelled(EngineError):
    """A search was abandoned through its cancel token."""
