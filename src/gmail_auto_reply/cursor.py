"""Tracks the worker's position in the mailbox change log."""

from __future__ import annotations

import logging

from .errors import InvariantViolation

logger = logging.getLogger(__name__)


def to_cursor(value: int | str) -> int:
    """Normalize a Gmail historyId (sent as a decimal string) to an int."""
    return int(value)


class CursorTracker:
    """Owns the last processed history position.

    The cursor only ever moves forward. ``initialize`` and ``reset`` place it
    without replaying anything behind it.
    """

    def __init__(self) -> None:
        self._cursor: int | None = None

    @property
    def current(self) -> int | None:
        return self._cursor

    @property
    def is_initialized(self) -> bool:
        return self._cursor is not None

    def initialize(self, position: int | str) -> None:
        """Start tracking at ``position`` without processing history before it."""
        self._cursor = to_cursor(position)
        logger.info("Initialized history tracking at %d", self._cursor)

    def reset(self, position: int | str) -> None:
        """Re-initialize after the mailbox reported the cursor as invalid.

        Events between the old cursor and ``position`` are never processed.
        """
        old = self._cursor
        self._cursor = to_cursor(position)
        logger.warning(
            "History cursor %s invalidated, reset to %d; skipped events in the gap",
            old,
            self._cursor,
        )

    def advance(self, position: int | str) -> bool:
        """Move forward to ``position``. Returns False for no-ops."""
        try:
            new = to_cursor(position)
            if self._cursor is None:
                raise InvariantViolation("advance() before initialize()")
            if new < self._cursor:
                raise InvariantViolation(f"cursor regression {self._cursor} -> {new}")
        except (InvariantViolation, ValueError, TypeError) as exc:
            logger.error("Ignoring cursor update to %r: %s", position, exc)
            return False
        if new == self._cursor:
            return False
        self._cursor = new
        return True
