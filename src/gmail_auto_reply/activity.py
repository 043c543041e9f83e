"""Bounded in-memory activity feed."""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from datetime import datetime

from .constants import ACTIVITY_LIMIT
from .models import ActivityEvent

logger = logging.getLogger(__name__)

_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "skip": logging.INFO,
    "success": logging.INFO,
}


class ActivityRecorder:
    """Newest-first feed of pipeline transitions, capped at ``limit`` entries."""

    def __init__(self, limit: int = ACTIVITY_LIMIT) -> None:
        self._events: deque[ActivityEvent] = deque(maxlen=limit)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def append(self, message: str, kind: str = "info", details: dict | None = None) -> ActivityEvent:
        with self._lock:
            event = ActivityEvent(
                id=next(self._ids),
                timestamp=datetime.now().isoformat(),
                message=message,
                kind=kind,
                details=details,
            )
            self._events.appendleft(event)
        logger.log(_LEVELS.get(kind, logging.DEBUG), "%s", message)
        return event

    def recent(self, limit: int | None = None) -> list[ActivityEvent]:
        with self._lock:
            events = list(self._events)
        return events[:limit] if limit is not None else events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
