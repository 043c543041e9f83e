"""In-memory TTL state shared by the poll loop and the reaper.

Entries go stale passively: reads ignore anything past its TTL, but nothing
is removed on the hot path. ``reap()`` is called from an independent timer to
bound memory. Every store guards its map with a lock because the reaper runs
on its own thread.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .constants import DEDUP_TTL, RATE_WINDOW, SENDER_COOLDOWN

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class DedupCache:
    """Message ids processed within the last ``ttl`` seconds."""

    def __init__(self, ttl: float = DEDUP_TTL, clock: Clock = time.time) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def seen(self, message_id: str) -> bool:
        now = self._clock()
        with self._lock:
            processed_at = self._entries.get(message_id)
        return processed_at is not None and now - processed_at < self.ttl

    def mark(self, message_id: str) -> None:
        now = self._clock()
        with self._lock:
            self._entries[message_id] = now

    def reap(self) -> int:
        """Drop expired ids. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [mid for mid, at in self._entries.items() if now - at >= self.ttl]
            for mid in expired:
                del self._entries[mid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SenderCooldown:
    """Last reply time per sender address."""

    def __init__(self, window: float = SENDER_COOLDOWN, clock: Clock = time.time) -> None:
        self.window = window
        self._clock = clock
        self._last_reply: dict[str, float] = {}
        self._lock = threading.Lock()

    def active(self, sender: str) -> bool:
        """True while a reply to ``sender`` was sent less than ``window`` ago."""
        now = self._clock()
        with self._lock:
            last = self._last_reply.get(sender.lower())
        return last is not None and now - last < self.window

    def record(self, sender: str) -> None:
        now = self._clock()
        with self._lock:
            self._last_reply[sender.lower()] = now

    def reap(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [s for s, at in self._last_reply.items() if now - at >= self.window]
            for sender in expired:
                del self._last_reply[sender]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_reply)


@dataclass
class RateWindow:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window reply counter per user.

    A window opens on the first recorded send and closes ``window`` seconds
    later; ``reset_at`` is set once when the window opens and never moved.
    """

    def __init__(self, window: float = RATE_WINDOW, clock: Clock = time.time) -> None:
        self.window = window
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = threading.Lock()

    def _current(self, user: str, now: float) -> RateWindow | None:
        entry = self._windows.get(user)
        if entry is None or now > entry.reset_at:
            return None
        if entry.count < 0:
            logger.warning("Corrupted rate window for %s (count=%d), resetting", user, entry.count)
            del self._windows[user]
            return None
        return entry

    def allow(self, user: str, max_per_window: int) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._current(user, now)
            count = entry.count if entry else 0
        return count < max_per_window

    def record(self, user: str) -> int:
        """Count one successful send. Returns the count in the current window."""
        now = self._clock()
        with self._lock:
            entry = self._current(user, now)
            if entry is None:
                entry = RateWindow(count=0, reset_at=now + self.window)
                self._windows[user] = entry
            entry.count += 1
            return entry.count

    def snapshot(self, user: str) -> RateWindow:
        """Current count and reset time; an empty window if none is open."""
        now = self._clock()
        with self._lock:
            entry = self._current(user, now)
            if entry is None:
                return RateWindow(count=0, reset_at=now + self.window)
            return RateWindow(count=entry.count, reset_at=entry.reset_at)

    def reap(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [u for u, w in self._windows.items() if now > w.reset_at]
            for user in expired:
                del self._windows[user]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
