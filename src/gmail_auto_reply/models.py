"""Data models for Gmail Auto Reply."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

from .constants import (
    DEFAULT_CATEGORIES,
    DEFAULT_MAX_REPLIES_PER_HOUR,
    DEFAULT_MIN_CONFIDENCE,
)

_FROM_RE = re.compile(r"^(.*?)\s*<([^>]+)>$")


def parse_from_header(from_value: str) -> tuple[str, str]:
    """Parse a From header into (display name, email address).

    Handles formats like:
      "John Doe <john@example.com>" -> ("John Doe", "john@example.com")
      "<john@example.com>"          -> ("", "john@example.com")
      "john@example.com"            -> ("", "john@example.com")
    """
    if not from_value:
        return ("", "")
    m = _FROM_RE.match(from_value.strip())
    if m:
        name = m.group(1).strip().strip('"').strip("'")
        return (name, m.group(2).strip())
    email = from_value.strip().strip("<>")
    return ("", email)


@dataclass(frozen=True)
class ChangeEvent:
    """A single entry from the mailbox change log."""

    message_id: str
    kind: str = "messageAdded"


@dataclass
class ChangeBatch:
    """Events newer than a cursor plus the position they lead to."""

    events: list[ChangeEvent] = field(default_factory=list)
    new_cursor: int = 0


@dataclass
class Message:
    """A fetched Gmail message reduced to what the reply pipeline needs."""

    id: str
    thread_id: str
    subject: str
    from_address: str  # Full From header value
    body_text: str = ""
    labels: list[str] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def sender_email(self) -> str:
        return parse_from_header(self.from_address)[1].lower()

    def header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default


@dataclass(frozen=True)
class Classification:
    """Structured verdict returned by the classification service."""

    category: str
    is_business: bool
    priority: str = "medium"
    urgency: bool = False
    confidence: float = 0.0
    summary: str = ""
    suggested_reply: str | None = None


@dataclass(frozen=True)
class AutoReplyConfig:
    """Per-user auto-reply settings, read as one snapshot per pipeline run."""

    enabled: bool = False
    allowed_categories: tuple[str, ...] = tuple(DEFAULT_CATEGORIES)
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    max_replies_per_hour: int = DEFAULT_MAX_REPLIES_PER_HOUR
    updated_at: str = ""


@dataclass
class AutoReplyRecord:
    """One sent auto-reply, kept for analytics."""

    id: int
    timestamp: str
    user_email: str
    recipient: str
    subject: str


@dataclass
class ActivityEvent:
    """An entry in the in-memory activity feed."""

    id: int
    timestamp: str
    message: str
    kind: str = "info"
    details: dict | None = None


@dataclass(frozen=True)
class GateDecision:
    """Result of running the gate pipeline over one message."""

    passed: bool
    reason: str
    classification: Classification | None = None


@dataclass
class CycleSummary:
    """Totals for a single poll cycle."""

    state: str = "idle"
    events: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    cursor: int | None = None
    reasons: dict[str, int] = field(default_factory=dict)
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def count_skip(self, reason: str) -> None:
        self.skipped += 1
        self.reasons[reason] = self.reasons.get(reason, 0) + 1
