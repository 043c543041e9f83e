"""Contracts for the collaborators the worker depends on."""

from __future__ import annotations

from typing import Protocol

from .models import AutoReplyConfig, ChangeBatch, Classification, Message


class MessageStore(Protocol):
    def current_position(self) -> tuple[str, int]:
        """Return (account email, latest history position)."""

    def changes_since(self, cursor: int) -> ChangeBatch:
        """Events strictly after ``cursor``. Raises CursorInvalidated."""

    def get(self, message_id: str) -> Message: ...

    def send(self, raw_message: bytes, thread_id: str | None = None) -> dict: ...


class Classifier(Protocol):
    def analyze(self, subject: str, body: str, from_address: str) -> Classification:
        """Raises ClassifierUnavailable."""


class ReplyGenerator(Protocol):
    def generate(self, content: str, classification: Classification) -> str:
        """Raises GenerationFailed."""


class ConfigStore(Protocol):
    def get(self, user_email: str) -> AutoReplyConfig:
        """Raises ConfigurationError when missing or invalid."""

    def set(self, user_email: str, config: AutoReplyConfig) -> AutoReplyConfig: ...

    def is_globally_enabled(self) -> bool: ...

    def set_global_enabled(self, enabled: bool) -> None: ...


class ReplyHistory(Protocol):
    def append(self, user_email: str, recipient: str, subject: str) -> None: ...
