"""Shared fixtures and in-memory fakes for tests."""

from __future__ import annotations

import pytest

from gmail_auto_reply.activity import ActivityRecorder
from gmail_auto_reply.errors import ConfigurationError, SendFailed
from gmail_auto_reply.models import AutoReplyConfig, ChangeBatch, ChangeEvent, Classification, Message
from gmail_auto_reply.state import DedupCache, RateLimiter, SenderCooldown
from gmail_auto_reply.worker import AutoReplyWorker

ACCOUNT = "owner@infinite.example"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMessageStore:
    """Mailbox whose position and change log are set by the test."""

    def __init__(self, account: str = ACCOUNT, position: int = 100) -> None:
        self.account = account
        self.position = position
        self.messages: dict[str, Message] = {}
        self.batches: list = []
        self.sent: list[tuple[bytes, str | None]] = []
        self.fail_send_for: set[str] = set()
        self.since_calls: list[int] = []

    def add(self, message: Message) -> None:
        self.messages[message.id] = message

    def deliver(self, *message_ids: str, new_cursor: int | None = None) -> None:
        """Queue a change batch and move the mailbox position forward."""
        self.position = new_cursor if new_cursor is not None else self.position + len(message_ids) + 1
        self.batches.append(
            ChangeBatch(events=[ChangeEvent(mid) for mid in message_ids], new_cursor=self.position)
        )

    def current_position(self) -> tuple[str, int]:
        return self.account, self.position

    def changes_since(self, cursor: int) -> ChangeBatch:
        self.since_calls.append(cursor)
        batch = self.batches.pop(0)
        if isinstance(batch, Exception):
            raise batch
        return batch

    def get(self, message_id: str) -> Message:
        return self.messages[message_id]

    def send(self, raw_message: bytes, thread_id: str | None = None) -> dict:
        if thread_id in self.fail_send_for:
            raise SendFailed("550 rejected")
        self.sent.append((raw_message, thread_id))
        return {"id": f"sent-{len(self.sent)}", "threadId": thread_id}


class FakeClassifier:
    def __init__(self, result: Classification | None = None) -> None:
        self.result = result or business_classification()
        self.error: Exception | None = None
        self.calls: list[tuple[str, str, str]] = []

    def analyze(self, subject: str, body: str, from_address: str) -> Classification:
        self.calls.append((subject, body, from_address))
        if self.error is not None:
            raise self.error
        return self.result


class FakeGenerator:
    def __init__(self, reply: str = "Thanks for reaching out! Our website package starts at $99.") -> None:
        self.reply = reply
        self.error: Exception | None = None
        self.calls: list[str] = []

    def generate(self, content: str, classification: Classification) -> str:
        self.calls.append(content)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeConfigStore:
    def __init__(self) -> None:
        self.configs: dict[str, AutoReplyConfig] = {}
        self.global_enabled = True

    def get(self, user_email: str) -> AutoReplyConfig:
        try:
            return self.configs[user_email]
        except KeyError:
            raise ConfigurationError(f"No auto-reply config for {user_email}") from None

    def set(self, user_email: str, config: AutoReplyConfig) -> AutoReplyConfig:
        self.configs[user_email] = config
        return config

    def is_globally_enabled(self) -> bool:
        return self.global_enabled

    def set_global_enabled(self, enabled: bool) -> None:
        self.global_enabled = enabled


class FakeHistory:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, str]] = []

    def append(self, user_email: str, recipient: str, subject: str) -> None:
        self.records.append((user_email, recipient, subject))


def business_classification(**overrides) -> Classification:
    values = dict(
        category="Pricing Question",
        is_business=True,
        priority="high",
        urgency=False,
        confidence=0.9,
        summary="Asks for website pricing",
        suggested_reply="Our website builder starts at $99.",
    )
    values.update(overrides)
    return Classification(**values)


def make_message(
    message_id: str = "msg_001",
    sender: str = "Jane Client <jane@client.example>",
    subject: str = "Website pricing question",
    body: str = "Hi, how much would a small business website cost?",
    labels: list[str] | None = None,
    headers: dict[str, str] | None = None,
    thread_id: str | None = None,
) -> Message:
    all_headers = {"From": sender, "Subject": subject, "Message-ID": f"<{message_id}@mail.example>"}
    all_headers.update(headers or {})
    return Message(
        id=message_id,
        thread_id=thread_id or f"thread_{message_id}",
        subject=subject,
        from_address=sender,
        body_text=body,
        labels=labels if labels is not None else ["INBOX", "UNREAD"],
        headers=all_headers,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailbox() -> FakeMessageStore:
    return FakeMessageStore()


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def config_store() -> FakeConfigStore:
    store = FakeConfigStore()
    store.set(ACCOUNT, AutoReplyConfig(enabled=True))
    return store


@pytest.fixture
def history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture
def worker(mailbox, classifier, generator, config_store, history, clock) -> AutoReplyWorker:
    w = AutoReplyWorker(
        message_store=mailbox,
        classifier=classifier,
        generator=generator,
        config_store=config_store,
        history=history,
        activity=ActivityRecorder(),
        dedup=DedupCache(ttl=3600, clock=clock),
        cooldown=SenderCooldown(window=3600, clock=clock),
        rate_limiter=RateLimiter(window=3600, clock=clock),
        call_timeout=5.0,
        clock=clock,
    )
    w.cursor.initialize(mailbox.position)
    return w
