"""Eligibility gates deciding whether a message gets an automated reply.

Stages run in a fixed order, cheapest first, and stop at the first failure.
Everything up to the cooldown check is local; the classifier call is the
only remote stage and runs after all local checks have passed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from .constants import AUTO_REPLY_HEADER, AUTO_REPLY_HEADER_VALUE, BUSINESS_KEYWORDS, OUTGOING_LABELS
from .errors import TransientExternalError
from .interfaces import Classifier
from .models import AutoReplyConfig, Classification, GateDecision, Message
from .state import DedupCache, RateLimiter, SenderCooldown

logger = logging.getLogger(__name__)

# --- Reasons ---
DISABLED = "disabled"
DUPLICATE = "duplicate"
SELF_REPLY_LOOP = "self-reply-loop"
OUTGOING = "outgoing"
COOLDOWN = "cooldown"
CLASSIFICATION_FAILED = "classification failed"
IRRELEVANT = "irrelevant"
NOT_BUSINESS = "not business"
CATEGORY_DISABLED = "category disabled"
LOW_CONFIDENCE = "low confidence"
RATE_LIMITED = "rate limited"
ELIGIBLE = "eligible"


@dataclass(frozen=True)
class GateContext:
    """Per-cycle inputs shared by every message in a batch."""

    account_email: str
    config: AutoReplyConfig | None
    globally_enabled: bool = True

    @property
    def enabled(self) -> bool:
        return self.globally_enabled and self.config is not None and self.config.enabled


def is_auto_reply(message: Message) -> bool:
    """True for messages carrying our own self-reply marker."""
    return message.header(AUTO_REPLY_HEADER).strip().lower() == AUTO_REPLY_HEADER_VALUE


def is_outgoing(message: Message, account_email: str) -> bool:
    if any(label in message.labels for label in OUTGOING_LABELS):
        return True
    account = account_email.strip().lower()
    return bool(account) and message.sender_email == account


def has_relevant_keywords(message: Message, keywords: list[str] = BUSINESS_KEYWORDS) -> bool:
    text = f"{message.subject} {message.body_text}".lower()
    return any(kw in text for kw in keywords)


def _call_direct(fn: Callable, *args):
    return fn(*args)


class GatePipeline:
    """Ordered, short-circuiting eligibility checks.

    ``call`` wraps the classifier invocation so the owner can impose a
    deadline on it.
    """

    def __init__(
        self,
        dedup: DedupCache,
        cooldown: SenderCooldown,
        rate_limiter: RateLimiter,
        classifier: Classifier,
        keywords: list[str] | None = None,
        call: Callable = _call_direct,
    ) -> None:
        self.dedup = dedup
        self.cooldown = cooldown
        self.rate_limiter = rate_limiter
        self.classifier = classifier
        self.keywords = keywords if keywords is not None else BUSINESS_KEYWORDS
        self._call = call

    def evaluate(self, message: Message, ctx: GateContext) -> GateDecision:
        """Run every stage in order; the first failure decides the reason.

        A message that gets past the dedup stage is marked as processed, so
        whatever happens to it afterwards it is not looked at again within
        the dedup TTL.
        """
        if not ctx.enabled:
            return GateDecision(False, DISABLED)

        if self.dedup.seen(message.id):
            return GateDecision(False, DUPLICATE)
        self.dedup.mark(message.id)

        if is_auto_reply(message):
            return GateDecision(False, SELF_REPLY_LOOP)

        if is_outgoing(message, ctx.account_email):
            return GateDecision(False, OUTGOING)

        if self.cooldown.active(message.sender_email):
            return GateDecision(False, COOLDOWN)

        try:
            classification: Classification = self._call(
                self.classifier.analyze, message.subject, message.body_text, message.from_address
            )
        except TransientExternalError as exc:
            logger.warning("Classification failed for %s: %s", message.id, exc)
            return GateDecision(False, f"{CLASSIFICATION_FAILED}: {exc}")

        return self._check_classified(message, ctx, classification)

    def _check_classified(
        self, message: Message, ctx: GateContext, classification: Classification
    ) -> GateDecision:
        config = ctx.config
        if not has_relevant_keywords(message, self.keywords):
            return GateDecision(False, IRRELEVANT, classification)

        if not classification.is_business:
            return GateDecision(False, NOT_BUSINESS, classification)

        if classification.category not in config.allowed_categories:
            return GateDecision(False, CATEGORY_DISABLED, classification)

        if classification.confidence < config.min_confidence:
            return GateDecision(False, LOW_CONFIDENCE, classification)

        if not self.rate_limiter.allow(ctx.account_email, config.max_replies_per_hour):
            return GateDecision(False, RATE_LIMITED, classification)

        return GateDecision(True, ELIGIBLE, classification)
