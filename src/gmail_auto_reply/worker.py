"""Background auto-reply worker: polls the change log and answers new mail.

One cycle moves through ``idle -> fetching -> (no_change | processing) ->
idle``. Messages in a batch are handled one at a time, in arrival order.
A message that fails is recorded and skipped; the cursor still moves past
it, so every message is answered at most once.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .activity import ActivityRecorder
from .constants import CALL_TIMEOUT, POLL_INTERVAL, REAPER_INTERVAL
from .cursor import CursorTracker
from .errors import ConfigurationError, CursorInvalidated
from .gates import DUPLICATE, GateContext, GatePipeline
from .gmail_client import build_reply
from .interfaces import Classifier, ConfigStore, MessageStore, ReplyGenerator, ReplyHistory
from .models import ChangeEvent, CycleSummary, Message
from .scheduler import PeriodicTask, call_with_deadline
from .state import DedupCache, RateLimiter, SenderCooldown

logger = logging.getLogger(__name__)

IDLE = "idle"
FETCHING = "fetching"
NO_CHANGE = "no_change"
PROCESSING = "processing"


def reply_content(message: Message) -> str:
    return f"Subject: {message.subject}\nFrom: {message.from_address}\n\n{message.body_text}"


class AutoReplyWorker:
    """Owns the cursor and the TTL state and drives the gate pipeline."""

    def __init__(
        self,
        message_store: MessageStore,
        classifier: Classifier,
        generator: ReplyGenerator,
        config_store: ConfigStore,
        history: ReplyHistory,
        activity: ActivityRecorder | None = None,
        dedup: DedupCache | None = None,
        cooldown: SenderCooldown | None = None,
        rate_limiter: RateLimiter | None = None,
        cursor: CursorTracker | None = None,
        call_timeout: float = CALL_TIMEOUT,
        clock: Callable[[], float] = time.time,
        keywords: list[str] | None = None,
    ) -> None:
        self.message_store = message_store
        self.generator = generator
        self.config_store = config_store
        self.history = history
        self.activity = activity or ActivityRecorder()
        self.dedup = dedup or DedupCache(clock=clock)
        self.cooldown = cooldown or SenderCooldown(clock=clock)
        self.rate_limiter = rate_limiter or RateLimiter(clock=clock)
        self.cursor = cursor or CursorTracker()
        self.call_timeout = call_timeout
        self.gates = GatePipeline(
            self.dedup,
            self.cooldown,
            self.rate_limiter,
            classifier,
            keywords=keywords,
            call=self._guarded,
        )

        self.state = IDLE
        self.account: str | None = None
        self._cycle_lock = threading.Lock()
        self._poll_task: PeriodicTask | None = None
        self._reaper_task: PeriodicTask | None = None

    def _guarded(self, fn: Callable, *args):
        return call_with_deadline(fn, *args, timeout=self.call_timeout)

    # --- poll cycle ---

    def run_cycle(self) -> CycleSummary:
        """Run one poll cycle. A call made while a cycle is in flight is dropped."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Poll cycle still running, dropping tick")
            return CycleSummary(state="dropped")
        try:
            return self._cycle()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Auto-reply cycle failed")
            self.activity.append(f"Auto-reply cycle failed: {exc}", "error")
            return CycleSummary(state="error", cursor=self.cursor.current)
        finally:
            self.state = IDLE
            logger.debug("Worker diagnostics: %s", self.diagnostics())
            self._cycle_lock.release()

    def _cycle(self) -> CycleSummary:
        summary = CycleSummary()

        if not self.config_store.is_globally_enabled():
            logger.debug("Global auto-reply is disabled, skipping cycle")
            summary.state = "disabled"
            summary.cursor = self.cursor.current
            return summary

        self.state = FETCHING
        account, position = self.message_store.current_position()
        self.account = account

        if not self.cursor.is_initialized:
            self.cursor.initialize(position)
            summary.state = "initialized"
            summary.cursor = self.cursor.current
            return summary

        if position <= self.cursor.current:
            self.state = NO_CHANGE
            summary.state = NO_CHANGE
            summary.cursor = self.cursor.current
            return summary

        try:
            batch = self.message_store.changes_since(self.cursor.current)
        except CursorInvalidated as exc:
            self.cursor.reset(position)
            self.activity.append(f"History cursor reset to {position}: {exc}", "warning")
            summary.state = "reset"
            summary.cursor = self.cursor.current
            return summary

        try:
            config = self.config_store.get(account)
        except ConfigurationError as exc:
            logger.warning("Treating auto-reply as disabled for %s: %s", account, exc)
            config = None
        ctx = GateContext(account_email=account, config=config)

        self.state = PROCESSING
        summary.state = PROCESSING
        summary.events = len(batch.events)
        if batch.events:
            logger.info("Found %d new email event(s)", len(batch.events))

        for event in batch.events:
            self._process(event, ctx, summary)

        self.cursor.advance(max(batch.new_cursor, position))
        summary.cursor = self.cursor.current
        return summary

    def _process(self, event: ChangeEvent, ctx: GateContext, summary: CycleSummary) -> None:
        details: dict = {"message_id": event.message_id}
        if self.dedup.seen(event.message_id):
            summary.count_skip(DUPLICATE)
            self.activity.append(f"Skipped {event.message_id}: {DUPLICATE}", "skip", details)
            return

        try:
            message = self.message_store.get(event.message_id)
            details.update(subject=message.subject, sender=message.from_address)

            decision = self.gates.evaluate(message, ctx)
            if decision.classification is not None:
                details["category"] = decision.classification.category
            if not decision.passed:
                summary.count_skip(decision.reason)
                self.activity.append(f'Skipped "{message.subject}": {decision.reason}', "skip", details)
                return

            self.activity.append(f'Generating auto-reply for "{message.subject}"', "auto-reply", details)
            reply_text = self._guarded(self.generator.generate, reply_content(message), decision.classification)
            reply = build_reply(message, reply_text, sender=ctx.account_email)
            self.message_store.send(reply.as_bytes(), message.thread_id)

            self.rate_limiter.record(ctx.account_email)
            self.cooldown.record(message.sender_email)
            self.history.append(ctx.account_email, message.from_address, message.subject)
            summary.sent += 1
            self.activity.append(f"Auto-reply sent to {message.from_address}", "success", details)
        except Exception as exc:  # noqa: BLE001
            self.dedup.mark(event.message_id)
            summary.failed += 1
            self.activity.append(f"Error processing {event.message_id}: {exc}", "error", details)

    # --- maintenance ---

    def reap(self) -> dict[str, int]:
        """Evict expired dedup, cooldown and rate-limit entries."""
        removed = {
            "dedup": self.dedup.reap(),
            "cooldown": self.cooldown.reap(),
            "rate_limit": self.rate_limiter.reap(),
        }
        logger.debug("Reaped expired entries: %s", removed)
        return removed

    def diagnostics(self) -> dict:
        return {
            "state": self.state,
            "account": self.account,
            "cursor": self.cursor.current,
            "dedup_size": len(self.dedup),
            "cooldown_size": len(self.cooldown),
            "rate_windows": len(self.rate_limiter),
        }

    # --- lifecycle ---

    def start(self, poll_interval: float = POLL_INTERVAL, reaper_interval: float = REAPER_INTERVAL) -> None:
        """Start the poll loop and the reaper on their own timers."""
        self._poll_task = PeriodicTask("auto-reply-poll", poll_interval, self.run_cycle, run_immediately=True)
        self._reaper_task = PeriodicTask("auto-reply-reaper", reaper_interval, self.reap)
        self._poll_task.start()
        self._reaper_task.start()
        logger.info("Auto-reply worker started, monitoring new incoming emails only")

    def is_running(self) -> bool:
        return self._poll_task is not None and self._poll_task.is_running()

    def stop(self) -> None:
        for task in (self._poll_task, self._reaper_task):
            if task is not None:
                task.stop()
        self._poll_task = None
        self._reaper_task = None
