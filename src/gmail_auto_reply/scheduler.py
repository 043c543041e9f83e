"""Background timers and call deadlines."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Callable

from .errors import CallTimeout

logger = logging.getLogger(__name__)


def call_with_deadline(fn: Callable, *args, timeout: float):
    """Run ``fn(*args)`` and give up after ``timeout`` seconds.

    On timeout the call is abandoned, not killed: its thread finishes in the
    background and its result is discarded.
    """
    ex = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        future = ex.submit(fn, *args)
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError as exc:
        name = getattr(fn, "__qualname__", repr(fn))
        raise CallTimeout(f"{name} did not finish within {timeout:g}s") from exc
    finally:
        ex.shutdown(wait=False, cancel_futures=True)


class PeriodicTask:
    """Runs ``target`` every ``interval`` seconds on a daemon thread.

    Ticks are sequential: a slow run delays the next tick instead of
    overlapping it. Exceptions from ``target`` are logged and the loop keeps
    going. ``stop()`` takes effect between runs, never in the middle of one.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        target: Callable[[], object],
        run_immediately: bool = False,
    ) -> None:
        self.name = name
        self.interval = interval
        self.target = target
        self.run_immediately = run_immediately

        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._running = False

    def start(self) -> None:
        if self._running:
            logger.warning("%s already running", self.name)
            return

        self._stop_event.clear()
        self._running = True
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("%s started (interval: %gs)", self.name, self.interval)

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        if not self._running:
            return

        self._stop_event.set()
        self._running = False

        if wait and self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("%s did not stop within %gs", self.name, timeout)

        logger.info("%s stopped", self.name)

    def is_running(self) -> bool:
        return self._running and self._thread is not None and self._thread.is_alive()

    def _run_once(self) -> None:
        try:
            self.target()
        except Exception:  # noqa: BLE001
            logger.exception("%s tick failed", self.name)

    def _loop(self) -> None:
        try:
            if self.run_immediately and not self._stop_event.is_set():
                self._run_once()
            while not self._stop_event.wait(timeout=self.interval):
                self._run_once()
        finally:
            self._running = False
