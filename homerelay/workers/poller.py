"""
Polling Worker
==============

Runs a function on a fixed interval from a background thread. Execution
happens on a single-worker executor; if the previous run is still in
flight when the next tick fires, the tick is skipped rather than queued
(missed runs do not pile up).
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

logger = logging.getLogger(__name__)


class PollingWorker:
    """Interval runner with skip-if-busy semantics."""

    def __init__(
        self,
        name: str,
        func: Callable[[], Any],
        interval_seconds: float,
        *,
        run_immediately: bool = True,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self._func = func
        self._interval = interval_seconds
        self._run_immediately = run_immediately
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._executor: ThreadPoolExecutor | None = None
        self._thread: threading.Thread | None = None
        self._in_flight: Future | None = None
        self.runs = 0
        self.skipped = 0

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            logger.warning("%s already running", self.name)
            return
        self._stop_event.clear()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self.name)
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name=self.name)
        self._thread.start()
        logger.info("%s started (every %ss)", self.name, self._interval)

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if wait and self._thread is not None:
            self._thread.join(timeout=timeout)
        self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=wait, cancel_futures=True)
            self._executor = None
        logger.info("%s stopped", self.name)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        if self._run_immediately:
            self.tick()
        while not self._stop_event.wait(self._interval):
            self.tick()

    def tick(self) -> bool:
        """Submit one run unless the previous one is still executing.

        Returns True when a run was submitted.
        """
        with self._lock:
            if self._in_flight is not None and not self._in_flight.done():
                self.skipped += 1
                logger.debug("%s: previous run still in flight, skipping tick", self.name)
                return False
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=self.name)
            self._in_flight = self._executor.submit(self._execute)
            return True

    def wait_idle(self, timeout: float | None = None) -> None:
        """Block until the in-flight run (if any) finishes."""
        with self._lock:
            future = self._in_flight
        if future is not None:
            future.exception(timeout=timeout)

    def _execute(self) -> None:
        self.runs += 1
        try:
            self._func()
        except Exception as e:
            logger.error(f"{self.name} run failed: {e}", exc_info=True)
