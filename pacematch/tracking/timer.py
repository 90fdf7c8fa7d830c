"""Repeating wall-clock timer on a daemon thread."""

from __future__ import annotations

import threading
from typing import Callable

from pacematch.utils.logging_config import logger


class RepeatingTimer:
    """Call ``callback`` every ``interval_s`` seconds until stopped.

    ``start`` and ``stop`` are idempotent. Exceptions from the callback are
    logged and do not stop the timer.
    """

    def __init__(self, interval_s: float, callback: Callable[[], None], name: str = "timer"):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.interval_s = interval_s
        self.callback = callback
        self.name = name
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stopped.is_set()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._stopped = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stopped,), name=self.name, daemon=True
            )
            self._thread.start()

    def stop(self) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stopped.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.interval_s + 1)

    def _run(self, stopped: threading.Event) -> None:
        while not stopped.wait(self.interval_s):
            try:
                self.callback()
            except Exception:
                logger.exception("Timer %s callback failed", self.name)
