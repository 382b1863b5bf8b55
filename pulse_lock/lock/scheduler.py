"""
Cancellable periodic task used to drive continuous verification.

The engine never blocks waiting for frames; a :class:`PeriodicCheckTask`
calls back into it every ``interval`` seconds from a daemon thread until the
handle is cancelled.  Cancelling is immediate and idempotent, and safe from
inside the callback itself (which is how a lockout stops its own timer).
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicCheckTask:
    """
    Parameters
    ----------
    interval:
        Seconds between callback invocations.  The first call happens one
        interval after :meth:`start`.
    callback:
        Zero-argument callable.  Returning ``False`` does not stop the task;
        only :meth:`cancel` does.
    name:
        Thread name, used in log messages.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], object],
        name: str = "periodic-check",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.callback = callback
        self.name = name
        self.runs = 0
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "PeriodicCheckTask":
        if self._thread is not None:
            raise RuntimeError(f"Task {self.name} already started")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Started periodic task %s (every %.1f s)", self.name, self.interval)
        return self

    def cancel(self) -> None:
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        logger.info("Cancelled periodic task %s", self.name)

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while not self._cancelled.wait(self.interval):
            self.runs += 1
            try:
                self.callback()
            except Exception:
                logger.exception("Periodic task %s failed; cancelling", self.name)
                self._cancelled.set()
