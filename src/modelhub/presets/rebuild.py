"""Run-once-in-the-background-when-stale helper for snapshot rebuilds.

Guarantees:

- at most one rebuild thread is alive at any time;
- :meth:`AsyncRebuilder.trigger` calls are ignored while one is running;
- a rebuild starts only when the last successful run is older than ``max_age``;
- exceptions raised by the rebuild function are logged, never propagated
  out of the background thread.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

# Treat every trigger as stale when no positive max age is configured.
_ALWAYS_STALE = 1e-9


class AsyncRebuilder:
    """Call ``fn`` in a daemon thread when :meth:`trigger` finds the data stale."""

    def __init__(self, max_age: float, fn: Callable[[], None]) -> None:
        self.max_age = max_age if max_age > 0 else _ALWAYS_STALE
        self._fn = fn
        self._last_run: float | None = None
        self._running = threading.Lock()
        self._done = threading.Event()
        self._done.set()

    @property
    def is_stale(self) -> bool:
        if self._last_run is None:
            return True
        return time.monotonic() - self._last_run > self.max_age

    def trigger(self) -> bool:
        """Start a background rebuild if stale and idle.

        Returns ``True`` when a rebuild thread was started.
        """
        if not self.is_stale:
            return False
        if not self._running.acquire(blocking=False):
            return False

        self._done.clear()
        thread = threading.Thread(target=self._run, name="preset-rebuild", daemon=True)
        thread.start()
        return True

    def force(self) -> None:
        """Run the rebuild synchronously; exceptions propagate to the caller."""
        self._fn()
        self.mark_fresh()

    def mark_fresh(self) -> None:
        self._last_run = time.monotonic()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the current background rebuild (if any) finishes."""
        return self._done.wait(timeout)

    def _run(self) -> None:
        try:
            self._fn()
        except Exception:
            logger.exception("async preset rebuild failed")
        else:
            self.mark_fresh()
        finally:
            self._running.release()
            self._done.set()
