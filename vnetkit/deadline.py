"""Updatable deadline timer usable as a cancellation signal."""

from __future__ import annotations

import threading
import time

__all__ = ["DeadlineExceeded", "Deadline"]


class DeadlineExceeded(TimeoutError):
    """The deadline has passed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class Deadline:
    """A deadline that can be moved, extended or cleared at any time.

    Deadlines are absolute times in seconds since the epoch, as returned by
    :func:`time.time`. ``None`` means there is no deadline.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._exceeded = threading.Event()
        self._deadline: float | None = None
        self._timer: threading.Timer | None = None
        self._generation = 0

    def set(self, when: float | None) -> None:
        """Set a new deadline; ``None`` removes it."""
        with self._lock:
            self._deadline = when
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

            # Waiters keep their event unless it has already fired.
            if self._exceeded.is_set():
                self._exceeded = threading.Event()

            if when is None:
                return

            remaining = when - time.time()
            if remaining > 0:
                timer = threading.Timer(remaining, self._fire, args=(self._generation,))
                timer.daemon = True
                self._timer = timer
                timer.start()
                return

            self._exceeded.set()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation == self._generation:
                self._exceeded.set()
                self._timer = None

    def done(self) -> threading.Event:
        """Return the event that is set once the deadline is exceeded."""
        with self._lock:
            return self._exceeded

    def err(self) -> DeadlineExceeded | None:
        """Return a DeadlineExceeded error if the deadline has passed, else None."""
        with self._lock:
            if self._exceeded.is_set():
                return DeadlineExceeded()
            return None

    def deadline(self) -> tuple[float | None, bool]:
        """Return the current deadline and whether one is set."""
        with self._lock:
            return self._deadline, self._deadline is not None