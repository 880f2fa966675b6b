"""A single-slot, thread-safe holder that always keeps only the newest value."""

from __future__ import annotations

import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

_EMPTY = object()


class QueueShutdown(RuntimeError):
    """Raised when a shut-down LatestValue is pushed to or blocked on."""


class LatestValue(Generic[T]):
    """Holds at most one value; a new push replaces any value not yet popped."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._value: object = _EMPTY
        self._overwrites = 0
        self._shutdown = False

    def push(self, value: T) -> int:
        """Store ``value`` and return the total number of overwrites so far."""
        with self._cond:
            if self._shutdown:
                raise QueueShutdown("LatestValue is shutdown")
            if self._value is not _EMPTY:
                self._overwrites += 1
            self._value = value
            self._cond.notify()
            return self._overwrites

    def pop(self) -> T:
        """Block until a value is available and take it."""
        with self._cond:
            self._cond.wait_for(lambda: self._shutdown or self._value is not _EMPTY)
            if self._shutdown:
                raise QueueShutdown("LatestValue is shutdown")
            value, self._value = self._value, _EMPTY
            return value  # type: ignore[return-value]

    def try_pop(self) -> Optional[T]:
        """Take the held value without blocking, or return None if empty."""
        with self._cond:
            if self._value is _EMPTY:
                return None
            value, self._value = self._value, _EMPTY
            return value  # type: ignore[return-value]

    def shutdown(self) -> None:
        """Reject further pushes and wake every blocked pop."""
        with self._cond:
            self._shutdown = True
            self._cond.notify_all()

    def overwrite_count(self) -> int:
        """Number of values replaced before being popped."""
        with self._cond:
            return self._overwrites