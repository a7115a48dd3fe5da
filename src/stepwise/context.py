"""Cancellable execution context passed to migration actions."""

from __future__ import annotations

import threading
import time

from stepwise.errors import ContextCancelledError


class ExecutionContext:
    """Cancellation flag plus an optional deadline.

    Contexts form a chain: cancelling a parent cancels every child, and a
    child's deadline is never later than its parent's.
    """

    def __init__(
        self,
        timeout: float | None = None,
        parent: ExecutionContext | None = None,
    ) -> None:
        self._event = threading.Event()
        self._parent = parent

        deadline = None
        if timeout is not None:
            deadline = time.monotonic() + timeout
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    def cancel(self) -> None:
        """Cancel this context and all of its children."""
        self._event.set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set() or self.expired:
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None when there is none."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def with_timeout(self, seconds: float) -> ExecutionContext:
        """Derive a child context that expires after ``seconds``."""
        return ExecutionContext(timeout=seconds, parent=self)

    def raise_if_cancelled(self) -> None:
        """Raise ContextCancelledError if the context is no longer live."""
        if not self.cancelled:
            return
        if self.expired:
            raise ContextCancelledError("deadline exceeded")
        raise ContextCancelledError("context cancelled")


def background() -> ExecutionContext:
    """Return a fresh context with no deadline."""
    return ExecutionContext()
