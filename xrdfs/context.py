"""
Cancellation and deadline tokens for remote calls.

Every file system operation accepts an optional Context. A call that is still waiting
for its response when the context is cancelled, or when its deadline passes, gives up
immediately and raises. Nothing is undone on the server side: an open request that was
abandoned may still have allocated a file handle there.

Example:
```
ctx = Context(timeout=2.0)
threading.Timer(0.5, ctx.cancel).start()

fs.stat("/data/run1.root", ctx=ctx)
```
"""

from __future__ import annotations

import threading
import time
from typing import Optional


class OperationCancelledError(RuntimeError):
    """Exception raised when a call is abandoned because its context was cancelled."""


class DeadlineExceededError(TimeoutError):
    """Exception raised when a call is abandoned because its deadline passed."""


class Context:
    """Token that can be cancelled explicitly or expires after a timeout."""

    def __init__(
        self, timeout: Optional[float] = None, parent: Optional[Context] = None
    ) -> None:
        """
        Create a context with an optional timeout in seconds.

        A context derived from a parent is cancelled along with it and never outlives
        the parent's deadline.
        """
        self._parent = parent
        self._cancelled = threading.Event()

        self.deadline: Optional[float] = None

        if timeout is not None:
            self.deadline = time.monotonic() + timeout

        if parent is not None and parent.deadline is not None:
            if self.deadline is None or parent.deadline < self.deadline:
                self.deadline = parent.deadline

    def cancel(self) -> None:
        """Cancel all calls made with this context (and contexts derived from it)."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        """Return whether this context or one of its parents has been cancelled."""
        if self._cancelled.is_set():
            return True

        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> Optional[float]:
        """Return the number of seconds until the deadline, or None without one."""
        if self.deadline is None:
            return None

        return max(0.0, self.deadline - time.monotonic())

    def error(self) -> Optional[Exception]:
        """Return the exception a call made with this context should raise, if any."""
        if self.cancelled:
            return OperationCancelledError("context cancelled")
        elif self.deadline is not None and time.monotonic() >= self.deadline:
            return DeadlineExceededError("context deadline exceeded")
        else:
            return None

    def check(self) -> None:
        """Raise if the context has been cancelled or its deadline has passed."""
        err = self.error()

        if err is not None:
            raise err

    def __enter__(self) -> Context:
        return self

    def __exit__(self, *exc_info) -> None:
        self.cancel()
