"""Cancellation and deadline scope for a single call."""

from __future__ import annotations

import threading
import time


class RequestCancelledError(Exception):
    """Raised when a call's context is cancelled or its deadline has passed."""


class RequestContext:
    """Cancellation signal plus optional deadline, shared by every attempt of a call.

    Usage:
        ctx = RequestContext.with_timeout(5.0)
        client.set_context(ctx)
        ...
        ctx.cancel()  # from any thread
    """

    def __init__(self, deadline: float | None = None) -> None:
        """Initialize the context.

        Args:
            deadline: Absolute ``time.monotonic()`` value after which the
                context is done. None means no deadline.
        """
        self._deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def background(cls) -> RequestContext:
        """A context that is never cancelled and has no deadline."""
        return cls()

    @classmethod
    def with_timeout(cls, seconds: float) -> RequestContext:
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def cancel(self) -> None:
        self._cancelled.set()

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None when there is none."""
        if self._deadline is None:
            return None
        return self._deadline - time.monotonic()

    def done(self) -> bool:
        if self._cancelled.is_set():
            return True
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def reason(self) -> str:
        if self._cancelled.is_set():
            return "context cancelled"
        return "context deadline exceeded"

    def wait(self, seconds: float) -> bool:
        """Block up to *seconds*, returning early if the context becomes done.

        Returns:
            True if the full interval elapsed with the context still live,
            False if the context was cancelled or hit its deadline.
        """
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._cancelled.wait(max(remaining, 0.0))
            return False
        if self._cancelled.wait(seconds):
            return False
        return not self.done()
