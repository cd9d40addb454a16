"""Run-scoped cancellation token with an optional deadline."""

from __future__ import annotations

import threading
import time
from typing import Optional

from code_context.errors import RankingCancelledError


class CancellationToken:
    """Cooperative cancellation shared by one ranking call.

    Example:
        >>> token = CancellationToken.with_timeout(120)
        >>> ranker.rank_hybrid(options, cancel=token)
        >>> # from another thread:
        >>> token.cancel()
    """

    def __init__(self, deadline: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        """Create a token that expires `seconds` from now."""
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RankingCancelledError()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancel or deadline.

        Returns:
            True if the token was cancelled during (or before) the wait
        """
        remaining = self.remaining()
        if remaining is not None:
            seconds = min(seconds, remaining)
        self._event.wait(max(0.0, seconds))
        return self.cancelled
