"""Resilience patterns for embedding backend calls.

This module provides exponential backoff with jitter for rate-limited
managed providers, and a circuit breaker the ranker uses to stop calling
a backend that keeps failing during one sweep.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar

from code_context.cancellation import CancellationToken
from code_context.errors import RankingCancelledError, RateLimitExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffConfig:
    """Backoff parameters for rate-limited calls.

    With the defaults the waits before attempts 2..5 are 1s, 2s, 4s, 8s,
    each scaled by a uniform factor in [0.8, 1.2].
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: float = 0.2
    timeout_headroom: float = 30.0
    max_delay: float = 60.0


def compute_backoff_delay(
    attempt: int,
    config: BackoffConfig,
    rng: Optional[random.Random] = None,
) -> float:
    """Delay to wait before a 0-based attempt (0 for the first attempt)."""
    if attempt <= 0:
        return 0.0
    delay = min(config.base_delay * (config.multiplier ** (attempt - 1)), config.max_delay)
    if config.jitter:
        source = rng or random
        delay *= source.uniform(1.0 - config.jitter, 1.0 + config.jitter)
    return delay


def retry_with_backoff(
    operation: Callable[[float], T],
    config: BackoffConfig,
    is_retryable: Callable[[Exception], bool],
    provider: str = "backend",
    cancel: Optional[CancellationToken] = None,
    sleep: Optional[Callable[[float], None]] = None,
    rng: Optional[random.Random] = None,
) -> T:
    """Run `operation` until it succeeds, fails hard, or attempts run out.

    Args:
        operation: Called with the timeout (seconds) for this attempt
        config: Backoff parameters
        is_retryable: Returns True for errors that warrant another attempt
        provider: Name used in logs and in the exhaustion error
        cancel: Run-scoped token; waits wake early and abort when it fires
        sleep: Override for the wait between attempts (tests)
        rng: Random source for jitter (tests)

    Returns:
        The operation's result

    Raises:
        RateLimitExhaustedError: Every attempt raised a retryable error
        RankingCancelledError: The token fired before or during a wait
    """
    last_error: Optional[Exception] = None

    for attempt in range(config.max_attempts):
        delay = compute_backoff_delay(attempt, config, rng)
        if attempt > 0:
            logger.warning(
                f"{provider}: rate limited, retrying (attempt {attempt + 1}/{config.max_attempts}) "
                f"after {delay:.1f}s"
            )
            if sleep is not None:
                sleep(delay)
            elif cancel is not None:
                cancel.wait(delay)
            else:
                time.sleep(delay)

        if cancel is not None:
            cancel.raise_if_cancelled()

        timeout = delay + config.timeout_headroom
        if cancel is not None and cancel.remaining() is not None:
            timeout = min(timeout, cancel.remaining())
            cancel.raise_if_cancelled()

        try:
            result = operation(timeout)
        except Exception as e:
            if cancel is not None and cancel.cancelled:
                raise RankingCancelledError() from e
            if not is_retryable(e):
                raise
            last_error = e
            continue

        if attempt > 0:
            logger.info(f"{provider}: succeeded after {attempt} retries")
        return result

    raise RateLimitExhaustedError(provider, config.max_attempts, last_error) from last_error


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation, calls pass through
    OPEN = "open"  # Circuit tripped, calls rejected
    HALF_OPEN = "half_open"  # Testing if backend recovered


@dataclass
class CircuitBreaker:
    """Tracks consecutive backend failures within a ranking run.

    When failures reach the threshold the circuit opens and `allow()`
    returns False until `recovery_timeout` elapses; one trial call is then
    allowed. A success closes the circuit again.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 60.0  # seconds

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _last_failure_time: Optional[float] = field(default=None, init=False)
    _total_failure_count: int = field(default=0, init=False)
    _lock: Lock = field(default_factory=Lock, init=False)

    @property
    def state(self) -> str:
        """Get current circuit state, checking for recovery timeout."""
        with self._lock:
            if self._state == CircuitState.OPEN:
                if (
                    self._last_failure_time is not None
                    and time.monotonic() - self._last_failure_time >= self.recovery_timeout
                ):
                    self._state = CircuitState.HALF_OPEN
            return self._state.value

    @property
    def failure_count(self) -> int:
        """Current consecutive failure count."""
        return self._failure_count

    def allow(self) -> bool:
        """True if a backend call may be attempted."""
        return self.state != CircuitState.OPEN.value

    def record_success(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0

    def record_failure(self) -> None:
        with self._lock:
            self._total_failure_count += 1
            self._failure_count += 1
            self._last_failure_time = time.monotonic()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
            elif self._failure_count >= self.failure_threshold:
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        f"Embedding backend failed {self._failure_count} times in a row; "
                        f"skipping it for {self.recovery_timeout:.0f}s"
                    )
                self._state = CircuitState.OPEN

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "failure_count": self._total_failure_count,
            "consecutive_failures": self._failure_count,
        }
