"""Error taxonomy for the relevance-ranking pipeline.

Errors that affect a single candidate file are recovered by the ranker
(logged, counted, file skipped). Errors that prevent building the query's
own representation abort keyword-only and embedding-only runs, and put a
hybrid run into degraded mode.
"""

from typing import Optional


class CodeContextError(Exception):
    """Base class for all code_context errors."""


class NoKeywordsError(CodeContextError):
    """Raised when a query yields no usable keywords."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"could not extract meaningful keywords from query: {query!r}")


class FileAccessError(CodeContextError):
    """Raised when a candidate file cannot be opened or read."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        message = f"cannot read {path}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class UnknownProviderError(CodeContextError, ValueError):
    """Raised at construction time for an unrecognised embedding provider."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"unknown embedding provider: {provider!r}")


class BackendUnavailableError(CodeContextError):
    """Embedding backend transport failure, non-2xx status or bad payload."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class RateLimitedError(BackendUnavailableError):
    """A single attempt was rejected with a rate-limit signal (retryable)."""


class RateLimitExhaustedError(BackendUnavailableError):
    """All backoff attempts were rate limited.

    Subclasses BackendUnavailableError because the ranker recovers from
    both the same way.
    """

    def __init__(self, provider: str, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            provider,
            f"exhausted retries ({attempts} attempts): {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )


class RankingCancelledError(CodeContextError):
    """Raised when a ranking run is cancelled or its deadline passes."""

    def __init__(self, message: str = "ranking run cancelled"):
        super().__init__(message)
