"""
Prometheus metrics for the ranking pipeline.

Tracks ranking latency per strategy, run outcomes, files skipped during a
run (with the reason) and embedding backend requests. Skipped-file
counters make silent result degradation diagnosable.
"""

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Histogram, REGISTRY, generate_latest


# Ranking calls range from milliseconds (keyword-only) to minutes (embedding sweeps)
LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0)

SKIP_REASONS = ("stat_error", "too_large", "read_error", "embedding_error", "circuit_open")

ranking_latency_histogram = Histogram(
    "code_context_ranking_latency_seconds",
    "Ranking call latency in seconds",
    labelnames=["strategy"],
    buckets=LATENCY_BUCKETS,
)

ranking_runs = Counter(
    "code_context_ranking_runs_total",
    "Ranking calls by outcome (success, degraded, error)",
    labelnames=["strategy", "status"],
)

skipped_files = Counter(
    "code_context_skipped_files_total",
    "Candidate files skipped during ranking",
    labelnames=["strategy", "reason"],
)

embedding_requests = Counter(
    "code_context_embedding_requests_total",
    "Embedding backend requests by outcome (success, rate_limited, error)",
    labelnames=["provider", "status"],
)


class MetricsRegistry:
    """
    Singleton registry for Prometheus metrics export.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def export(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            str: Prometheus-formatted metrics text
        """
        return generate_latest(REGISTRY).decode("utf-8")


def record_skipped_file(strategy: str, reason: str) -> None:
    skipped_files.labels(strategy=strategy, reason=reason).inc()


def record_ranking_run(strategy: str, status: str) -> None:
    ranking_runs.labels(strategy=strategy, status=status).inc()


def record_embedding_request(provider: str, status: str) -> None:
    embedding_requests.labels(provider=provider, status=status).inc()


@contextmanager
def track_latency(strategy: str) -> Generator[None, None, None]:
    """
    Context manager recording a ranking call's duration.

    Example:
        >>> with track_latency("hybrid"):
        ...     ranker.rank_hybrid(options)
    """
    start = time.time()
    try:
        yield
    finally:
        ranking_latency_histogram.labels(strategy=strategy).observe(time.time() - start)
