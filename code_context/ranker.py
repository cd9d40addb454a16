"""
Hybrid relevance ranking - keyword, embedding and combined strategies.

This module provides:
1. Keyword-only ranking (lexical scorer, position weighted)
2. Embedding-only ranking (cosine similarity of query and file vectors)
3. Hybrid ranking: 0.7 * embedding + 0.2 * keyword / 10 + 0.1 * path

Every strategy returns ScoredFile entries with score > 0, sorted by score
descending (ties keep candidate order) and truncated to the result cap.

Failures on a single candidate never abort a run: the file is skipped (or,
in hybrid mode, its embedding component is 0) and the skip is logged and
counted. Failing to build the query's own representation aborts
keyword-only and embedding-only runs; the hybrid strategy degrades to
keyword + path scoring instead.

Example usage:
    ranker = HybridRanker()
    files = ranker.rank_hybrid(EmbeddingOptions(
        query="parse JSON config",
        target_path="/repo",
        candidate_files=scan_candidates("/repo"),
    ))
    print(ranker.last_report)
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from code_context.cancellation import CancellationToken
from code_context.config import RankingConfig, get_config
from code_context.embeddings import EmbeddingAdapter, EmbeddingOptions, new_embedding_provider
from code_context.errors import (
    BackendUnavailableError,
    FileAccessError,
    NoKeywordsError,
    RateLimitExhaustedError,
    UnknownProviderError,
)
from code_context.file_reader import get_file_size, read_file_content
from code_context.lexical_scorer import score_file
from code_context.observability.metrics import record_ranking_run, record_skipped_file, track_latency
from code_context.path_scorer import get_query_path_relevance_score
from code_context.resilience import CircuitBreaker
from code_context.similarity import cosine_similarity
from code_context.text_analysis import extract_keywords

logger = logging.getLogger(__name__)

KEYWORD_STRATEGY = "keyword"
EMBEDDING_STRATEGY = "embedding"
HYBRID_STRATEGY = "hybrid"

AdapterFactory = Callable[[EmbeddingOptions], EmbeddingAdapter]


@dataclass(frozen=True)
class ScoredFile:
    """A candidate path with its relevance score."""
    path: str
    score: float


@dataclass(frozen=True)
class ComponentScores:
    """Per-file inputs to the hybrid combination.

    `embedding_degraded` marks an embedding component forced to 0 because
    the backend (or the query embedding) was unavailable.
    """
    embedding: float
    keyword: float
    path: float
    embedding_degraded: bool = False


def combine_scores(scores: ComponentScores, config: RankingConfig) -> float:
    """Weighted hybrid score of the embedding, keyword and path components."""
    return (
        config.embedding_weight * scores.embedding
        + config.keyword_weight * scores.keyword
        + config.path_weight * scores.path
    )


@dataclass
class RankingReport:
    """Outcome of one ranking call, for diagnosing degraded results."""
    strategy: str
    candidates: int = 0
    scored: int = 0
    returned: int = 0
    skipped: Dict[str, int] = field(default_factory=dict)
    embedding_failures: int = 0
    degraded: bool = False
    degraded_reason: Optional[str] = None
    elapsed_seconds: float = 0.0

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())


def rank_and_truncate(scored: Sequence[Tuple[int, ScoredFile]], max_files: int) -> List[ScoredFile]:
    """Sort (candidate index, ScoredFile) pairs by score descending and cap.

    Ties keep candidate order, so output is deterministic whether or not
    scoring ran in parallel.
    """
    ordered = sorted(scored, key=lambda item: (-item[1].score, item[0]))
    return [item[1] for item in ordered[:max_files]]


# Statuses that indicate the backend itself is unhealthy
OUTAGE_STATUS_CODES = frozenset({502, 503, 504})


def is_backend_outage(error: BackendUnavailableError) -> bool:
    """True for failures of the backend rather than of one file's input.

    A 4xx or 500 caused by one file's content does not count.
    """
    if isinstance(error, RateLimitExhaustedError):
        return True
    return error.status_code is None or error.status_code in OUTAGE_STATUS_CODES


class HybridRanker:
    """Ranks candidate files against a query.

    Owns the working state of each run (scored list, report); the
    embedding adapter only owns its HTTP resources per call.

    Args:
        config: Ranking constants (default: environment-backed global config)
        adapter_factory: Builds the embedding adapter from options
            (default: new_embedding_provider)
    """

    def __init__(
        self,
        config: Optional[RankingConfig] = None,
        adapter_factory: Optional[AdapterFactory] = None,
    ):
        self.config = (config or get_config()).validate()
        self._adapter_factory = adapter_factory or new_embedding_provider
        self._lock = threading.Lock()
        self.last_report: Optional[RankingReport] = None

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def rank_by_keywords(
        self,
        query: str,
        root_path: str,
        candidates: Sequence[str],
        max_files: int = 0,
        cancel: Optional[CancellationToken] = None,
    ) -> List[ScoredFile]:
        """Rank candidates by position-weighted keyword matches.

        Raises:
            NoKeywordsError: If the query has no usable keywords
            RankingCancelledError: If the run is cancelled
        """
        report = RankingReport(strategy=KEYWORD_STRATEGY, candidates=len(candidates))

        def prepare() -> Callable[[str], Optional[ScoredFile]]:
            keywords = extract_keywords(query)
            if not keywords:
                raise NoKeywordsError(query)
            logger.debug(f"Keywords extracted from query: {keywords}")

            def score_one(path: str) -> Optional[ScoredFile]:
                try:
                    score = score_file(os.path.join(root_path, path), keywords, self.config.lexical_line_cap)
                except FileAccessError as e:
                    self._skip(report, path, "read_error", e)
                    return None
                return ScoredFile(path=path, score=score) if score > 0 else None

            return score_one

        return self._run(report, candidates, max_files, prepare, cancel)

    def rank_by_embeddings(
        self,
        options: EmbeddingOptions,
        cancel: Optional[CancellationToken] = None,
    ) -> List[ScoredFile]:
        """Rank candidates by cosine similarity to the query embedding.

        Raises:
            UnknownProviderError: If the provider id is not recognised
            BackendUnavailableError: If the adapter cannot be built or the
                query cannot be embedded
            RankingCancelledError: If the run is cancelled
        """
        opts = options.with_defaults(max_files=self.config.max_files)
        report = RankingReport(strategy=EMBEDDING_STRATEGY, candidates=len(opts.candidate_files))

        def prepare() -> Callable[[str], Optional[ScoredFile]]:
            adapter = self._adapter_factory(opts)
            query_embedding = adapter.generate_embedding(opts.query, cancel)
            breaker = self._new_breaker()

            def score_one(path: str) -> Optional[ScoredFile]:
                content = self._load(
                    report,
                    opts.target_path,
                    path,
                    self.config.embedding_max_file_bytes,
                    self.config.embedding_max_lines,
                )
                if content is None:
                    return None
                if breaker is not None and not breaker.allow():
                    self._skip(report, path, "circuit_open")
                    return None
                try:
                    file_embedding = adapter.generate_embedding(content, cancel)
                except BackendUnavailableError as e:
                    self._record_embedding_outcome(breaker, e)
                    self._skip(report, path, "embedding_error", e)
                    return None
                self._record_embedding_outcome(breaker)

                score = cosine_similarity(query_embedding, file_embedding)
                return ScoredFile(path=path, score=score) if score > 0 else None

            return score_one

        return self._run(report, opts.candidate_files, opts.max_files, prepare, cancel)

    def rank_hybrid(
        self,
        options: EmbeddingOptions,
        cancel: Optional[CancellationToken] = None,
    ) -> List[ScoredFile]:
        """Rank candidates by the weighted embedding + keyword + path score.

        A missing or failing embedding backend degrades the run to keyword
        and path scoring; it never raises for backend problems.

        Raises:
            RankingCancelledError: If the run is cancelled
        """
        opts = options.with_defaults(max_files=self.config.max_files)
        report = RankingReport(strategy=HYBRID_STRATEGY, candidates=len(opts.candidate_files))

        def prepare() -> Callable[[str], Optional[ScoredFile]]:
            adapter, query_embedding = self._hybrid_query_embedding(opts, report, cancel)
            keywords = extract_keywords(opts.query)
            logger.debug(f"Keywords extracted from query: {keywords}")
            breaker = self._new_breaker()

            def score_one(path: str) -> Optional[ScoredFile]:
                content = self._load(
                    report,
                    opts.target_path,
                    path,
                    self.config.hybrid_max_file_bytes,
                    self.config.hybrid_max_lines,
                )
                if content is None:
                    return None

                embedding_score = 0.0
                degraded = query_embedding is None
                if not degraded and breaker is not None and not breaker.allow():
                    degraded = True
                    self._count_embedding_failure(report)
                    self._mark_degraded(report, "circuit_open")
                elif not degraded:
                    try:
                        file_embedding = adapter.generate_embedding(content, cancel)
                    except BackendUnavailableError as e:
                        self._record_embedding_outcome(breaker, e)
                        self._count_embedding_failure(report)
                        logger.warning(f"Error getting embedding for file {path}: {e}")
                        degraded = True
                    else:
                        self._record_embedding_outcome(breaker)
                        embedding_score = cosine_similarity(query_embedding, file_embedding)

                components = ComponentScores(
                    embedding=embedding_score,
                    keyword=self._hybrid_keyword_score(opts.target_path, path, keywords),
                    path=get_query_path_relevance_score(path, opts.query),
                    embedding_degraded=degraded,
                )
                combined = combine_scores(components, self.config)
                logger.debug(
                    f"File: {path}, Embedding: {components.embedding:.2f}, Keyword: {components.keyword:.2f}, "
                    f"Path: {components.path:.2f}, Combined: {combined:.2f}"
                )
                return ScoredFile(path=path, score=combined) if combined > 0 else None

            return score_one

        return self._run(report, opts.candidate_files, opts.max_files, prepare, cancel)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _hybrid_query_embedding(
        self,
        opts: EmbeddingOptions,
        report: RankingReport,
        cancel: Optional[CancellationToken],
    ) -> Tuple[Optional[EmbeddingAdapter], Optional[List[float]]]:
        """Build the adapter and embed the query, degrading on failure."""
        try:
            adapter = self._adapter_factory(opts)
        except (UnknownProviderError, BackendUnavailableError) as e:
            logger.warning(
                f"Failed to create embedding provider for hybrid search: {e}. "
                f"Proceeding with keyword and path relevance only."
            )
            report.degraded = True
            report.degraded_reason = f"provider: {e}"
            return None, None

        try:
            query_embedding = adapter.generate_embedding(opts.query, cancel)
        except BackendUnavailableError as e:
            logger.warning(
                f"Failed to get query embedding for hybrid search: {e}. "
                f"Proceeding without embedding scores."
            )
            report.degraded = True
            report.degraded_reason = f"query embedding: {e}"
            return adapter, None

        logger.info("Generated query embedding for hybrid search")
        return adapter, query_embedding

    def _hybrid_keyword_score(self, root_path: str, path: str, keywords: Sequence[str]) -> float:
        if not keywords:
            return 0.0
        try:
            raw = score_file(os.path.join(root_path, path), keywords, self.config.lexical_line_cap)
        except FileAccessError as e:
            logger.warning(f"Keyword scoring failed for {path}: {e}")
            return 0.0
        return raw / self.config.keyword_normalizer

    def _load(
        self,
        report: RankingReport,
        root_path: str,
        path: str,
        max_bytes: int,
        max_lines: int,
    ) -> Optional[str]:
        """Read a candidate's leading lines, or None when it must be skipped."""
        full_path = os.path.join(root_path, path)
        try:
            size = get_file_size(full_path)
        except FileAccessError as e:
            self._skip(report, path, "stat_error", e)
            return None
        if size > max_bytes:
            self._skip(report, path, "too_large", f"{size} bytes")
            return None
        try:
            return read_file_content(full_path, max_lines)
        except FileAccessError as e:
            self._skip(report, path, "read_error", e)
            return None

    def _skip(self, report: RankingReport, path: str, reason: str, detail: object = None) -> None:
        if detail is not None:
            logger.warning(f"Skipping {path} ({reason}): {detail}")
        else:
            logger.warning(f"Skipping {path} ({reason})")
        with self._lock:
            report.skipped[reason] = report.skipped.get(reason, 0) + 1
        record_skipped_file(report.strategy, reason)

    def _count_embedding_failure(self, report: RankingReport) -> None:
        with self._lock:
            report.embedding_failures += 1

    def _mark_degraded(self, report: RankingReport, reason: str) -> None:
        with self._lock:
            if not report.degraded:
                report.degraded = True
                report.degraded_reason = reason

    def _new_breaker(self) -> Optional[CircuitBreaker]:
        """Run-scoped breaker, or None when the threshold is 0 (disabled)."""
        if self.config.circuit_failure_threshold <= 0:
            return None
        return CircuitBreaker(failure_threshold=self.config.circuit_failure_threshold)

    def _record_embedding_outcome(
        self,
        breaker: Optional[CircuitBreaker],
        error: Optional[BackendUnavailableError] = None,
    ) -> None:
        """Feed the breaker; content-specific rejections never trip it."""
        if breaker is None:
            return
        if error is None:
            breaker.record_success()
        elif is_backend_outage(error):
            breaker.record_failure()

    def _run(
        self,
        report: RankingReport,
        candidates: Sequence[str],
        max_files: int,
        prepare: Callable[[], Callable[[str], Optional[ScoredFile]]],
        cancel: Optional[CancellationToken],
    ) -> List[ScoredFile]:
        """Shared driver: set up, score every candidate, rank, report."""
        if max_files <= 0:
            max_files = self.config.max_files
        self.last_report = report
        start = time.time()

        with track_latency(report.strategy):
            try:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                score_one = prepare()
                scored = self._score_all(candidates, score_one, cancel)
            except Exception:
                record_ranking_run(report.strategy, "error")
                raise

        results = rank_and_truncate(scored, max_files)
        report.scored = len(scored)
        report.returned = len(results)
        report.elapsed_seconds = time.time() - start
        record_ranking_run(report.strategy, "degraded" if report.degraded else "success")

        logger.info(
            f"{report.strategy} ranking: {report.candidates} candidates, {report.scored} scored, "
            f"{report.returned} returned, {report.skipped_total} skipped {report.skipped}"
            + (f", degraded ({report.degraded_reason})" if report.degraded else "")
        )
        return results

    def _score_all(
        self,
        candidates: Sequence[str],
        score_one: Callable[[str], Optional[ScoredFile]],
        cancel: Optional[CancellationToken],
    ) -> List[Tuple[int, ScoredFile]]:
        """Score candidates sequentially or on a bounded worker pool."""

        def guarded(path: str) -> Optional[ScoredFile]:
            if cancel is not None:
                cancel.raise_if_cancelled()
            return score_one(path)

        scored: List[Tuple[int, ScoredFile]] = []

        if self.config.max_workers <= 1 or len(candidates) <= 1:
            for index, path in enumerate(candidates):
                result = guarded(path)
                if result is not None:
                    scored.append((index, result))
            return scored

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = {executor.submit(guarded, path): index for index, path in enumerate(candidates)}
            try:
                for future in as_completed(futures):
                    result = future.result()
                    if result is not None:
                        scored.append((futures[future], result))
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        return scored


def identify_relevant_files(
    query: str,
    root_path: str,
    candidates: Sequence[str],
    max_files: int = 0,
    cancel: Optional[CancellationToken] = None,
) -> List[ScoredFile]:
    """Keyword-only ranking with the global configuration."""
    return HybridRanker().rank_by_keywords(query, root_path, candidates, max_files, cancel)


def identify_relevant_files_with_embeddings(
    options: EmbeddingOptions,
    cancel: Optional[CancellationToken] = None,
) -> List[ScoredFile]:
    """Embedding-only ranking with the global configuration."""
    return HybridRanker().rank_by_embeddings(options, cancel)


def identify_relevant_files_with_hybrid_approach(
    options: EmbeddingOptions,
    cancel: Optional[CancellationToken] = None,
) -> List[ScoredFile]:
    """Hybrid ranking with the global configuration."""
    return HybridRanker().rank_hybrid(options, cancel)
