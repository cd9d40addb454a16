"""code_context - rank a codebase's files by relevance to a natural-language query.

Three strategies share one pipeline: keyword-only, embedding-only and a
hybrid of embedding similarity, keyword matches and path heuristics that
degrades gracefully when the embedding backend is unavailable.
"""

from code_context.cancellation import CancellationToken
from code_context.config import RankingConfig, get_config, reset_config
from code_context.embeddings import (
    EmbeddingAdapter,
    EmbeddingOptions,
    GeminiEmbeddingAdapter,
    LocalHTTPEmbeddingAdapter,
    OpenAIEmbeddingAdapter,
    new_embedding_provider,
)
from code_context.errors import (
    BackendUnavailableError,
    CodeContextError,
    FileAccessError,
    NoKeywordsError,
    RankingCancelledError,
    RateLimitExhaustedError,
    UnknownProviderError,
)
from code_context.ranker import (
    HybridRanker,
    RankingReport,
    ScoredFile,
    identify_relevant_files,
    identify_relevant_files_with_embeddings,
    identify_relevant_files_with_hybrid_approach,
)
from code_context.resilience import BackoffConfig
from code_context.similarity import cosine_similarity
from code_context.text_analysis import default_summary_filename, extract_keywords, extract_query_keyword
from code_context.walker import scan_candidates

__version__ = "0.1.0"

__all__ = [
    "BackendUnavailableError",
    "BackoffConfig",
    "CancellationToken",
    "CodeContextError",
    "EmbeddingAdapter",
    "EmbeddingOptions",
    "FileAccessError",
    "GeminiEmbeddingAdapter",
    "HybridRanker",
    "LocalHTTPEmbeddingAdapter",
    "NoKeywordsError",
    "OpenAIEmbeddingAdapter",
    "RankingCancelledError",
    "RankingConfig",
    "RankingReport",
    "RateLimitExhaustedError",
    "ScoredFile",
    "UnknownProviderError",
    "cosine_similarity",
    "default_summary_filename",
    "extract_keywords",
    "extract_query_keyword",
    "get_config",
    "identify_relevant_files",
    "identify_relevant_files_with_embeddings",
    "identify_relevant_files_with_hybrid_approach",
    "new_embedding_provider",
    "reset_config",
    "scan_candidates",
]
