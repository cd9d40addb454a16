"""Centralized code_context configuration.

All embedding and ranking settings in one place.
Override via environment variables or .env file.

=== CONFIGURATION HIERARCHY ===

1. Embedding Provider Defaults (CODE_CONTEXT_EMBEDDING_*)
   - CODE_CONTEXT_EMBEDDING_PROVIDER: "local-http" (Ollama-style), "gemini" or "openai"
   - CODE_CONTEXT_EMBEDDING_MODEL: model for the local HTTP provider
   - CODE_CONTEXT_EMBEDDING_ENDPOINT: endpoint for the local HTTP provider
   - GEMINI_API_KEY / OPENAI_API_KEY: credentials for managed providers

2. Ranking Settings (CODE_CONTEXT_*)
   - Result cap, line caps, file size thresholds
   - Hybrid combination weights and keyword normalizer
   - Worker count and circuit breaker threshold

Explicit arguments always win over environment values.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _get_env(key: str, default: str) -> str:
    """Get environment variable with default."""
    return os.getenv(key, default)


def _get_env_int(key: str, default: int) -> int:
    """Get integer environment variable with default."""
    return int(os.getenv(key, str(default)))


def _get_env_float(key: str, default: float) -> float:
    """Get float environment variable with default."""
    return float(os.getenv(key, str(default)))


# Canonical provider ids and their accepted aliases
LOCAL_HTTP_PROVIDER = "local-http"
GEMINI_PROVIDER = "gemini"
OPENAI_PROVIDER = "openai"

PROVIDER_ALIASES: Dict[str, str] = {
    "local-http": LOCAL_HTTP_PROVIDER,
    "ollama": LOCAL_HTTP_PROVIDER,
    "local": LOCAL_HTTP_PROVIDER,
    "gemini": GEMINI_PROVIDER,
    "openai": OPENAI_PROVIDER,
}

MIB = 1024 * 1024


def normalize_provider(provider: str) -> Optional[str]:
    """Map a provider id or alias to its canonical id (None if unknown)."""
    return PROVIDER_ALIASES.get((provider or "").strip().lower())


# ============================================================================
# EMBEDDING PROVIDER DEFAULTS
# ============================================================================

@dataclass
class EmbeddingProviderDefaults:
    """Defaults applied to unset EmbeddingOptions fields.

    Environment Variables:
        CODE_CONTEXT_EMBEDDING_PROVIDER: Default provider (default: local-http)
        CODE_CONTEXT_EMBEDDING_MODEL: Local HTTP model (default: nomic-embed-text)
        CODE_CONTEXT_EMBEDDING_ENDPOINT: Local HTTP endpoint
            (default: http://localhost:11434/api/embeddings)
        CODE_CONTEXT_GEMINI_MODEL: Gemini model (default: text-embedding-004)
        CODE_CONTEXT_OPENAI_MODEL: OpenAI model (default: text-embedding-3-small)
        GEMINI_API_KEY: Gemini credential
        OPENAI_API_KEY: OpenAI credential
    """

    provider: str = field(default_factory=lambda: _get_env("CODE_CONTEXT_EMBEDDING_PROVIDER", LOCAL_HTTP_PROVIDER))
    local_model: str = field(default_factory=lambda: _get_env("CODE_CONTEXT_EMBEDDING_MODEL", "nomic-embed-text"))
    local_endpoint: str = field(
        default_factory=lambda: _get_env("CODE_CONTEXT_EMBEDDING_ENDPOINT", "http://localhost:11434/api/embeddings")
    )
    gemini_model: str = field(default_factory=lambda: _get_env("CODE_CONTEXT_GEMINI_MODEL", "text-embedding-004"))
    openai_model: str = field(default_factory=lambda: _get_env("CODE_CONTEXT_OPENAI_MODEL", "text-embedding-3-small"))
    gemini_api_key: str = field(default_factory=lambda: _get_env("GEMINI_API_KEY", ""))
    openai_api_key: str = field(default_factory=lambda: _get_env("OPENAI_API_KEY", ""))

    def model_for(self, provider: str) -> str:
        """Default model for a provider id or alias."""
        canonical = normalize_provider(provider)
        if canonical == GEMINI_PROVIDER:
            return self.gemini_model
        if canonical == OPENAI_PROVIDER:
            return self.openai_model
        return self.local_model

    def api_key_for(self, provider: str) -> str:
        """Credential from the environment for a managed provider."""
        canonical = normalize_provider(provider)
        if canonical == GEMINI_PROVIDER:
            return self.gemini_api_key
        if canonical == OPENAI_PROVIDER:
            return self.openai_api_key
        return ""


def get_embedding_provider_defaults() -> EmbeddingProviderDefaults:
    """Get embedding provider defaults."""
    return EmbeddingProviderDefaults()


# ============================================================================
# RANKING CONFIGURATION
# ============================================================================

@dataclass
class RankingConfig:
    """Tunable constants of the ranking strategies.

    The weights, thresholds and line caps are empirical defaults; only the
    shape of the hybrid combination is fixed.

    Environment Variables:
        CODE_CONTEXT_MAX_FILES: Result cap (default: 20)
        CODE_CONTEXT_LEXICAL_LINE_CAP: Lines scanned by the lexical scorer (default: 1000)
        CODE_CONTEXT_KEYWORD_NORMALIZER: Divisor for raw keyword score in hybrid (default: 10.0)
        CODE_CONTEXT_EMBEDDING_WEIGHT: Hybrid embedding weight (default: 0.7)
        CODE_CONTEXT_KEYWORD_WEIGHT: Hybrid keyword weight (default: 0.2)
        CODE_CONTEXT_PATH_WEIGHT: Hybrid path weight (default: 0.1)
        CODE_CONTEXT_EMBEDDING_MAX_BYTES: Size limit, embedding-only (default: 1 MiB)
        CODE_CONTEXT_HYBRID_MAX_BYTES: Size limit, hybrid (default: 2 MiB)
        CODE_CONTEXT_EMBEDDING_MAX_LINES: Lines embedded, embedding-only (default: 500)
        CODE_CONTEXT_HYBRID_MAX_LINES: Lines embedded, hybrid (default: 800)
        CODE_CONTEXT_MAX_WORKERS: Concurrent candidate workers (default: 1)
        CODE_CONTEXT_CIRCUIT_THRESHOLD: Consecutive embedding failures before
            the backend is skipped for the rest of the run; 0 disables the
            breaker (default: 0)
    """

    max_files: int = field(default_factory=lambda: _get_env_int("CODE_CONTEXT_MAX_FILES", 20))
    lexical_line_cap: int = field(default_factory=lambda: _get_env_int("CODE_CONTEXT_LEXICAL_LINE_CAP", 1000))
    keyword_normalizer: float = field(default_factory=lambda: _get_env_float("CODE_CONTEXT_KEYWORD_NORMALIZER", 10.0))

    # Hybrid combination weights
    embedding_weight: float = field(default_factory=lambda: _get_env_float("CODE_CONTEXT_EMBEDDING_WEIGHT", 0.7))
    keyword_weight: float = field(default_factory=lambda: _get_env_float("CODE_CONTEXT_KEYWORD_WEIGHT", 0.2))
    path_weight: float = field(default_factory=lambda: _get_env_float("CODE_CONTEXT_PATH_WEIGHT", 0.1))

    # Per-strategy file limits
    embedding_max_file_bytes: int = field(default_factory=lambda: _get_env_int("CODE_CONTEXT_EMBEDDING_MAX_BYTES", MIB))
    hybrid_max_file_bytes: int = field(default_factory=lambda: _get_env_int("CODE_CONTEXT_HYBRID_MAX_BYTES", 2 * MIB))
    embedding_max_lines: int = field(default_factory=lambda: _get_env_int("CODE_CONTEXT_EMBEDDING_MAX_LINES", 500))
    hybrid_max_lines: int = field(default_factory=lambda: _get_env_int("CODE_CONTEXT_HYBRID_MAX_LINES", 800))

    max_workers: int = field(default_factory=lambda: _get_env_int("CODE_CONTEXT_MAX_WORKERS", 1))
    circuit_failure_threshold: int = field(default_factory=lambda: _get_env_int("CODE_CONTEXT_CIRCUIT_THRESHOLD", 0))

    def validate(self) -> "RankingConfig":
        """Reject settings the ranker cannot work with.

        Raises:
            ValueError: On a negative weight or a non-positive cap
        """
        for name in ("embedding_weight", "keyword_weight", "path_weight"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        for name in (
            "max_files",
            "lexical_line_cap",
            "embedding_max_file_bytes",
            "hybrid_max_file_bytes",
            "embedding_max_lines",
            "hybrid_max_lines",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")
        if self.keyword_normalizer <= 0:
            raise ValueError(f"keyword_normalizer must be > 0, got {self.keyword_normalizer}")
        if self.circuit_failure_threshold < 0:
            raise ValueError(f"circuit_failure_threshold must be >= 0, got {self.circuit_failure_threshold}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        return self


_config: Optional[RankingConfig] = None


def get_config() -> RankingConfig:
    """Get the global ranking configuration singleton."""
    global _config
    if _config is None:
        _config = RankingConfig().validate()
    return _config


def reset_config() -> None:
    """Reset configuration (for testing)."""
    global _config
    _config = None
