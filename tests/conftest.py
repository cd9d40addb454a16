"""Shared fixtures: isolate tests from the caller's environment."""

import pytest

from code_context.config import reset_config

_ENV_VARS = (
    "CODE_CONTEXT_EMBEDDING_PROVIDER",
    "CODE_CONTEXT_EMBEDDING_MODEL",
    "CODE_CONTEXT_EMBEDDING_ENDPOINT",
    "CODE_CONTEXT_GEMINI_MODEL",
    "CODE_CONTEXT_OPENAI_MODEL",
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "CODE_CONTEXT_MAX_FILES",
    "CODE_CONTEXT_LEXICAL_LINE_CAP",
    "CODE_CONTEXT_KEYWORD_NORMALIZER",
    "CODE_CONTEXT_EMBEDDING_WEIGHT",
    "CODE_CONTEXT_KEYWORD_WEIGHT",
    "CODE_CONTEXT_PATH_WEIGHT",
    "CODE_CONTEXT_EMBEDDING_MAX_BYTES",
    "CODE_CONTEXT_HYBRID_MAX_BYTES",
    "CODE_CONTEXT_EMBEDDING_MAX_LINES",
    "CODE_CONTEXT_HYBRID_MAX_LINES",
    "CODE_CONTEXT_MAX_WORKERS",
    "CODE_CONTEXT_CIRCUIT_THRESHOLD",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
