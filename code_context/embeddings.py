"""Embedding backends behind a single adapter interface.

Variants, selected by provider id:

- local-http (aliases: ollama, local): POSTs ``{model, prompt}`` to an
  Ollama-compatible endpoint and reads ``{"embedding": [...]}``.
- gemini: Google Gemini ``embedContent`` REST API.
- openai: OpenAI ``/v1/embeddings`` API.

Managed providers retry rate-limited calls with exponential backoff and
jitter (see ``code_context.resilience``). Each call opens its own
``httpx.Client`` and closes it before returning.

Usage:
    from code_context.embeddings import EmbeddingOptions, new_embedding_provider

    adapter = new_embedding_provider(EmbeddingOptions(provider="gemini").with_defaults())
    vector = adapter.generate_embedding("where is the config parsed?")
"""

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional

import httpx

from code_context.cancellation import CancellationToken
from code_context.config import (
    GEMINI_PROVIDER,
    LOCAL_HTTP_PROVIDER,
    OPENAI_PROVIDER,
    EmbeddingProviderDefaults,
    get_config,
    normalize_provider,
)
from code_context.errors import (
    BackendUnavailableError,
    RankingCancelledError,
    RateLimitedError,
    RateLimitExhaustedError,
    UnknownProviderError,
)
from code_context.observability.metrics import record_embedding_request
from code_context.resilience import BackoffConfig, retry_with_backoff

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_API_BASE = "https://api.openai.com/v1"

# Body fragments that mark a rate-limit rejection
RATE_LIMIT_MARKERS = ("resource_exhausted", "resource has been exhausted", "rate limit", "rate_limit")


@dataclass
class EmbeddingOptions:
    """Configuration for one embedding or hybrid ranking call.

    Attributes:
        provider: Provider id ("local-http", "ollama", "local", "gemini", "openai")
        query: The user query
        target_path: Root directory the candidate paths are relative to
        candidate_files: Relative paths to rank
        max_files: Result cap (<= 0 means use the default)
        model: Embedding model
        endpoint: HTTP endpoint (local provider) or API base URL override
        api_key: Credential for managed providers
    """

    provider: str = ""
    query: str = ""
    target_path: str = "."
    candidate_files: List[str] = field(default_factory=list)
    max_files: int = 0
    model: str = ""
    endpoint: str = ""
    api_key: str = ""

    def with_defaults(
        self,
        defaults: Optional[EmbeddingProviderDefaults] = None,
        max_files: Optional[int] = None,
    ) -> "EmbeddingOptions":
        """Return a copy with defaults applied to every unset field.

        Args:
            defaults: Provider defaults (default: read from the environment)
            max_files: Result cap used when unset (default: global RankingConfig)

        The endpoint default only applies to the local HTTP provider.
        """
        defaults = defaults or EmbeddingProviderDefaults()
        provider = self.provider or defaults.provider
        if self.max_files > 0:
            max_files = self.max_files
        elif max_files is None or max_files <= 0:
            max_files = get_config().max_files
        model = self.model or defaults.model_for(provider)
        endpoint = self.endpoint
        if not endpoint and normalize_provider(provider) == LOCAL_HTTP_PROVIDER:
            endpoint = defaults.local_endpoint
        api_key = self.api_key or defaults.api_key_for(provider)
        return replace(
            self,
            provider=provider,
            max_files=max_files,
            model=model,
            endpoint=endpoint,
            api_key=api_key,
            candidate_files=list(self.candidate_files),
        )


class EmbeddingAdapter(ABC):
    """Capability: turn text into a fixed-length vector."""

    provider: str = ""
    model: str = ""

    def generate_embedding(self, text: str, cancel: Optional[CancellationToken] = None) -> List[float]:
        """Generate an embedding for `text`.

        Raises:
            BackendUnavailableError: Transport failure, non-2xx status or bad payload
            RateLimitExhaustedError: Managed provider kept rate limiting
            RankingCancelledError: The run was cancelled
        """
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            embedding = self._generate(text, cancel)
        except RateLimitExhaustedError:
            record_embedding_request(self.provider, "rate_limited")
            raise
        except BackendUnavailableError:
            record_embedding_request(self.provider, "error")
            raise
        record_embedding_request(self.provider, "success")
        return embedding

    @abstractmethod
    def _generate(self, text: str, cancel: Optional[CancellationToken]) -> List[float]:
        """Backend-specific implementation."""


def _parse_vector(provider: str, values: Any) -> List[float]:
    if not isinstance(values, list) or not values:
        raise BackendUnavailableError(provider, "response contained no embedding")
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError) as e:
        raise BackendUnavailableError(provider, f"embedding contains non-numeric values: {e}") from e


def _decode_json(provider: str, response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise BackendUnavailableError(provider, f"invalid JSON response: {e}", response.status_code) from e


class LocalHTTPEmbeddingAdapter(EmbeddingAdapter):
    """Ollama-compatible embedding server reached over plain HTTP."""

    provider = LOCAL_HTTP_PROVIDER

    def __init__(
        self,
        model: str,
        endpoint: str,
        timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not endpoint:
            raise BackendUnavailableError(self.provider, "endpoint is required")
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport
        logger.info(f"Local HTTP embedding adapter: {model} at {endpoint}")

    def _generate(self, text: str, cancel: Optional[CancellationToken]) -> List[float]:
        timeout = self.timeout
        if cancel is not None and cancel.remaining() is not None:
            timeout = min(timeout, cancel.remaining())
            cancel.raise_if_cancelled()

        payload = {"model": self.model, "prompt": text}
        try:
            with httpx.Client(timeout=timeout, transport=self._transport) as client:
                response = client.post(self.endpoint, json=payload)
        except httpx.HTTPError as e:
            if cancel is not None and cancel.cancelled:
                raise RankingCancelledError() from e
            raise BackendUnavailableError(self.provider, f"request to {self.endpoint} failed: {e}") from e

        if not response.is_success:
            raise BackendUnavailableError(
                self.provider,
                f"API at {self.endpoint} returned status {response.status_code}: {response.text[:200]}",
                response.status_code,
            )

        data = _decode_json(self.provider, response)
        if not isinstance(data, dict):
            raise BackendUnavailableError(self.provider, "response is not a JSON object")
        return _parse_vector(self.provider, data.get("embedding"))


class ManagedEmbeddingAdapter(EmbeddingAdapter):
    """Base for credentialed cloud APIs with rate-limit backoff."""

    max_input_chars: int = 8000

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: str,
        backoff: Optional[BackoffConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Optional[Callable[[float], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        if not api_key:
            raise BackendUnavailableError(self.provider, "API key is required")
        self.model = model
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.backoff = backoff or BackoffConfig()
        self._transport = transport
        self._sleep = sleep
        self._rng = rng
        logger.info(f"{self.provider} embedding adapter initialized: {model}")

    @abstractmethod
    def _url(self) -> str:
        """Endpoint URL."""

    @abstractmethod
    def _headers(self) -> Dict[str, str]:
        """Authentication headers."""

    @abstractmethod
    def _payload(self, text: str) -> Dict[str, Any]:
        """Request body."""

    @abstractmethod
    def _extract(self, data: Any) -> Any:
        """Pull the raw vector out of a decoded response."""

    def _generate(self, text: str, cancel: Optional[CancellationToken]) -> List[float]:
        text = text[: self.max_input_chars]
        return retry_with_backoff(
            lambda timeout: self._request(text, timeout),
            self.backoff,
            is_retryable=lambda e: isinstance(e, RateLimitedError),
            provider=self.provider,
            cancel=cancel,
            sleep=self._sleep,
            rng=self._rng,
        )

    def _request(self, text: str, timeout: float) -> List[float]:
        headers = {"Content-Type": "application/json", **self._headers()}
        try:
            with httpx.Client(timeout=timeout, headers=headers, transport=self._transport) as client:
                response = client.post(self._url(), json=self._payload(text))
        except httpx.HTTPError as e:
            raise BackendUnavailableError(self.provider, f"request failed: {e}") from e

        if response.status_code == 429 or (
            not response.is_success and _mentions_rate_limit(response.text)
        ):
            logger.warning(f"{self.provider} embedding rate limit hit: HTTP {response.status_code}")
            raise RateLimitedError(self.provider, f"rate limited (HTTP {response.status_code})", response.status_code)

        if not response.is_success:
            raise BackendUnavailableError(
                self.provider,
                f"API error {response.status_code}: {response.text[:200]}",
                response.status_code,
            )

        data = _decode_json(self.provider, response)
        try:
            values = self._extract(data)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise BackendUnavailableError(self.provider, f"unexpected response shape: {e}") from e
        return _parse_vector(self.provider, values)


def _mentions_rate_limit(body: str) -> bool:
    body = body.lower()
    return any(marker in body for marker in RATE_LIMIT_MARKERS)


class GeminiEmbeddingAdapter(ManagedEmbeddingAdapter):
    """Google Gemini embedding API."""

    provider = GEMINI_PROVIDER
    max_input_chars = 8000  # Approximate char limit for 2048 tokens

    def _url(self) -> str:
        return f"{self.base_url}/models/{self.model}:embedContent"

    def _headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def _payload(self, text: str) -> Dict[str, Any]:
        return {
            "model": f"models/{self.model}",
            "content": {"parts": [{"text": text}]},
        }

    def _extract(self, data: Any) -> Any:
        return data["embedding"]["values"]


class OpenAIEmbeddingAdapter(ManagedEmbeddingAdapter):
    """OpenAI embedding API."""

    provider = OPENAI_PROVIDER
    max_input_chars = 30000

    def _url(self) -> str:
        return f"{self.base_url}/embeddings"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _payload(self, text: str) -> Dict[str, Any]:
        return {"model": self.model, "input": text}

    def _extract(self, data: Any) -> Any:
        return data["data"][0]["embedding"]


def new_embedding_provider(
    options: EmbeddingOptions,
    backoff: Optional[BackoffConfig] = None,
    transport: Optional[httpx.BaseTransport] = None,
    sleep: Optional[Callable[[float], None]] = None,
    rng: Optional[random.Random] = None,
) -> EmbeddingAdapter:
    """Create the adapter for `options.provider`.

    Never falls back to a provider other than the one requested.

    Args:
        options: Embedding options (unset model/credential/endpoint are defaulted)
        backoff: Backoff parameters for managed providers
        transport: httpx transport override (tests)
        sleep: Backoff wait override (tests)
        rng: Jitter random source (tests)

    Raises:
        UnknownProviderError: Unrecognised provider id, before any network call
        BackendUnavailableError: Required endpoint or credential missing
    """
    canonical = normalize_provider(options.provider)
    if canonical is None:
        raise UnknownProviderError(options.provider)

    defaults = EmbeddingProviderDefaults()
    model = options.model or defaults.model_for(canonical)

    if canonical == LOCAL_HTTP_PROVIDER:
        return LocalHTTPEmbeddingAdapter(
            model=model,
            endpoint=options.endpoint or defaults.local_endpoint,
            transport=transport,
        )

    api_key = options.api_key or defaults.api_key_for(canonical)
    if canonical == GEMINI_PROVIDER:
        return GeminiEmbeddingAdapter(
            model=model,
            api_key=api_key,
            base_url=options.endpoint or GEMINI_API_BASE,
            backoff=backoff,
            transport=transport,
            sleep=sleep,
            rng=rng,
        )
    return OpenAIEmbeddingAdapter(
        model=model,
        api_key=api_key,
        base_url=options.endpoint or OPENAI_API_BASE,
        backoff=backoff,
        transport=transport,
        sleep=sleep,
        rng=rng,
    )
