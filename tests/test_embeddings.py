"""Tests for embedding adapters and the provider factory.

HTTP is served by httpx.MockTransport; backoff waits are captured instead
of slept.
"""

import json

import httpx
import pytest

from code_context.cancellation import CancellationToken
from code_context.embeddings import (
    EmbeddingOptions,
    GeminiEmbeddingAdapter,
    LocalHTTPEmbeddingAdapter,
    OpenAIEmbeddingAdapter,
    new_embedding_provider,
)
from code_context.errors import (
    BackendUnavailableError,
    RankingCancelledError,
    RateLimitExhaustedError,
    UnknownProviderError,
)
from code_context.resilience import BackoffConfig

NO_JITTER = BackoffConfig(jitter=0.0)


class RecordingHandler:
    """MockTransport handler replaying queued responses and keeping requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    @property
    def transport(self):
        return httpx.MockTransport(self)

    def body(self, index=-1):
        return json.loads(self.requests[index].content)


def gemini_ok(values=(0.1, 0.2, 0.3)):
    return httpx.Response(200, json={"embedding": {"values": list(values)}})


def openai_ok(values=(0.4, 0.5)):
    return httpx.Response(200, json={"data": [{"embedding": list(values)}]})


class TestLocalHTTPAdapter:
    def test_posts_model_and_prompt(self):
        handler = RecordingHandler(httpx.Response(200, json={"embedding": [1, 2, 3]}))
        adapter = LocalHTTPEmbeddingAdapter(
            model="nomic-embed-text",
            endpoint="http://localhost:11434/api/embeddings",
            transport=handler.transport,
        )

        assert adapter.generate_embedding("parse config") == [1.0, 2.0, 3.0]
        assert handler.body() == {"model": "nomic-embed-text", "prompt": "parse config"}
        assert str(handler.requests[0].url) == "http://localhost:11434/api/embeddings"

    def test_non_2xx_raises(self):
        handler = RecordingHandler(httpx.Response(500, text="model not loaded"))
        adapter = LocalHTTPEmbeddingAdapter("m", "http://embed.local/api", transport=handler.transport)

        with pytest.raises(BackendUnavailableError) as exc_info:
            adapter.generate_embedding("x")
        assert exc_info.value.status_code == 500
        assert "model not loaded" in str(exc_info.value)

    def test_missing_embedding_raises(self):
        handler = RecordingHandler(httpx.Response(200, json={"error": "nope"}))
        adapter = LocalHTTPEmbeddingAdapter("m", "http://embed.local/api", transport=handler.transport)

        with pytest.raises(BackendUnavailableError):
            adapter.generate_embedding("x")

    def test_invalid_json_raises(self):
        handler = RecordingHandler(httpx.Response(200, text="not json"))
        adapter = LocalHTTPEmbeddingAdapter("m", "http://embed.local/api", transport=handler.transport)

        with pytest.raises(BackendUnavailableError):
            adapter.generate_embedding("x")

    def test_transport_error_raises(self):
        handler = RecordingHandler(httpx.ConnectError("connection refused"))
        adapter = LocalHTTPEmbeddingAdapter("m", "http://embed.local/api", transport=handler.transport)

        with pytest.raises(BackendUnavailableError, match="connection refused"):
            adapter.generate_embedding("x")

    def test_timeout_at_deadline_reports_cancellation(self):
        token = CancellationToken()

        def handler(request):
            token.cancel()
            raise httpx.ReadTimeout("timed out", request=request)

        adapter = LocalHTTPEmbeddingAdapter("m", "http://embed.local/api", transport=httpx.MockTransport(handler))

        with pytest.raises(RankingCancelledError):
            adapter.generate_embedding("x", token)

    def test_empty_endpoint_rejected(self):
        with pytest.raises(BackendUnavailableError):
            LocalHTTPEmbeddingAdapter("m", "")

    def test_cancelled_token_skips_request(self):
        handler = RecordingHandler(httpx.Response(200, json={"embedding": [1]}))
        adapter = LocalHTTPEmbeddingAdapter("m", "http://embed.local/api", transport=handler.transport)
        token = CancellationToken()
        token.cancel()

        with pytest.raises(RankingCancelledError):
            adapter.generate_embedding("x", token)
        assert handler.requests == []


class TestGeminiAdapter:
    def _adapter(self, handler, sleeps):
        return GeminiEmbeddingAdapter(
            model="text-embedding-004",
            api_key="test-key",
            base_url="https://generativelanguage.googleapis.com/v1beta",
            backoff=NO_JITTER,
            transport=handler.transport,
            sleep=sleeps.append,
        )

    def test_request_shape(self):
        handler = RecordingHandler(gemini_ok())
        adapter = self._adapter(handler, [])

        assert adapter.generate_embedding("hello") == pytest.approx([0.1, 0.2, 0.3])
        request = handler.requests[0]
        assert request.url.path == "/v1beta/models/text-embedding-004:embedContent"
        assert request.headers["x-goog-api-key"] == "test-key"
        assert handler.body() == {
            "model": "models/text-embedding-004",
            "content": {"parts": [{"text": "hello"}]},
        }

    def test_truncates_long_input(self):
        handler = RecordingHandler(gemini_ok())
        adapter = self._adapter(handler, [])

        adapter.generate_embedding("x" * 10000)
        assert len(handler.body()["content"]["parts"][0]["text"]) == 8000

    def test_retries_rate_limit_with_backoff(self):
        sleeps = []
        handler = RecordingHandler(httpx.Response(429), httpx.Response(429), gemini_ok())
        adapter = self._adapter(handler, sleeps)

        assert adapter.generate_embedding("hello") == pytest.approx([0.1, 0.2, 0.3])
        assert len(handler.requests) == 3
        assert sleeps == [1.0, 2.0]

    def test_resource_exhausted_body_is_rate_limit(self):
        sleeps = []
        exhausted = httpx.Response(400, json={"error": {"status": "RESOURCE_EXHAUSTED"}})
        handler = RecordingHandler(exhausted, gemini_ok())
        adapter = self._adapter(handler, sleeps)

        adapter.generate_embedding("hello")
        assert sleeps == [1.0]

    def test_rate_limit_exhausted_after_five_attempts(self):
        sleeps = []
        handler = RecordingHandler(httpx.Response(429))
        adapter = self._adapter(handler, sleeps)

        with pytest.raises(RateLimitExhaustedError) as exc_info:
            adapter.generate_embedding("hello")
        assert len(handler.requests) == 5
        assert sleeps == [1.0, 2.0, 4.0, 8.0]
        assert exc_info.value.attempts == 5

    def test_other_errors_fail_immediately(self):
        sleeps = []
        handler = RecordingHandler(httpx.Response(403, text="API key not valid"))
        adapter = self._adapter(handler, sleeps)

        with pytest.raises(BackendUnavailableError) as exc_info:
            adapter.generate_embedding("hello")
        assert not isinstance(exc_info.value, RateLimitExhaustedError)
        assert exc_info.value.status_code == 403
        assert len(handler.requests) == 1
        assert sleeps == []

    def test_cancel_during_request_is_not_backend_error(self):
        token = CancellationToken()
        sleeps = []

        def handler(request):
            token.cancel()
            raise httpx.ReadTimeout("timed out", request=request)

        adapter = GeminiEmbeddingAdapter(
            model="text-embedding-004",
            api_key="test-key",
            base_url="https://generativelanguage.googleapis.com/v1beta",
            backoff=NO_JITTER,
            transport=httpx.MockTransport(handler),
            sleep=sleeps.append,
        )

        with pytest.raises(RankingCancelledError):
            adapter.generate_embedding("hello", token)
        assert sleeps == []

    def test_requires_api_key(self):
        with pytest.raises(BackendUnavailableError, match="API key"):
            GeminiEmbeddingAdapter(model="m", api_key="", base_url="https://example.invalid")


class TestOpenAIAdapter:
    def test_request_shape(self):
        handler = RecordingHandler(openai_ok())
        adapter = OpenAIEmbeddingAdapter(
            model="text-embedding-3-small",
            api_key="sk-test",
            base_url="https://api.openai.com/v1",
            transport=handler.transport,
        )

        assert adapter.generate_embedding("hello") == pytest.approx([0.4, 0.5])
        request = handler.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/embeddings"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert handler.body() == {"model": "text-embedding-3-small", "input": "hello"}

    def test_unexpected_shape_raises(self):
        handler = RecordingHandler(httpx.Response(200, json={"data": []}))
        adapter = OpenAIEmbeddingAdapter(
            model="m", api_key="sk-test", base_url="https://api.openai.com/v1", transport=handler.transport
        )

        with pytest.raises(BackendUnavailableError, match="unexpected response shape"):
            adapter.generate_embedding("hello")


class TestNewEmbeddingProvider:
    @pytest.mark.parametrize("provider", ["local-http", "ollama", "local", "Ollama"])
    def test_local_aliases(self, provider):
        adapter = new_embedding_provider(EmbeddingOptions(provider=provider))

        assert isinstance(adapter, LocalHTTPEmbeddingAdapter)
        assert adapter.model == "nomic-embed-text"
        assert adapter.endpoint == "http://localhost:11434/api/embeddings"

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError) as exc_info:
            new_embedding_provider(EmbeddingOptions(provider="cohere"))
        assert isinstance(exc_info.value, ValueError)
        assert exc_info.value.provider == "cohere"

    def test_empty_provider_is_unknown(self):
        with pytest.raises(UnknownProviderError):
            new_embedding_provider(EmbeddingOptions(provider=""))

    def test_gemini_uses_environment_key(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "env-key")
        adapter = new_embedding_provider(EmbeddingOptions(provider="gemini"))

        assert isinstance(adapter, GeminiEmbeddingAdapter)
        assert adapter.api_key == "env-key"
        assert adapter.model == "text-embedding-004"

    def test_gemini_without_key_unavailable(self):
        with pytest.raises(BackendUnavailableError):
            new_embedding_provider(EmbeddingOptions(provider="gemini"))

    def test_openai_explicit_options(self):
        adapter = new_embedding_provider(
            EmbeddingOptions(provider="openai", model="text-embedding-3-large", api_key="sk-x")
        )

        assert isinstance(adapter, OpenAIEmbeddingAdapter)
        assert adapter.model == "text-embedding-3-large"
        assert adapter.base_url == "https://api.openai.com/v1"

    def test_transport_is_passed_through(self):
        handler = RecordingHandler(httpx.Response(200, json={"embedding": [0.5]}))
        adapter = new_embedding_provider(EmbeddingOptions(provider="local"), transport=handler.transport)

        assert adapter.generate_embedding("q") == [0.5]


class TestEmbeddingOptionsDefaults:
    def test_fills_unset_fields(self):
        options = EmbeddingOptions(query="q").with_defaults()

        assert options.provider == "local-http"
        assert options.model == "nomic-embed-text"
        assert options.endpoint == "http://localhost:11434/api/embeddings"
        assert options.max_files == 20

    def test_explicit_max_files_wins(self):
        assert EmbeddingOptions(max_files=3).with_defaults(max_files=7).max_files == 3

    def test_max_files_fallback_argument(self):
        assert EmbeddingOptions().with_defaults(max_files=7).max_files == 7

    def test_provider_from_environment(self, monkeypatch):
        monkeypatch.setenv("CODE_CONTEXT_EMBEDDING_PROVIDER", "openai")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        options = EmbeddingOptions().with_defaults()

        assert options.provider == "openai"
        assert options.model == "text-embedding-3-small"
        assert options.api_key == "sk-env"
        assert options.endpoint == ""

    def test_does_not_mutate_original(self):
        original = EmbeddingOptions(candidate_files=["a.go"])
        copy = original.with_defaults()

        assert original.provider == ""
        assert copy.candidate_files == ["a.go"]
        assert copy.candidate_files is not original.candidate_files
