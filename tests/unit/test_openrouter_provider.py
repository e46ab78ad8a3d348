"""
Unit tests for OpenRouter LLM provider.

Tests streaming responses, error handling, retry logic, and health checks
against an httpx.MockTransport.
"""

import json

import httpx
import pytest

from interview_voice.llm.local_llm import LocalLLMProvider
from interview_voice.llm.openrouter import OpenRouterProvider
from interview_voice.llm.types import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMError,
    LLMMessage,
    LLMRateLimitError,
    LLMRequest,
)


def sse(*chunks: str) -> str:
    return "".join(f"data: {c}\n\n" for c in chunks)


def delta(text: str) -> str:
    return json.dumps({"choices": [{"delta": {"content": text}}]})


def make_provider(handler, provider_cls=OpenRouterProvider, **kwargs) -> OpenRouterProvider:
    if provider_cls is LocalLLMProvider:
        provider = LocalLLMProvider(base_url="http://llm.test/v1", **kwargs)
    else:
        provider = OpenRouterProvider(api_key="test_key", **kwargs)
    provider.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider.RETRY_WAIT_MIN = 0
    provider.RETRY_WAIT_MAX = 0
    return provider


@pytest.fixture
def request_obj():
    return LLMRequest(
        messages=[LLMMessage(role="user", content="Hello")],
        model="google/gemini-2.5-flash",
        temperature=0.5,
        max_tokens=100,
    )


# ============================================================
# Provider Initialization Tests
# ============================================================


@pytest.mark.unit
def test_openrouter_initialization():
    provider = OpenRouterProvider(api_key="test_key")

    assert provider.api_key == "test_key"
    assert provider.base_url == "https://openrouter.ai/api/v1"
    assert provider.client is not None
    assert provider.provider_name == "openrouter"


@pytest.mark.unit
def test_openrouter_initialization_missing_api_key():
    with pytest.raises(ValueError, match="OpenRouter API key is required"):
        OpenRouterProvider(api_key="")


@pytest.mark.unit
def test_local_provider_needs_no_key():
    provider = LocalLLMProvider(base_url="http://localhost:11434/v1")
    assert "Authorization" not in provider._headers()


# ============================================================
# Streaming Response Tests
# ============================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_streaming_success(request_obj):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, text=sse(delta("Hello"), delta(" there"), delta("!"), "[DONE]"))

    provider = make_provider(handler)

    chunks = [c async for c in provider.generate_stream(request_obj)]

    assert chunks == ["Hello", " there", "!"]
    assert seen["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert seen["headers"]["authorization"] == "Bearer test_key"
    assert seen["headers"]["x-title"] == "AI Interview"
    assert seen["body"]["stream"] is True
    assert seen["body"]["max_tokens"] == 100
    assert seen["body"]["messages"] == [{"role": "user", "content": "Hello"}]

    await provider.close()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_streaming_skips_malformed_and_empty_chunks(request_obj):
    def handler(request):
        body = sse(
            delta("A"),
            "{not json",
            json.dumps({"choices": [{"delta": {}}]}),
            json.dumps({"choices": []}),
            delta("B"),
            "[DONE]",
        )
        return httpx.Response(200, text=": keep-alive\n\n" + body)

    provider = make_provider(handler)

    chunks = [c async for c in provider.generate_stream(request_obj)]

    assert chunks == ["A", "B"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stream_error_event_raises(request_obj):
    def handler(request):
        return httpx.Response(200, text=sse(delta("A"), json.dumps({"error": {"message": "overloaded"}})))

    provider = make_provider(handler)

    with pytest.raises(LLMError, match="overloaded"):
        async for _ in provider.generate_stream(request_obj):
            pass


# ============================================================
# Error Handling Tests
# ============================================================


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("status, error_cls", [
    (429, LLMRateLimitError),
    (401, LLMAuthenticationError),
    (403, LLMAuthenticationError),
    (500, LLMError),
])
async def test_http_errors_are_mapped(request_obj, status, error_cls):
    def handler(request):
        return httpx.Response(status, json={"error": "nope"})

    provider = make_provider(handler)

    with pytest.raises(error_cls):
        async for _ in provider.generate_stream(request_obj):
            pass


@pytest.mark.unit
@pytest.mark.asyncio
async def test_connect_errors_are_retried(request_obj):
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, text=sse(delta("ok"), "[DONE]"))

    provider = make_provider(handler)

    chunks = [c async for c in provider.generate_stream(request_obj)]

    assert chunks == ["ok"]
    assert len(attempts) == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_connect_errors_exhaust_retries(request_obj):
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ConnectError("refused", request=request)

    provider = make_provider(handler)

    with pytest.raises(LLMConnectionError):
        async for _ in provider.generate_stream(request_obj):
            pass

    assert len(attempts) == OpenRouterProvider.MAX_ATTEMPTS


# ============================================================
# Health Check Tests
# ============================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_health_check():
    provider = make_provider(lambda request: httpx.Response(200, json={"data": []}))
    assert await provider.health_check() is True

    provider = make_provider(lambda request: httpx.Response(503))
    assert await provider.health_check() is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_local_provider_streams_from_base_url(request_obj):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        return httpx.Response(200, text=sse(delta("hi"), "[DONE]"))

    provider = make_provider(handler, provider_cls=LocalLLMProvider)

    chunks = [c async for c in provider.generate_stream(request_obj)]

    assert chunks == ["hi"]
    assert seen["url"] == "http://llm.test/v1/chat/completions"
