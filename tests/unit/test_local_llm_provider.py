"""
Unit tests for Local LLM provider.

Tests initialization, headers and streaming for OpenAI-compatible local
endpoints (Ollama, vLLM, LM Studio).
"""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from interview_voice.llm.local_llm import LocalLLMProvider
from interview_voice.llm.types import (
    LLMMessage,
    LLMRequest,
    LLMTimeoutError,
)


def mock_stream_response(*lines: str) -> MagicMock:
    response = MagicMock()
    response.is_error = False
    response.aclose = AsyncMock()

    async def aiter_lines():
        for line in lines:
            yield line

    response.aiter_lines = aiter_lines
    return response


@pytest.fixture
def request_obj():
    return LLMRequest(
        messages=[LLMMessage(role="user", content="Hello")],
        model="llama3:8b",
    )


# ============================================================
# Provider Initialization Tests
# ============================================================


@pytest.mark.unit
def test_local_llm_initialization():
    """Test Local LLM provider initialization"""
    # ACT
    provider = LocalLLMProvider(base_url="http://localhost:11434/v1")

    # ASSERT
    assert provider.base_url == "http://localhost:11434/v1"
    assert provider.api_key is None
    assert provider.client is not None
    assert provider.client.timeout.read == LocalLLMProvider.TIMEOUT_FIRST_TOKEN


@pytest.mark.unit
def test_local_llm_initialization_missing_base_url():
    """Test Local LLM provider fails without base URL"""
    # ACT & ASSERT
    with pytest.raises(ValueError) as exc_info:
        LocalLLMProvider(base_url="")

    assert "Base URL is required" in str(exc_info.value)


@pytest.mark.unit
def test_local_llm_strips_trailing_slash():
    """Test Local LLM provider strips trailing slash from base URL"""
    # ACT
    provider = LocalLLMProvider(base_url="http://localhost:11434/v1/")

    # ASSERT
    assert provider.base_url == "http://localhost:11434/v1"


@pytest.mark.unit
def test_local_llm_headers():
    """Authorization is only sent when an API key is configured"""
    # ACT
    anonymous = LocalLLMProvider(base_url="http://localhost:11434/v1")
    keyed = LocalLLMProvider(base_url="http://localhost:1234/v1", api_key="optional_key")

    # ASSERT
    assert "Authorization" not in anonymous._headers()
    assert keyed._headers()["Authorization"] == "Bearer optional_key"


# ============================================================
# Streaming Response Tests
# ============================================================


@pytest.mark.unit
@pytest.mark.asyncio
async def test_local_llm_streaming_success(request_obj):
    """Test Local LLM provider streaming response"""
    # ARRANGE
    provider = LocalLLMProvider(base_url="http://localhost:11434/v1")
    mock_response = mock_stream_response(
        'data: {"choices":[{"delta":{"content":"Hello"}}]}',
        'data: {"choices":[{"delta":{"content":" from"}}]}',
        'data: {"choices":[{"delta":{"content":" Ollama"}}]}',
        "data: [DONE]",
    )

    with patch.object(provider.client, "send", new_callable=AsyncMock) as mock_send:
        mock_send.return_value = mock_response

        # ACT
        chunks = [chunk async for chunk in provider.generate_stream(request_obj)]

    # ASSERT
    assert chunks == ["Hello", " from", " Ollama"]
    sent_request = mock_send.call_args[0][0]
    assert str(sent_request.url) == "http://localhost:11434/v1/chat/completions"
    assert mock_send.call_args[1] == {"stream": True}
    mock_response.aclose.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_local_llm_read_timeout(request_obj):
    """Read timeouts are not retried and map to LLMTimeoutError"""
    # ARRANGE
    provider = LocalLLMProvider(base_url="http://localhost:11434/v1")

    with patch.object(provider.client, "send", new_callable=AsyncMock) as mock_send:
        mock_send.side_effect = httpx.ReadTimeout("model still loading")

        # ACT & ASSERT
        with pytest.raises(LLMTimeoutError):
            async for _ in provider.generate_stream(request_obj):
                pass

    assert mock_send.await_count == 1
