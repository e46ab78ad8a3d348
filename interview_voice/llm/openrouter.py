"""
OpenRouter.ai LLM provider implementation.

OpenRouter exposes many models behind the OpenAI Chat Completions API; the
response is streamed as Server-Sent Events:

    data: {"choices":[{"delta":{"content":"Hello"}}]}
    data: [DONE]
"""

import json
from typing import AsyncIterator, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from interview_voice.config.logging_config import get_logger
from interview_voice.llm.base import LLMProvider
from interview_voice.llm.types import (
    LLMRequest,
    LLMError,
    LLMTimeoutError,
    LLMRateLimitError,
    LLMConnectionError,
    LLMAuthenticationError,
)

logger = get_logger(__name__)

RETRYABLE_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class OpenRouterProvider(LLMProvider):
    """
    OpenRouter.ai LLM provider.

    Connection failures are retried with exponential backoff before the first
    byte; once streaming has started, errors propagate immediately.
    """

    API_BASE = "https://openrouter.ai/api/v1"
    TIMEOUT_FIRST_TOKEN = 30.0  # seconds
    MAX_ATTEMPTS = 3
    RETRY_WAIT_MIN = 1.0  # seconds
    RETRY_WAIT_MAX = 8.0

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        site_url: str = "http://localhost:3000",
        app_title: str = "AI Interview",
    ):
        super().__init__(api_key=api_key, base_url=(base_url or self.API_BASE).rstrip("/"))
        self._validate_credentials()

        self.site_url = site_url
        self.app_title = app_title
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=10.0,
                read=self.TIMEOUT_FIRST_TOKEN,
                write=10.0,
                pool=10.0,
            ),
            follow_redirects=True,
        )

        logger.info(f"🤖 LLM [{self.provider_name}]: Initialized with base URL {self.base_url}")

    def _validate_credentials(self) -> None:
        if not self.api_key:
            raise ValueError("OpenRouter API key is required")

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.site_url,
            "X-Title": self.app_title,
            "Content-Type": "application/json",
        }

    async def generate_stream(self, request: LLMRequest) -> AsyncIterator[str]:
        """
        Stream a chat completion, yielding content deltas.

        Raises:
            LLMTimeoutError: Request timeout
            LLMRateLimitError: Rate limit (429 status)
            LLMAuthenticationError: Invalid API key (401/403)
            LLMConnectionError: Network error
            LLMError: Other errors
        """
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": request.model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "temperature": request.temperature,
            "stream": True,
        }
        if request.max_tokens:
            payload["max_tokens"] = request.max_tokens

        logger.info(f"🤖 LLM [{self.provider_name}]: Streaming request to model '{request.model}' ({len(request.messages)} messages)")

        response: Optional[httpx.Response] = None
        try:
            response = await self._open_stream(url, payload)

            chunk_count = 0
            async for delta in self._parse_sse_stream(response):
                chunk_count += 1
                yield delta

            logger.info(f"🤖 LLM [{self.provider_name}]: Streaming complete ({chunk_count} chunks)")

        except httpx.TimeoutException as e:
            logger.error(f"❌ LLM [{self.provider_name}]: Timeout - {e}")
            raise LLMTimeoutError(f"{self.provider_name} request timeout: {e}") from e

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                raise LLMRateLimitError(f"{self.provider_name} rate limit exceeded") from e
            if status in (401, 403):
                raise LLMAuthenticationError(f"{self.provider_name} rejected credentials (status {status})") from e
            logger.error(f"❌ LLM [{self.provider_name}]: HTTP error {status}")
            raise LLMError(f"{self.provider_name} HTTP error: {status}") from e

        except httpx.RequestError as e:
            logger.error(f"❌ LLM [{self.provider_name}]: Connection error - {e}")
            raise LLMConnectionError(f"{self.provider_name} connection error: {e}") from e

        finally:
            if response is not None:
                await response.aclose()

    async def _open_stream(self, url: str, payload: dict) -> httpx.Response:
        """Send the request with streaming enabled, retrying connection failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.MAX_ATTEMPTS),
            wait=wait_exponential(multiplier=1, min=self.RETRY_WAIT_MIN, max=self.RETRY_WAIT_MAX),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        ):
            with attempt:
                request = self.client.build_request("POST", url, headers=self._headers(), json=payload)
                response = await self.client.send(request, stream=True)
                if response.is_error:
                    await response.aread()
                    await response.aclose()
                    response.raise_for_status()
                return response

    async def _parse_sse_stream(self, response: httpx.Response) -> AsyncIterator[str]:
        """Yield content deltas from an SSE chat completion stream."""
        async for line in response.aiter_lines():
            line = line.strip()
            if not line.startswith("data:"):
                continue

            data = line[5:].strip()
            if data == "[DONE]":
                break

            try:
                chunk = json.loads(data)
            except json.JSONDecodeError as e:
                logger.warning(f"⚠️ LLM [{self.provider_name}]: Failed to parse SSE chunk: {e}, data: {data[:100]}")
                continue

            if "error" in chunk:
                raise LLMError(f"{self.provider_name} stream error: {chunk['error']}")

            choices = chunk.get("choices") or []
            if choices:
                content = (choices[0].get("delta") or {}).get("content")
                if content:
                    yield content

    async def health_check(self) -> bool:
        try:
            response = await self.client.get(f"{self.base_url}/models", headers=self._headers(), timeout=10.0)
            response.raise_for_status()
            return True
        except Exception as e:
            logger.error(f"❌ LLM [{self.provider_name}]: Health check failed - {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
