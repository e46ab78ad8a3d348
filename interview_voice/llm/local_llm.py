"""
Local LLM provider for OpenAI-compatible endpoints (Ollama, vLLM, LM Studio).
"""

from typing import Optional

from interview_voice.llm.openrouter import OpenRouterProvider


class LocalLLMProvider(OpenRouterProvider):
    """Same wire format as OpenRouter; no API key required."""

    TIMEOUT_FIRST_TOKEN = 120.0  # local models may be slower to start

    def __init__(self, base_url: str, api_key: Optional[str] = None):
        if not base_url:
            raise ValueError("Base URL is required for local LLM provider")
        super().__init__(api_key=api_key, base_url=base_url)

    def _validate_credentials(self) -> None:
        pass

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers
