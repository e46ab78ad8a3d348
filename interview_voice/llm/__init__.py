"""
LLM Provider Abstraction Layer

Unified streaming interface over OpenRouter and local OpenAI-compatible
endpoints.
"""

from interview_voice.llm.base import LLMProvider
from interview_voice.llm.factory import LLMProviderFactory
from interview_voice.llm.types import (
    LLMMessage,
    LLMRequest,
    LLMError,
    LLMTimeoutError,
    LLMRateLimitError,
    LLMConnectionError,
    LLMAuthenticationError,
)

__all__ = [
    "LLMProvider",
    "LLMProviderFactory",
    "LLMMessage",
    "LLMRequest",
    "LLMError",
    "LLMTimeoutError",
    "LLMRateLimitError",
    "LLMConnectionError",
    "LLMAuthenticationError",
]
