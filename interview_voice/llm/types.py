"""
Request and error types shared by the LLM providers.

Providers raise the LLMError subclasses below. The generation stage reports
every one of them to the client as GenerationUnavailable; the subclasses only
shape the log line.
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class LLMMessage(BaseModel):
    """One history entry as sent to the chat-completions API."""

    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class LLMRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    messages: List[LLMMessage] = Field(..., min_length=1)
    model: str
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)


class LLMError(Exception):
    pass


class LLMTimeoutError(LLMError):
    pass


class LLMRateLimitError(LLMError):
    """HTTP 429 from the provider."""


class LLMConnectionError(LLMError):
    """Network failure or a non-auth HTTP error status."""


class LLMAuthenticationError(LLMError):
    """HTTP 401/403: missing or rejected API key."""
