"""
LLMProvider: the seam between the generation stage and a chat-completions API.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

from interview_voice.llm.types import LLMRequest


class LLMProvider(ABC):
    """
    Implementations yield text deltas as they arrive. Cancelling the
    consuming task (barge-in) must close the underlying HTTP response.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.base_url = base_url

    @abstractmethod
    def generate_stream(self, request: LLMRequest) -> AsyncIterator[str]:
        """Stream reply deltas; failures raise an LLMError subclass."""

    @abstractmethod
    async def health_check(self) -> bool:
        ...

    async def close(self) -> None:
        return None

    @property
    def provider_name(self) -> str:
        # OpenRouterProvider -> "openrouter"
        return self.__class__.__name__.replace("Provider", "").lower()
