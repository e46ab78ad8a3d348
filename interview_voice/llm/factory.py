"""
Factory for creating LLM provider instances.
"""

import os
from typing import Optional

from interview_voice.config.logging_config import get_logger
from interview_voice.llm.base import LLMProvider
from interview_voice.llm.local_llm import LocalLLMProvider
from interview_voice.llm.openrouter import OpenRouterProvider

logger = get_logger(__name__)

DEFAULT_LOCAL_BASE_URL = "http://localhost:11434/v1"


class LLMProviderFactory:
    """
    Supports:
    - 'openrouter': OpenRouter.ai (requires OPENROUTER_API_KEY)
    - 'local': OpenAI-compatible endpoint (LOCAL_LLM_BASE_URL)
    """

    @staticmethod
    def create_provider(
        provider_name: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> LLMProvider:
        """
        Create an LLM provider instance.

        Raises:
            ValueError: Unknown provider name or missing configuration
        """
        provider_name = provider_name.lower().strip()

        if provider_name == "openrouter":
            api_key = api_key or os.getenv("OPENROUTER_API_KEY")
            if not api_key:
                raise ValueError(
                    "OpenRouter API key not found. "
                    "Set OPENROUTER_API_KEY environment variable or pass api_key parameter."
                )
            return OpenRouterProvider(
                api_key=api_key,
                base_url=base_url,
                site_url=os.getenv("SITE_URL", "http://localhost:3000"),
            )

        if provider_name == "local":
            base_url = base_url or os.getenv("LOCAL_LLM_BASE_URL")
            if not base_url:
                base_url = DEFAULT_LOCAL_BASE_URL
                logger.warning(f"🤖 LLM Factory: LOCAL_LLM_BASE_URL not set, using default: {base_url}")
            return LocalLLMProvider(base_url=base_url, api_key=api_key)

        raise ValueError(
            f"Unknown LLM provider: '{provider_name}'. "
            "Supported providers: 'openrouter', 'local'"
        )
