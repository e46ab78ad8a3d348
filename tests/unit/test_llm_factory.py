"""
Unit tests for LLMProviderFactory
"""

import pytest

from interview_voice.llm import LLMProviderFactory
from interview_voice.llm.local_llm import LocalLLMProvider
from interview_voice.llm.openrouter import OpenRouterProvider


@pytest.mark.unit
class TestLLMProviderFactory:

    def test_create_openrouter_from_env(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "env_key")

        provider = LLMProviderFactory.create_provider("openrouter")

        assert isinstance(provider, OpenRouterProvider)
        assert provider.api_key == "env_key"

    def test_create_openrouter_explicit_key(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)

        provider = LLMProviderFactory.create_provider(" OpenRouter ", api_key="explicit")

        assert provider.api_key == "explicit"

    def test_openrouter_without_key_raises(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)

        with pytest.raises(ValueError, match="OpenRouter API key not found"):
            LLMProviderFactory.create_provider("openrouter")

    def test_create_local_default_url(self, monkeypatch):
        monkeypatch.delenv("LOCAL_LLM_BASE_URL", raising=False)

        provider = LLMProviderFactory.create_provider("local")

        assert isinstance(provider, LocalLLMProvider)
        assert provider.base_url == "http://localhost:11434/v1"

    def test_create_local_from_env(self, monkeypatch):
        monkeypatch.setenv("LOCAL_LLM_BASE_URL", "http://vllm:8000/v1/")

        provider = LLMProviderFactory.create_provider("local")

        assert provider.base_url == "http://vllm:8000/v1"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            LLMProviderFactory.create_provider("carrier-pigeon")
