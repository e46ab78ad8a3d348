"""
LLM Service - Response Generation Stage

Builds the chat request from the conversation history plus the new user turn
and streams the interviewer's reply as text deltas.

Contract:
    generate(history, user_text, context) -> AsyncIterator[str]

The stream ends when the provider signals done. Cancelling the consuming
task closes the provider stream; nothing is appended to history here (the
session does that only after a turn completes).

Environment Variables:
- LLM_PROVIDER: 'openrouter' or 'local' (default: openrouter)
- LLM_MODEL: Model identifier (default: google/gemini-2.5-flash)
- LLM_TEMPERATURE: Sampling temperature (default: 0.7)
- LLM_MAX_TOKENS: Optional completion cap
"""

import asyncio
import os
import time
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

from interview_voice.config.logging_config import get_logger
from interview_voice.llm import LLMError, LLMMessage, LLMProvider, LLMProviderFactory, LLMRequest
from interview_voice.types.errors import GenerationUnavailable

logger = get_logger(__name__)


@dataclass
class LLMConfig:
    """Generation settings for a session."""
    provider: str
    model: str
    temperature: float = 0.7
    max_tokens: Optional[int] = None


def load_llm_config() -> LLMConfig:
    max_tokens = os.getenv('LLM_MAX_TOKENS')
    return LLMConfig(
        provider=os.getenv('LLM_PROVIDER', 'openrouter'),
        model=os.getenv('LLM_MODEL', 'google/gemini-2.5-flash'),
        temperature=float(os.getenv('LLM_TEMPERATURE', '0.7')),
        max_tokens=int(max_tokens) if max_tokens else None,
    )


def build_messages(
    history: Sequence[LLMMessage],
    user_text: Optional[str],
    context: Sequence[LLMMessage] = (),
) -> list[LLMMessage]:
    """
    Assemble the request messages.

    History keeps its insertion order and the new user turn goes last (no
    user turn when user_text is None, e.g. a time-up wrap-up).
    Context messages (e.g. the candidate's current code) are inserted right
    before the last user message so the model reads them next to the
    question they relate to.
    """
    messages = list(history)
    if user_text is not None:
        messages.append(LLMMessage(role="user", content=user_text))

    if context:
        user_positions = [i for i, m in enumerate(messages) if m.role == "user"]
        insert_at = user_positions[-1] if user_positions else len(messages)
        messages[insert_at:insert_at] = list(context)

    return messages


class LLMService:
    """
    Response generation over a pluggable LLM provider.

    Usage:
        llm_service = LLMService()
        async for delta in llm_service.generate(history, "Tell me about yourself"):
            ...
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        provider: Optional[LLMProvider] = None,
    ):
        self.config = config or load_llm_config()
        self._provider = provider

        logger.info(f"🤖 LLM Service: Initialized (provider={self.config.provider}, model={self.config.model})")

    @property
    def provider(self) -> LLMProvider:
        """Provider instance, created lazily so a missing key fails the turn, not startup."""
        if self._provider is None:
            try:
                self._provider = LLMProviderFactory.create_provider(self.config.provider)
            except ValueError as e:
                raise GenerationUnavailable(str(e)) from e
        return self._provider

    async def generate(
        self,
        history: Sequence[LLMMessage],
        user_text: Optional[str],
        context: Sequence[LLMMessage] = (),
    ) -> AsyncIterator[str]:
        """
        Stream the reply to user_text (or to history alone when None).

        Yields:
            str: Text deltas in arrival order

        Raises:
            GenerationUnavailable: Provider failure or empty reply
        """
        request = LLMRequest(
            messages=build_messages(history, user_text, context),
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )

        t_start = time.time()
        t_first: Optional[float] = None
        produced = 0
        stream = self.provider.generate_stream(request)

        try:
            async for delta in stream:
                if t_first is None:
                    t_first = time.time()
                    logger.info(f"⏱️ LATENCY [LLM first token]: {t_first - t_start:.3f}s")
                produced += len(delta)
                yield delta

        except asyncio.CancelledError:
            logger.info(f"⚠️ LLM generation cancelled after {produced} chars")
            raise

        except LLMError as e:
            logger.error(f"❌ LLM generation failed: {e}")
            raise GenerationUnavailable(str(e)) from e

        finally:
            await stream.aclose()

        if produced == 0:
            raise GenerationUnavailable("model returned an empty reply")

        logger.info(f"✅ LLM generation complete ({produced} chars, {time.time() - t_start:.2f}s)")

    async def health_check(self) -> bool:
        try:
            provider = self.provider
        except GenerationUnavailable as e:
            logger.warning(f"⚠️ LLM provider not configured: {e}")
            return False
        return await provider.health_check()

    async def close(self) -> None:
        if self._provider is not None:
            await self._provider.close()


# Singleton instance
_llm_service: Optional[LLMService] = None


def get_llm_service() -> LLMService:
    """
    Get singleton LLMService instance.

    The provider is created on first use, so a missing API key surfaces as a
    failed turn rather than a failed startup.
    """
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
