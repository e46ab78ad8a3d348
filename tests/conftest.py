"""
Pytest configuration and shared fixtures for interview voice tests
"""
import pytest

from interview_voice.config.pipeline import PipelineConfig, reset_pipeline_config
from interview_voice.services.interview_store import InMemoryInterviewStore
from interview_voice.voice.session import VoiceSession
from tests.mocks.fake_services import FakeLLMService, FakeSTTService, FakeTTSService
from tests.mocks.fake_websocket import FakeWebSocket


# ============================================================
# Configuration
# ============================================================

@pytest.fixture
def pipeline_config():
    """
    Fast pipeline config for tests

    Short stage timeouts and cancel grace so failure paths finish quickly.
    """
    return PipelineConfig(
        silence_threshold_ms=100,
        max_utterance_ms=5000,
        min_utterance_bytes=1000,
        transcription_timeout_s=2.0,
        generation_timeout_s=2.0,
        synthesis_timeout_s=2.0,
        cancel_grace_s=0.5,
    )


@pytest.fixture(autouse=True)
def _reset_runtime_config():
    """Drop runtime config overrides between tests"""
    yield
    reset_pipeline_config()


# ============================================================
# Fake stages and transport
# ============================================================

@pytest.fixture
def fake_stt():
    return FakeSTTService()


@pytest.fixture
def fake_llm():
    return FakeLLMService()


@pytest.fixture
def fake_tts():
    return FakeTTSService()


@pytest.fixture
def fake_websocket():
    return FakeWebSocket()


@pytest.fixture
def interview_store():
    return InMemoryInterviewStore()


@pytest.fixture
async def voice_session(fake_websocket, fake_stt, fake_llm, fake_tts, interview_store, pipeline_config):
    """
    Started VoiceSession wired to fakes (free mode)

    Usage:
        async def test_turn(voice_session, fake_websocket):
            await voice_session.handle_message(msg("start_listening"))
            await voice_session.flush()
            assert fake_websocket.types() == ["state_change"]
    """
    session = VoiceSession(
        fake_websocket,
        stt=fake_stt,
        llm=fake_llm,
        tts=fake_tts,
        store=interview_store,
        config=pipeline_config,
        session_id="test-session",
    )
    await session.start()
    yield session
    await session.close()


# ============================================================
# Test Data Fixtures
# ============================================================

@pytest.fixture
def sample_transcript():
    return "I have five years of Python experience"
