"""
Interview Voice Services

Pipeline stages (transcription, generation, synthesis) and the interview
record store.
"""

from interview_voice.services.interview_store import (
    HTTPInterviewStore,
    InMemoryInterviewStore,
    InterviewStore,
    StoreError,
    create_interview_store,
    get_interview_store,
)
from interview_voice.services.llm_service import (
    LLMConfig,
    LLMService,
    build_messages,
    get_llm_service,
    load_llm_config,
)
from interview_voice.services.stt_service import STTService, TranscriptUpdate, get_stt_service
from interview_voice.services.tts_service import TTSService, get_tts_service, split_sentences

__all__ = [
    'HTTPInterviewStore',
    'InMemoryInterviewStore',
    'InterviewStore',
    'StoreError',
    'create_interview_store',
    'get_interview_store',
    'LLMConfig',
    'LLMService',
    'build_messages',
    'get_llm_service',
    'load_llm_config',
    'STTService',
    'TranscriptUpdate',
    'get_stt_service',
    'TTSService',
    'get_tts_service',
    'split_sentences',
]
