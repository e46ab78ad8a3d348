"""
Pipeline Configuration Module

Global defaults for the voice turn pipeline: endpointing policy, utterance
limits, per-stage timeouts and per-session defaults.
Loaded from environment variables with sensible fallback defaults.

Architecture:
- Global defaults (this module) → VoiceSession (per connection) → runtime usage
"""

import os
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class PipelineConfig:
    """
    Configuration for one voice session's turn pipeline.

    Endpointing values are tuning knobs, not correctness contracts: the
    client can always end an utterance explicitly with stop_listening.
    """

    # Inbound audio format (PCM16 mono)
    sample_rate: int = 16000

    # Trailing silence after speech that ends an utterance
    silence_threshold_ms: int = 800

    # Mean absolute PCM16 amplitude above which a chunk counts as speech
    energy_threshold: int = 300

    # Hard cap on a single utterance; forces end-of-utterance
    max_utterance_ms: int = 45000

    # Utterances smaller than this are treated as empty (noise, clicks)
    min_utterance_bytes: int = 1000

    # Per-stage maximum durations (seconds)
    transcription_timeout_s: float = 30.0
    generation_timeout_s: float = 60.0
    synthesis_timeout_s: float = 120.0

    # Bounded wait for a cancelled stage to unwind
    cancel_grace_s: float = 2.0

    # Session defaults (overridable by the client "config" message)
    language: str = "en"
    speed: float = 1.0

    # Most recent user/assistant messages reloaded from the record store
    history_limit: int = 50

    # Interview length; a warning at 80% and a wrap-up turn at 100% (0 = no limit)
    time_limit_s: float = 0.0

    def validate(self) -> None:
        """Validate configuration values."""
        if self.sample_rate not in (8000, 16000, 22050, 24000, 44100, 48000):
            raise ValueError("sample_rate must be a standard PCM rate (8000-48000)")
        if not 100 <= self.silence_threshold_ms <= 10000:
            raise ValueError("silence_threshold_ms must be between 100 and 10000")
        if not 0 <= self.energy_threshold <= 32767:
            raise ValueError("energy_threshold must be between 0 and 32767")
        if self.max_utterance_ms < self.silence_threshold_ms:
            raise ValueError("max_utterance_ms must be >= silence_threshold_ms")
        if self.min_utterance_bytes < 0:
            raise ValueError("min_utterance_bytes must be >= 0")
        for name in ("transcription_timeout_s", "generation_timeout_s", "synthesis_timeout_s", "cancel_grace_s"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if not 0.25 <= self.speed <= 4.0:
            raise ValueError("speed must be between 0.25 and 4.0")
        if self.history_limit < 0:
            raise ValueError("history_limit must be >= 0")
        if self.time_limit_s < 0:
            raise ValueError("time_limit_s must be >= 0")


def load_pipeline_config() -> PipelineConfig:
    """
    Load pipeline configuration from environment variables.

    Environment Variables:
        AUDIO_SAMPLE_RATE: Inbound PCM sample rate (default: 16000)
        SILENCE_THRESHOLD_MS: Trailing silence that ends an utterance (default: 800)
        SPEECH_ENERGY_THRESHOLD: Speech energy threshold (default: 300)
        MAX_UTTERANCE_TIME_MS: Max utterance length (default: 45000)
        MIN_UTTERANCE_BYTES: Minimum utterance size (default: 1000)
        STT_TIMEOUT_S / LLM_TIMEOUT_S / TTS_TIMEOUT_S: Stage timeouts
        CANCEL_GRACE_S: Wait bound for cancelled stages (default: 2.0)
        DEFAULT_LANGUAGE: Transcription language hint (default: en)
        DEFAULT_SPEED: Synthesis speed (default: 1.0)
        HISTORY_LIMIT: Messages reloaded on connect (default: 50)
        TIME_LIMIT_S: Interview time limit in seconds (default: 0, no limit)

    Returns:
        PipelineConfig with values loaded from environment or defaults
    """
    config = PipelineConfig(
        sample_rate=int(os.getenv('AUDIO_SAMPLE_RATE', '16000')),
        silence_threshold_ms=int(os.getenv('SILENCE_THRESHOLD_MS', '800')),
        energy_threshold=int(os.getenv('SPEECH_ENERGY_THRESHOLD', '300')),
        max_utterance_ms=int(os.getenv('MAX_UTTERANCE_TIME_MS', '45000')),
        min_utterance_bytes=int(os.getenv('MIN_UTTERANCE_BYTES', '1000')),
        transcription_timeout_s=float(os.getenv('STT_TIMEOUT_S', '30')),
        generation_timeout_s=float(os.getenv('LLM_TIMEOUT_S', '60')),
        synthesis_timeout_s=float(os.getenv('TTS_TIMEOUT_S', '120')),
        cancel_grace_s=float(os.getenv('CANCEL_GRACE_S', '2.0')),
        language=os.getenv('DEFAULT_LANGUAGE', 'en'),
        speed=float(os.getenv('DEFAULT_SPEED', '1.0')),
        history_limit=int(os.getenv('HISTORY_LIMIT', '50')),
        time_limit_s=float(os.getenv('TIME_LIMIT_S', '0')),
    )

    config.validate()
    return config


# Global singleton instance
_pipeline_config: PipelineConfig | None = None

# Runtime overrides (in-memory, reset on restart)
_runtime_overrides: PipelineConfig | None = None


def get_pipeline_config() -> PipelineConfig:
    """
    Get global pipeline configuration singleton.

    Priority:
    1. Runtime overrides (set via update_pipeline_config)
    2. Environment variables (loaded on first call)
    """
    global _pipeline_config

    if _runtime_overrides is not None:
        return _runtime_overrides

    if _pipeline_config is None:
        _pipeline_config = load_pipeline_config()
    return _pipeline_config


def update_pipeline_config(**changes) -> PipelineConfig:
    """
    Update pipeline configuration at runtime.

    Only affects sessions created after the call; live sessions keep the
    config they were created with.

    Raises:
        ValueError: If validation fails or an unknown field is given
    """
    global _runtime_overrides

    current = get_pipeline_config()
    unknown = set(changes) - set(current.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown pipeline config fields: {', '.join(sorted(unknown))}")

    new_config = replace(current, **{k: v for k, v in changes.items() if v is not None})
    new_config.validate()

    _runtime_overrides = new_config
    return new_config


def reset_pipeline_config() -> PipelineConfig:
    """Drop runtime overrides and return the environment defaults."""
    global _runtime_overrides
    _runtime_overrides = None
    return get_pipeline_config()
