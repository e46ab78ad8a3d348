"""
Tiered Logging Configuration for the interview voice pipeline

Levels:
- TRACE (5): per-chunk endpointing decisions, raw frames
- DEBUG (10): discarded stale results, ignored control messages
- INFO (20): connections, state transitions, stage latencies
- WARN (30): fallbacks, store failures, slow cancellations
- ERROR (40): failed turns and upstream outages

Environment Variables:
- LOG_LEVEL: Global log level (TRACE, DEBUG, INFO, WARN, ERROR) [default: INFO]
- LOG_LEVEL_VOICE: voice session, turn state machine, audio buffer
- LOG_LEVEL_STT / LOG_LEVEL_LLM / LOG_LEVEL_TTS: pipeline stages
- LOG_LEVEL_STORE: interview record store
- LOG_LEVEL_API: HTTP/WebSocket server
- LOG_LEVEL_HTTPX: httpx request logging [default: WARN, every stage call is a request]

Example Usage:
    from interview_voice.config.logging_config import get_logger

    logger = get_logger(__name__)
    logger.trace("🔍 [ENDPOINT] energy=%d", energy)
    logger.info("✅ Turn complete")
"""

import logging
import os
from typing import Optional


TRACE = 5
logging.addLevelName(TRACE, "TRACE")


def trace(self, message, *args, **kwargs):
    """Log a message with severity 'TRACE'."""
    if self.isEnabledFor(TRACE):
        self._log(TRACE, message, args, **kwargs)


logging.Logger.trace = trace


# Module prefix → override env suffix (longest prefix wins)
SERVICE_PREFIXES = {
    "interview_voice.voice": "VOICE",
    "interview_voice.services.stt_service": "STT",
    "interview_voice.services.llm_service": "LLM",
    "interview_voice.llm": "LLM",
    "interview_voice.services.tts_service": "TTS",
    "interview_voice.services.interview_store": "STORE",
    "interview_voice.api": "API",
}

# Third-party loggers quieted unless explicitly overridden
LIBRARY_DEFAULTS = {
    "httpx": ("HTTPX", "WARN"),
    "httpcore": ("HTTPX", "WARN"),
}

_LEVELS = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def _parse_log_level(level_str: str) -> int:
    return _LEVELS.get(level_str.strip().upper(), logging.INFO)


def service_for(module_name: str) -> Optional[str]:
    """Override suffix for a module ("VOICE", "LLM", ...), or None."""
    matches = [
        prefix for prefix in SERVICE_PREFIXES
        if module_name == prefix or module_name.startswith(prefix + ".")
    ]
    if not matches:
        return None
    return SERVICE_PREFIXES[max(matches, key=len)]


def get_log_level(module_name: str, default: str = "INFO") -> int:
    """
    Resolve a module's level.

    Priority:
    1. Service override (LOG_LEVEL_VOICE, LOG_LEVEL_STT, ...)
    2. Global LOG_LEVEL
    3. default
    """
    service = service_for(module_name)
    if service:
        override = os.getenv(f"LOG_LEVEL_{service}")
        if override:
            return _parse_log_level(override)

    return _parse_log_level(os.getenv("LOG_LEVEL", default))


def configure_logging(default_level: str = "INFO") -> None:
    """
    Configure the root logger. Call once at startup (see interview_voice.main).
    """
    global_level = os.getenv("LOG_LEVEL", default_level)

    logging.basicConfig(
        level=_parse_log_level(global_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    for library, (service, fallback) in LIBRARY_DEFAULTS.items():
        level = os.getenv(f"LOG_LEVEL_{service}", fallback)
        logging.getLogger(library).setLevel(_parse_log_level(level))

    root_logger = logging.getLogger()
    root_logger.info(f"🚀 Logging system initialized (global level: {global_level})")

    overrides = sorted({
        f"{service}={os.environ[f'LOG_LEVEL_{service}']}"
        for service in list(SERVICE_PREFIXES.values()) + [s for s, _ in LIBRARY_DEFAULTS.values()]
        if os.getenv(f"LOG_LEVEL_{service}")
    })
    if overrides:
        root_logger.info(f"📋 Module overrides: {', '.join(overrides)}")


def get_logger(module_name: str) -> logging.Logger:
    """Logger for module_name (use __name__) with its resolved level."""
    logger = logging.getLogger(module_name)
    logger.setLevel(get_log_level(module_name))
    return logger


class SessionLogAdapter(logging.LoggerAdapter):
    """
    Prefixes every line with the voice session id so interleaved sessions
    can be told apart.

    Usage:
        log = SessionLogAdapter(logger, session_id)
        log.info("🎙️ listening")   # → "[a1b2c3d4] 🎙️ listening"
    """

    def __init__(self, logger: logging.Logger, session_id: str):
        super().__init__(logger, {"session_id": session_id})

    def process(self, msg, kwargs):
        return f"[{self.extra['session_id'][:8] or '-'}] {msg}", kwargs

    def trace(self, msg, *args, **kwargs):
        if self.logger.isEnabledFor(TRACE):
            msg, kwargs = self.process(msg, kwargs)
            self.logger._log(TRACE, msg, args, **kwargs)
