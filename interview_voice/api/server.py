"""
FastAPI Server

HTTP/WebSocket API for the interview voice pipeline.

Endpoints:
- GET /health: liveness plus the number of active voice sessions
- GET /status: STT/LLM/TTS reachability ("ok" or "degraded")
- WS  /ws/voice?interview_id=<id>: one VoiceSession per connection

Stage services and the record store are process-wide singletons injected
with Depends, so tests can swap them through app.dependency_overrides.

Environment Variables:
- CORS_ALLOW_ORIGINS: Comma-separated origins (default: http://localhost:3000)
"""

import os
from typing import Optional

from fastapi import Depends, FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from interview_voice import __version__
from interview_voice.config.logging_config import get_logger
from interview_voice.config.pipeline import get_pipeline_config
from interview_voice.services.interview_store import InterviewStore, get_interview_store
from interview_voice.services.llm_service import LLMService, get_llm_service
from interview_voice.services.stt_service import STTService, get_stt_service
from interview_voice.services.tts_service import TTSService, get_tts_service
from interview_voice.voice.session import VoiceSession

logger = get_logger(__name__)

CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv('CORS_ALLOW_ORIGINS', 'http://localhost:3000').split(',')
    if origin.strip()
]

# ============================================================
# FAST API SETUP
# ============================================================

app = FastAPI(
    title="Interview Voice API",
    description="Real-time voice interview pipeline",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Live sessions (for /health and shutdown)
active_sessions: set[VoiceSession] = set()


# ============================================================
# SERVICE STARTUP/SHUTDOWN
# ============================================================

@app.on_event("startup")
async def startup_services():
    config = get_pipeline_config()
    logger.info(
        f"🚀 Interview voice API starting (sample_rate={config.sample_rate}, "
        f"silence={config.silence_threshold_ms}ms, language={config.language})"
    )


@app.on_event("shutdown")
async def shutdown_services():
    """Close live sessions, then the shared HTTP clients."""
    logger.info("🛑 Shutting down services...")

    for session in list(active_sessions):
        await session.close()

    await get_stt_service().close()
    await get_llm_service().close()
    await get_tts_service().close()
    await get_interview_store().close()

    logger.info("✅ Services shutdown complete")


# ============================================================
# ENDPOINTS
# ============================================================

@app.get("/health")
async def health_check():
    return {"status": "ok", "active_sessions": len(active_sessions)}


@app.get("/status")
async def get_status(
    stt: STTService = Depends(get_stt_service),
    llm: LLMService = Depends(get_llm_service),
    tts: TTSService = Depends(get_tts_service),
):
    """Upstream reachability. Reported only, never used to refuse connections."""
    services = {
        "stt": await stt.health_check(),
        "llm": await llm.health_check(),
        "tts": await tts.health_check(),
    }
    return {
        "status": "ok" if all(services.values()) else "degraded",
        "services": services,
        "active_sessions": len(active_sessions),
        "version": __version__,
    }


@app.websocket("/ws/voice")
async def websocket_voice_endpoint(
    websocket: WebSocket,
    interview_id: Optional[str] = None,
    stt: STTService = Depends(get_stt_service),
    llm: LLMService = Depends(get_llm_service),
    tts: TTSService = Depends(get_tts_service),
    store: InterviewStore = Depends(get_interview_store),
):
    """
    Browser voice streaming.

    Protocol: JSON text frames, see interview_voice.types.messages.
    """
    await websocket.accept()
    logger.info(f"🔌 Voice connection accepted (interview={interview_id or 'free mode'})")

    session = VoiceSession(
        websocket,
        stt=stt,
        llm=llm,
        tts=tts,
        store=store,
        interview_id=interview_id,
    )
    active_sessions.add(session)
    try:
        await session.run()
    except Exception as e:
        logger.error(f"❌ Voice session {session.session_id} crashed: {e}", exc_info=True)
    finally:
        active_sessions.discard(session)
