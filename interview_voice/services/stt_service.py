"""
STT Service - Transcription Stage

Sends a complete utterance to an OpenAI-style transcription endpoint and
yields partial and final transcripts.

Contract:
    transcribe(audio, language) -> AsyncIterator[TranscriptUpdate]
    zero or more partial updates, then exactly one final update

Wire format:
    POST {STT_BASE_URL}/audio/transcriptions  (multipart)
        file=audio.wav, language=<hint>, stream=true
    Response either
        application/json   {"text": "..."}                    → final only
        text/event-stream  data: {"text": "...", "final": false} ...

Cancelling the consuming task aborts the HTTP request; a cancelled call never
yields a final transcript.

Environment Variables:
- STT_BASE_URL: Transcription service base URL (default: http://localhost:8001/v1)
- STT_API_KEY: Optional key, sent as "Authorization: Key <key>"
- STT_REQUEST_TIMEOUT_S: HTTP timeout (default: 30)
"""

import asyncio
import io
import json
import os
import time
import wave
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx

from interview_voice.config.logging_config import get_logger
from interview_voice.types.errors import EmptyUtterance, TranscriptionUnavailable

logger = get_logger(__name__)

STT_BASE_URL = os.getenv('STT_BASE_URL', 'http://localhost:8001/v1')
STT_API_KEY = os.getenv('STT_API_KEY') or os.getenv('SERVICE_API_KEY')
STT_REQUEST_TIMEOUT_S = float(os.getenv('STT_REQUEST_TIMEOUT_S', '30'))


@dataclass(frozen=True)
class TranscriptUpdate:
    text: str
    final: bool


def pcm_to_wav(pcm: bytes, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap raw PCM16 in a WAV container for upload."""
    out = io.BytesIO()
    with wave.open(out, 'wb') as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return out.getvalue()


class STTService:
    """
    Speech-to-text over HTTP.

    Usage:
        stt_service = STTService()
        async for update in stt_service.transcribe(audio, language="en"):
            if update.final:
                ...
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sample_rate: int = 16000,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Override STT_BASE_URL
            api_key: Override STT_API_KEY
            sample_rate: PCM sample rate of submitted utterances
            timeout_s: Override STT_REQUEST_TIMEOUT_S
            transport: Custom httpx transport (tests)
        """
        self.base_url = (base_url or STT_BASE_URL).rstrip('/')
        self.api_key = api_key if api_key is not None else STT_API_KEY
        self.sample_rate = sample_rate
        self.timeout = timeout_s or STT_REQUEST_TIMEOUT_S
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(f"🎤 STTService initialized (url={self.base_url})")

    async def transcribe(self, audio: bytes, language: str) -> AsyncIterator[TranscriptUpdate]:
        """
        Transcribe one utterance.

        Raises:
            TranscriptionUnavailable: HTTP or connection failure, malformed response
            EmptyUtterance: Service returned blank text
        """
        t_start = time.time()
        headers = {}
        if self.api_key:
            headers['Authorization'] = f"Key {self.api_key}"

        files = {'file': ('audio.wav', pcm_to_wav(audio, self.sample_rate), 'audio/wav')}
        data = {'language': language, 'stream': 'true'}

        logger.info(f"🎤 STT request: {len(audio)} bytes, language={language}")

        final_text: Optional[str] = None
        try:
            client = await self._ensure_client()
            async with client.stream(
                'POST',
                f"{self.base_url}/audio/transcriptions",
                headers=headers,
                files=files,
                data=data,
            ) as response:
                if response.is_error:
                    raise TranscriptionUnavailable(f"STT HTTP {response.status_code}")

                content_type = response.headers.get('content-type', '')
                if content_type.startswith('text/event-stream'):
                    async for update in self._parse_event_stream(response):
                        if update.final:
                            final_text = update.text
                            break
                        yield update
                else:
                    body = await response.aread()
                    final_text = self._parse_json_body(body)

        except asyncio.CancelledError:
            logger.info("⚠️ STT request cancelled")
            raise

        except httpx.TimeoutException as e:
            logger.error(f"❌ STT timeout: {e}")
            raise TranscriptionUnavailable(f"STT request timed out: {e}") from e

        except httpx.RequestError as e:
            logger.error(f"❌ STT connection error: {e}")
            raise TranscriptionUnavailable(f"STT connection error: {e}") from e

        if final_text is None:
            raise TranscriptionUnavailable("STT stream ended without a final transcript")

        final_text = final_text.strip()
        if not final_text:
            raise EmptyUtterance("transcription returned no text")

        logger.info(f"⏱️ LATENCY [STT]: {time.time() - t_start:.3f}s, text=\"{final_text[:80]}\"")
        yield TranscriptUpdate(text=final_text, final=True)

    @staticmethod
    def _parse_json_body(body: bytes) -> str:
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            raise TranscriptionUnavailable(f"STT returned invalid JSON: {e}") from e
        if not isinstance(payload, dict) or not isinstance(payload.get('text'), str):
            raise TranscriptionUnavailable("STT response has no 'text' field")
        return payload['text']

    @staticmethod
    async def _parse_event_stream(response: httpx.Response) -> AsyncIterator[TranscriptUpdate]:
        async for line in response.aiter_lines():
            line = line.strip()
            if not line.startswith('data:'):
                continue
            data = line[5:].strip()
            if data == '[DONE]':
                break
            try:
                event = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"⚠️ STT: unparseable event: {data[:100]}")
                continue
            if 'error' in event:
                raise TranscriptionUnavailable(f"STT stream error: {event['error']}")
            text = event.get('text')
            if isinstance(text, str):
                yield TranscriptUpdate(text=text, final=bool(event.get('final')))

    async def health_check(self) -> bool:
        try:
            client = await self._ensure_client()
            response = await client.get(f"{self.base_url}/health", timeout=5.0)
            return response.status_code == 200
        except Exception as e:
            logger.debug(f"⚠️ STT health check failed: {e}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("🎤 STTService closed")

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client


# Singleton instance
_stt_service: Optional[STTService] = None


def get_stt_service() -> STTService:
    global _stt_service
    if _stt_service is None:
        _stt_service = STTService()
    return _stt_service
