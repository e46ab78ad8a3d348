"""
TTS Service - Synthesis & Playback Stage

Synthesizes the interviewer's reply and yields raw PCM16 frames in arrival
order so the session can forward them to the client immediately.

Contract:
    synthesize(text, speed) -> AsyncIterator[bytes]

Strategy:
- The reply is split into sentences so the first audio arrives after the
  first sentence is synthesized, not the whole reply.
- Each sentence is streamed from POST {TTS_BASE_URL}/stream (SSE events with
  base64 "audio", optional "error"/"recoverable", and "done").
- If the stream cannot be opened, the sentence falls back to the buffered
  POST {TTS_BASE_URL}/audio/speech endpoint (response_format=pcm).
- Cancelling the consuming task stops reading the upstream stream; nothing
  buffered is yielded afterwards.

Environment Variables:
- TTS_BASE_URL: Synthesis service base URL (default: http://localhost:8002/v1)
- TTS_API_KEY: Optional key, sent as "Authorization: Key <key>"
- TTS_VOICE: Voice id (default: default)
- TTS_REQUEST_TIMEOUT_S: HTTP timeout (default: 60)
- TTS_FRAME_BYTES: Frame size for buffered fallback audio (default: 8192)
"""

import asyncio
import base64
import binascii
import json
import os
import re
import time
from contextlib import aclosing
from typing import AsyncIterator, List, Optional

import httpx

from interview_voice.config.logging_config import get_logger
from interview_voice.types.errors import SynthesisUnavailable

logger = get_logger(__name__)

TTS_BASE_URL = os.getenv('TTS_BASE_URL', 'http://localhost:8002/v1')
TTS_API_KEY = os.getenv('TTS_API_KEY') or os.getenv('SERVICE_API_KEY')
TTS_VOICE = os.getenv('TTS_VOICE', 'default')
TTS_REQUEST_TIMEOUT_S = float(os.getenv('TTS_REQUEST_TIMEOUT_S', '60'))
TTS_FRAME_BYTES = int(os.getenv('TTS_FRAME_BYTES', '8192'))


# ============================================================
# Sentence splitting
# ============================================================

# Words whose trailing period does not end a sentence
ABBREVIATIONS = {
    'mr', 'mrs', 'ms', 'dr', 'prof', 'sr', 'jr',
    'etc', 'vs', 'no', 'vol', 'fig', 'st',
    'i.e', 'e.g', 'cf', 'approx',
}

# A run of terminal punctuation followed by whitespace or end of text
_BOUNDARY = re.compile(r'[.!?]+(?=\s|$)')
_TRAILING_WORD = re.compile(r'([A-Za-z.]+)$')


def _ends_sentence(text: str, pos: int, punct: str) -> bool:
    if len(punct) > 1 and set(punct) == {'.'}:
        return False  # ellipsis
    if punct != '.':
        return True

    match = _TRAILING_WORD.search(text[:pos])
    if match:
        word = match.group(1).lower().strip('.')
        if word in ABBREVIATIONS:
            return False
        if len(word) == 1 and text[pos - 1].isupper():
            return False  # initial, e.g. "J. Smith"
    return True


def split_sentences(text: str, min_length: int = 10) -> List[str]:
    """
    Split a reply into sentences for incremental synthesis.

    Handles decimals (3.14), abbreviations (Dr., e.g.), initials and
    ellipses. Sentences shorter than min_length are merged with the next
    one so very short phrases ("Hi.") are not synthesized on their own.
    """
    sentences: List[str] = []
    pending = ""
    start = 0

    for match in _BOUNDARY.finditer(text):
        if not _ends_sentence(text, match.start(), match.group()):
            continue
        sentence = text[start:match.end()].strip()
        start = match.end()
        if not sentence:
            continue
        pending = f"{pending} {sentence}".strip()
        if len(pending) >= min_length:
            sentences.append(pending)
            pending = ""

    rest = f"{pending} {text[start:].strip()}".strip()
    if rest:
        sentences.append(rest)
    return sentences


class TTSStreamError(Exception):
    """The streaming endpoint failed before producing audio for a sentence."""


# ============================================================
# Service
# ============================================================

class TTSService:
    """
    Text-to-speech over HTTP.

    Usage:
        tts_service = TTSService()
        async for frame in tts_service.synthesize("Hello there.", speed=1.0):
            await send(frame)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        voice: Optional[str] = None,
        timeout_s: Optional[float] = None,
        frame_bytes: Optional[int] = None,
        min_sentence_length: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or TTS_BASE_URL).rstrip('/')
        self.api_key = api_key if api_key is not None else TTS_API_KEY
        self.voice = voice or TTS_VOICE
        self.timeout = timeout_s or TTS_REQUEST_TIMEOUT_S
        self.frame_bytes = frame_bytes or TTS_FRAME_BYTES
        self.min_sentence_length = min_sentence_length
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        logger.info(f"🔊 TTSService initialized (url={self.base_url}, voice={self.voice})")

    async def synthesize(self, text: str, speed: float = 1.0) -> AsyncIterator[bytes]:
        """
        Yield PCM16 frames for text, sentence by sentence.

        Raises:
            SynthesisUnavailable: Both the stream and the fallback failed for a
                sentence, or the stream broke after audio was already sent
        """
        sentences = split_sentences(text, self.min_sentence_length)
        t_start = time.time()
        first_frame = True
        total_bytes = 0

        logger.info(f"🔊 TTS request: {len(sentences)} sentences, {len(text)} chars, speed={speed}")

        try:
            for index, sentence in enumerate(sentences):
                produced = False
                try:
                    async with aclosing(self._stream_sentence(sentence, speed)) as frames:
                        async for frame in frames:
                            produced = True
                            if first_frame:
                                logger.info(f"⏱️ LATENCY [TTS first byte]: {time.time() - t_start:.3f}s")
                                first_frame = False
                            total_bytes += len(frame)
                            yield frame
                    if not produced:
                        raise TTSStreamError("stream finished without audio")

                except (TTSStreamError, httpx.HTTPError) as e:
                    if produced:
                        raise SynthesisUnavailable(f"TTS stream broke mid-sentence: {e}") from e
                    logger.warning(f"⚠️ TTS stream failed for sentence {index + 1}, using fallback: {e}")
                    audio = await self._synthesize_buffered(sentence, speed)
                    for offset in range(0, len(audio), self.frame_bytes):
                        frame = audio[offset:offset + self.frame_bytes]
                        total_bytes += len(frame)
                        yield frame

        except asyncio.CancelledError:
            logger.info(f"⚠️ TTS cancelled after {total_bytes:,} bytes")
            raise

        logger.info(f"✅ TTS complete: {total_bytes:,} bytes in {time.time() - t_start:.2f}s")

    async def _stream_sentence(self, sentence: str, speed: float) -> AsyncIterator[bytes]:
        client = await self._ensure_client()
        payload = {'input': sentence, 'speed': speed, 'voice': self.voice, 'response_format': 'pcm'}

        async with client.stream(
            'POST',
            f"{self.base_url}/stream",
            json=payload,
            headers={**self._headers(), 'Accept': 'text/event-stream'},
        ) as response:
            if response.is_error:
                raise TTSStreamError(f"stream endpoint HTTP {response.status_code}")

            async for line in response.aiter_lines():
                line = line.strip()
                if not line.startswith('data:'):
                    continue
                data = line[5:].strip()
                if data == '[DONE]':
                    return
                try:
                    event = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning(f"⚠️ TTS: unparseable event: {data[:100]}")
                    continue

                if event.get('error'):
                    message = event['error'].get('message', 'unknown') if isinstance(event['error'], dict) else event['error']
                    if event.get('recoverable'):
                        logger.warning(f"⚠️ TTS recoverable stream error: {message}")
                        continue
                    raise TTSStreamError(f"stream error: {message}")

                if event.get('audio'):
                    try:
                        yield base64.b64decode(event['audio'])
                    except (binascii.Error, ValueError) as e:
                        raise TTSStreamError(f"invalid audio payload: {e}") from e

                if event.get('done'):
                    return

    async def _synthesize_buffered(self, sentence: str, speed: float) -> bytes:
        """Fallback: synthesize one sentence in a single request."""
        client = await self._ensure_client()
        payload = {'input': sentence, 'speed': speed, 'voice': self.voice, 'response_format': 'pcm'}
        try:
            response = await client.post(f"{self.base_url}/audio/speech", json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"❌ TTS fallback failed: {e}")
            raise SynthesisUnavailable(f"TTS fallback failed: {e}") from e
        if not response.content:
            raise SynthesisUnavailable("TTS fallback returned no audio")
        return response.content

    def _headers(self) -> dict:
        if self.api_key:
            return {'Authorization': f"Key {self.api_key}"}
        return {}

    async def health_check(self) -> bool:
        try:
            client = await self._ensure_client()
            response = await client.get(f"{self.base_url}/health", timeout=5.0)
            return response.status_code == 200
        except Exception as e:
            logger.debug(f"⚠️ TTS health check failed: {e}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("🔊 TTSService closed")

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client


# Singleton instance
_tts_service: Optional[TTSService] = None


def get_tts_service() -> TTSService:
    global _tts_service
    if _tts_service is None:
        _tts_service = TTSService()
    return _tts_service
