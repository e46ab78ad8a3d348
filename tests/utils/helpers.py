"""
Test utility helpers for interview voice testing
"""
import asyncio
import base64
import json
from typing import Callable

import numpy as np


# ============================================================
# Async Helpers
# ============================================================

async def wait_for_condition(
    condition: Callable[[], bool],
    timeout: float = 2.0,
    interval: float = 0.01
) -> bool:
    """
    Wait for a condition to become true

    Returns:
        True if condition was met, False if timeout

    Usage:
        assert await wait_for_condition(lambda: "ai_audio" in ws.types())
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if condition():
            return True
        await asyncio.sleep(interval)
    return condition()


# ============================================================
# Audio Helpers
# ============================================================

def pcm_tone(duration_ms: int, sample_rate: int = 16000, amplitude: int = 8000) -> bytes:
    """PCM16 sine tone (counts as speech for the default energy threshold)"""
    samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(samples) / sample_rate
    wave = (amplitude * np.sin(2 * np.pi * 440 * t)).astype('<i2')
    return wave.tobytes()


def pcm_silence(duration_ms: int, sample_rate: int = 16000) -> bytes:
    samples = int(sample_rate * duration_ms / 1000)
    return np.zeros(samples, dtype='<i2').tobytes()


# ============================================================
# Wire Helpers
# ============================================================

def msg(message_type: str, **fields) -> str:
    """Encode a client message as a WebSocket text frame"""
    return json.dumps({"type": message_type, **fields})


def audio_chunk(pcm: bytes, seq=None) -> str:
    """Encode an audio_chunk frame (seq omitted when None)"""
    fields = {"data": base64.b64encode(pcm).decode("ascii")}
    if seq is not None:
        fields["seq"] = seq
    return msg("audio_chunk", **fields)
