"""
Audio Frame Buffer

Accumulates sequenced PCM16 chunks for the current utterance and detects
end-of-utterance through an injected silence policy.

Lifecycle:
    reset()  → open, empty, expects sequence 0
    append() → only while open, sequence must be exactly last + 1
    close()  → returns the utterance and closes (second close fails)
    discard() → drops contents and closes without returning them

The buffer never calls external services; all operations are synchronous.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from interview_voice.config.logging_config import get_logger
from interview_voice.types.errors import AlreadyClosed, BufferClosed, OutOfOrderChunk

logger = get_logger(__name__)

BYTES_PER_SAMPLE = 2  # PCM16 mono


def mean_energy(pcm: bytes) -> int:
    """Mean absolute amplitude of a PCM16 little-endian buffer (0-32768)."""
    usable = len(pcm) - (len(pcm) % BYTES_PER_SAMPLE)
    if usable <= 0:
        return 0
    samples = np.frombuffer(pcm[:usable], dtype='<i2').astype(np.int32)
    return int(np.abs(samples).mean())


@dataclass
class SilencePolicy:
    """
    Energy-based endpointing.

    An utterance ends once speech has been observed and is then followed by
    at least silence_threshold_ms of audio whose energy stays below
    energy_threshold, or once the utterance reaches max_utterance_ms.
    Durations come from the audio itself (byte count / sample rate), not
    wall-clock time.
    """

    sample_rate: int = 16000
    silence_threshold_ms: int = 800
    energy_threshold: int = 300
    max_utterance_ms: int = 45000

    def __post_init__(self):
        self.speech_detected = False
        self.trailing_silence_ms = 0.0
        self.utterance_ms = 0.0

    def reset(self) -> None:
        self.speech_detected = False
        self.trailing_silence_ms = 0.0
        self.utterance_ms = 0.0

    def observe(self, pcm: bytes) -> None:
        """Feed one chunk into the policy."""
        duration_ms = (len(pcm) / BYTES_PER_SAMPLE) / self.sample_rate * 1000.0
        self.utterance_ms += duration_ms

        energy = mean_energy(pcm)
        if energy >= self.energy_threshold:
            self.speech_detected = True
            self.trailing_silence_ms = 0.0
        elif self.speech_detected:
            self.trailing_silence_ms += duration_ms

        logger.trace(
            f"🔍 [ENDPOINT] energy={energy} speech={self.speech_detected} "
            f"silence={self.trailing_silence_ms:.0f}ms total={self.utterance_ms:.0f}ms"
        )

    @property
    def end_of_utterance(self) -> bool:
        if self.utterance_ms >= self.max_utterance_ms:
            return True
        return self.speech_detected and self.trailing_silence_ms >= self.silence_threshold_ms


class AudioFrameBuffer:
    """
    Contiguous utterance buffer for one voice session.

    Usage:
        buffer = AudioFrameBuffer(SilencePolicy(silence_threshold_ms=600))
        buffer.reset()
        buffer.append(chunk0, 0)
        buffer.append(chunk1, 1)
        if buffer.end_of_utterance:
            audio = buffer.close()
    """

    def __init__(self, policy: Optional[SilencePolicy] = None):
        self.policy = policy or SilencePolicy()
        self._data = bytearray()
        self._last_sequence = -1
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def last_sequence(self) -> int:
        return self._last_sequence

    @property
    def next_sequence(self) -> int:
        return self._last_sequence + 1

    @property
    def size(self) -> int:
        return len(self._data)

    @property
    def end_of_utterance(self) -> bool:
        """True once the silence policy decided the utterance is over."""
        return self._open and self.policy.end_of_utterance

    def append(self, chunk: bytes, sequence: int) -> None:
        """
        Append one chunk.

        Raises:
            BufferClosed: Buffer is not open (outside listening)
            OutOfOrderChunk: sequence is not exactly last_sequence + 1
        """
        if not self._open:
            raise BufferClosed(f"chunk {sequence} received while buffer is closed")
        if sequence != self._last_sequence + 1:
            raise OutOfOrderChunk(expected=self._last_sequence + 1, received=sequence)

        self._data.extend(chunk)
        self._last_sequence = sequence
        self.policy.observe(chunk)

    def close(self) -> bytes:
        """
        Return the accumulated utterance and close the buffer.

        Raises:
            AlreadyClosed: Buffer was already closed
        """
        if not self._open:
            raise AlreadyClosed("audio buffer already closed")
        self._open = False
        audio = bytes(self._data)
        self._data = bytearray()
        logger.debug(f"🎙️ Audio buffer closed ({len(audio)} bytes, {self._last_sequence + 1} chunks)")
        return audio

    def reset(self) -> None:
        """Discard contents and sequence counter, then open for a new utterance."""
        self._data = bytearray()
        self._last_sequence = -1
        self.policy.reset()
        self._open = True

    def discard(self) -> None:
        """Drop contents and close without returning anything."""
        self._data = bytearray()
        self._last_sequence = -1
        self.policy.reset()
        self._open = False
