"""
Pipeline error taxonomy

Every recoverable failure inside a voice session is a PipelineError carrying
an ErrorCause. The session turns these into an "error" event (human-readable
message + cause code) followed by "state_change: idle". StaleResult is the
one internal-only member: it is logged and discarded, never surfaced.
"""

from enum import Enum
from typing import Optional


class ErrorCause(str, Enum):
    """Cause codes sent to the client in the "code" field of error events."""

    # Client protocol violations
    OUT_OF_ORDER_CHUNK = "OutOfOrderChunk"
    BUFFER_CLOSED = "BufferClosed"
    ALREADY_CLOSED = "AlreadyClosed"
    PROTOCOL_ERROR = "ProtocolError"

    # Utterance
    EMPTY_UTTERANCE = "EmptyUtterance"

    # Upstream services
    TRANSCRIPTION_UNAVAILABLE = "TranscriptionUnavailable"
    GENERATION_UNAVAILABLE = "GenerationUnavailable"
    SYNTHESIS_UNAVAILABLE = "SynthesisUnavailable"
    TIMEOUT = "Timeout"

    # Internal
    STALE_RESULT = "StaleResult"
    INVALID_TRANSITION = "InvalidTransition"
    INTERNAL = "InternalError"


class PipelineError(Exception):
    """Base class for voice pipeline errors."""

    cause: ErrorCause = ErrorCause.INTERNAL
    user_message: str = "Something went wrong. Please try again."

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message


class OutOfOrderChunk(PipelineError):
    """Audio chunk sequence number is not exactly last_sequence + 1."""

    cause = ErrorCause.OUT_OF_ORDER_CHUNK
    user_message = "Audio chunk arrived out of order."

    def __init__(self, expected: int, received: int):
        super().__init__(f"expected sequence {expected}, got {received}")
        self.expected = expected
        self.received = received


class BufferClosed(PipelineError):
    """Audio chunk arrived while the buffer is not accepting audio."""

    cause = ErrorCause.BUFFER_CLOSED
    user_message = "Audio received while not listening."


class AlreadyClosed(PipelineError):
    cause = ErrorCause.ALREADY_CLOSED
    user_message = "Utterance was already submitted."


class ProtocolError(PipelineError):
    cause = ErrorCause.PROTOCOL_ERROR
    user_message = "Invalid message format."


class EmptyUtterance(PipelineError):
    cause = ErrorCause.EMPTY_UTTERANCE
    user_message = "No speech was detected."


class TranscriptionUnavailable(PipelineError):
    cause = ErrorCause.TRANSCRIPTION_UNAVAILABLE
    user_message = "Speech recognition is unavailable. Please try again."


class GenerationUnavailable(PipelineError):
    cause = ErrorCause.GENERATION_UNAVAILABLE
    user_message = "The interviewer could not respond. Please try again."


class SynthesisUnavailable(PipelineError):
    cause = ErrorCause.SYNTHESIS_UNAVAILABLE
    user_message = "Speech synthesis is unavailable. Please try again."


class StageTimeout(PipelineError):
    """A pipeline stage exceeded its maximum duration."""

    cause = ErrorCause.TIMEOUT
    user_message = "The response took too long. Please try again."

    def __init__(self, stage: str, timeout_s: float):
        super().__init__(f"{stage} stage exceeded {timeout_s:.1f}s")
        self.stage = stage
        self.timeout_s = timeout_s


class StaleResult(PipelineError):
    """A stage result arrived for a turn that is no longer current."""

    cause = ErrorCause.STALE_RESULT

    def __init__(self, turn_id: int, current_turn_id: int):
        super().__init__(f"result for turn {turn_id} discarded (current turn {current_turn_id})")
        self.turn_id = turn_id
        self.current_turn_id = current_turn_id


class InvalidTransition(PipelineError):
    cause = ErrorCause.INVALID_TRANSITION
