"""
Pipeline events

A PipelineEvent is an immutable outbound notification produced by the turn
pipeline or the session itself. Events are tagged with the turn id they
belong to (None for session-level events) so the outbound loop can drop
anything from a cancelled turn. Only the outbound loop converts them into
wire messages.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from interview_voice.types.errors import PipelineError
from interview_voice.types.messages import (
    AIAudioDoneMessage,
    AIAudioMessage,
    AITextMessage,
    ErrorMessage,
    HintGivenMessage,
    ServerMessage,
    StateChangeMessage,
    TimeWarningMessage,
    TranscriptMessage,
    encode_server_message,
)


class TurnState(str, Enum):
    """Voice turn states (see voice.turn_state.TurnStateMachine)."""

    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"


class EventKind(str, Enum):
    PARTIAL_TRANSCRIPT = "partial_transcript"
    FINAL_TRANSCRIPT = "final_transcript"
    TEXT_DELTA = "text_delta"
    TEXT_DONE = "text_done"
    AUDIO_FRAME = "audio_frame"
    AUDIO_DONE = "audio_done"
    STATE_CHANGE = "state_change"
    HINT_GIVEN = "hint_given"
    TIME_WARNING = "time_warning"
    ERROR = "error"


class PipelineEvent(BaseModel):
    """
    Outbound notification, never mutated after creation.

    Attributes:
        kind: Event category
        turn_id: Turn this event belongs to (None = session-level)
        text: Transcript text, reply delta, or error message
        audio: PCM16 frame for AUDIO_FRAME events
        state: New state for STATE_CHANGE events
        code: Error cause code for ERROR events
        count: Hint level (HINT_GIVEN) or minutes left (TIME_WARNING)
        total: Hints requested so far (HINT_GIVEN)
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    turn_id: Optional[int] = None
    text: str = ""
    audio: bytes = b""
    state: Optional[TurnState] = None
    code: Optional[str] = None
    count: Optional[int] = None
    total: Optional[int] = None

    # Constructors

    @classmethod
    def partial_transcript(cls, turn_id: int, text: str) -> "PipelineEvent":
        return cls(kind=EventKind.PARTIAL_TRANSCRIPT, turn_id=turn_id, text=text)

    @classmethod
    def final_transcript(cls, turn_id: int, text: str) -> "PipelineEvent":
        return cls(kind=EventKind.FINAL_TRANSCRIPT, turn_id=turn_id, text=text)

    @classmethod
    def text_delta(cls, turn_id: int, text: str) -> "PipelineEvent":
        return cls(kind=EventKind.TEXT_DELTA, turn_id=turn_id, text=text)

    @classmethod
    def text_done(cls, turn_id: int) -> "PipelineEvent":
        return cls(kind=EventKind.TEXT_DONE, turn_id=turn_id)

    @classmethod
    def audio_frame(cls, turn_id: int, pcm: bytes) -> "PipelineEvent":
        return cls(kind=EventKind.AUDIO_FRAME, turn_id=turn_id, audio=pcm)

    @classmethod
    def audio_done(cls, turn_id: int) -> "PipelineEvent":
        return cls(kind=EventKind.AUDIO_DONE, turn_id=turn_id)

    @classmethod
    def state_change(cls, state: TurnState, turn_id: Optional[int] = None) -> "PipelineEvent":
        return cls(kind=EventKind.STATE_CHANGE, turn_id=turn_id, state=state)

    @classmethod
    def hint_given(cls, turn_id: int, level: int, total_hints: int) -> "PipelineEvent":
        return cls(kind=EventKind.HINT_GIVEN, turn_id=turn_id, count=level, total=total_hints)

    @classmethod
    def time_warning(cls, minutes_left: int) -> "PipelineEvent":
        return cls(kind=EventKind.TIME_WARNING, count=minutes_left)

    @classmethod
    def error(cls, exc: PipelineError) -> "PipelineEvent":
        return cls(kind=EventKind.ERROR, text=exc.user_message, code=exc.cause.value)

    # Encoding

    def to_server_message(self) -> ServerMessage:
        if self.kind == EventKind.PARTIAL_TRANSCRIPT:
            return TranscriptMessage(text=self.text, final=False)
        if self.kind == EventKind.FINAL_TRANSCRIPT:
            return TranscriptMessage(text=self.text, final=True)
        if self.kind == EventKind.TEXT_DELTA:
            return AITextMessage(text=self.text, done=False)
        if self.kind == EventKind.TEXT_DONE:
            return AITextMessage(text="", done=True)
        if self.kind == EventKind.AUDIO_FRAME:
            return AIAudioMessage.from_pcm(self.audio)
        if self.kind == EventKind.AUDIO_DONE:
            return AIAudioDoneMessage()
        if self.kind == EventKind.STATE_CHANGE:
            return StateChangeMessage(state=self.state.value)
        if self.kind == EventKind.HINT_GIVEN:
            return HintGivenMessage(level=self.count, total_hints=self.total)
        if self.kind == EventKind.TIME_WARNING:
            return TimeWarningMessage(minutes_left=self.count)
        return ErrorMessage(message=self.text, code=self.code)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict for websocket.send_json."""
        return encode_server_message(self.to_server_message())
