"""
Wire protocol for the /ws/voice WebSocket

One WebSocket frame carries one JSON object with a "type" field. Text frames
are expected; a binary frame is decoded as UTF-8 JSON the same way.

Client → Server:
    {"type": "audio_chunk", "data": "<base64 PCM16>", "seq": 0}
    {"type": "start_listening"}
    {"type": "stop_listening"}
    {"type": "interrupt"}
    {"type": "config", "language": "en", "speed": 1.0}
    {"type": "code_update", "code": "...", "language": "python"}
    {"type": "code_result", "results": [{"passed": false, "expected": "3", "actual": "2"}],
     "stdout": "", "stderr": "", "error": null}
    {"type": "hint_request"}
    {"type": "whiteboard_update", "text": "LB -> API -> Postgres"}

Server → Client:
    {"type": "transcript", "text": "...", "final": true}
    {"type": "ai_text", "text": "...", "done": false}
    {"type": "ai_audio", "data": "<base64 PCM16>"}
    {"type": "ai_audio_done"}
    {"type": "state_change", "state": "listening"}
    {"type": "hint_given", "level": 1, "total_hints": 1}
    {"type": "time_warning", "minutes_left": 3}
    {"type": "error", "message": "...", "code": "OutOfOrderChunk"}
"""

import base64
import binascii
import json
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from interview_voice.types.errors import ProtocolError


# ============================================================
# Client → Server
# ============================================================

class AudioChunkMessage(BaseModel):
    """A slice of the utterance as base64-encoded PCM16."""

    model_config = ConfigDict(frozen=True)

    type: Literal["audio_chunk"]
    data: str = Field(..., description="Base64-encoded PCM16 audio")
    seq: Optional[int] = Field(
        default=None,
        ge=0,
        description="Chunk sequence number within the turn (next expected if omitted)"
    )

    def audio_bytes(self) -> bytes:
        """Decode the payload, raising ProtocolError on invalid base64."""
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProtocolError(f"audio_chunk data is not valid base64: {e}") from e


class StartListeningMessage(BaseModel):
    type: Literal["start_listening"]


class StopListeningMessage(BaseModel):
    type: Literal["stop_listening"]


class InterruptMessage(BaseModel):
    type: Literal["interrupt"]


class ConfigMessage(BaseModel):
    """Mid-session settings: transcription language and synthesis speed."""

    type: Literal["config"]
    language: Optional[str] = Field(default=None, min_length=2, max_length=16)
    speed: Optional[float] = Field(default=None, ge=0.25, le=4.0)


class CodeUpdateMessage(BaseModel):
    """Candidate's current editor contents, used as generation context."""

    type: Literal["code_update"]
    code: str
    language: str = "plaintext"


class CodeTestResult(BaseModel):
    """One test case from running the candidate's code."""

    passed: bool
    expected: Optional[str] = None
    actual: Optional[str] = None


class CodeResultMessage(BaseModel):
    """Outcome of running the candidate's code; triggers an AI comment."""

    type: Literal["code_result"]
    results: List[CodeTestResult] = Field(default_factory=list)
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None


class HintRequestMessage(BaseModel):
    type: Literal["hint_request"]


class WhiteboardUpdateMessage(BaseModel):
    """Text rendering of the candidate's whiteboard (system design interviews)."""

    type: Literal["whiteboard_update"]
    text: str


ClientMessage = Annotated[
    Union[
        AudioChunkMessage,
        StartListeningMessage,
        StopListeningMessage,
        InterruptMessage,
        ConfigMessage,
        CodeUpdateMessage,
        CodeResultMessage,
        HintRequestMessage,
        WhiteboardUpdateMessage,
    ],
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter = TypeAdapter(ClientMessage)


def parse_client_message(raw: Union[str, bytes, dict]) -> ClientMessage:
    """
    Decode one inbound frame into a typed client message.

    Args:
        raw: JSON text/bytes, or an already-decoded dict

    Returns:
        One of the client message models

    Raises:
        ProtocolError: Invalid JSON, unknown type, or invalid fields
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(f"message is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise ProtocolError("message must be a JSON object")

    try:
        return _client_message_adapter.validate_python(raw)
    except ValidationError as e:
        raise ProtocolError(f"invalid {raw.get('type', 'unknown')!r} message: {e.errors()[0]['msg']}") from e


# ============================================================
# Server → Client
# ============================================================

class TranscriptMessage(BaseModel):
    type: Literal["transcript"] = "transcript"
    text: str
    final: bool


class AITextMessage(BaseModel):
    type: Literal["ai_text"] = "ai_text"
    text: str
    done: bool


class AIAudioMessage(BaseModel):
    type: Literal["ai_audio"] = "ai_audio"
    data: str

    @classmethod
    def from_pcm(cls, pcm: bytes) -> "AIAudioMessage":
        return cls(data=base64.b64encode(pcm).decode("ascii"))


class AIAudioDoneMessage(BaseModel):
    type: Literal["ai_audio_done"] = "ai_audio_done"


class StateChangeMessage(BaseModel):
    type: Literal["state_change"] = "state_change"
    state: Literal["idle", "listening", "processing", "speaking"]


class HintGivenMessage(BaseModel):
    type: Literal["hint_given"] = "hint_given"
    level: int
    total_hints: int


class TimeWarningMessage(BaseModel):
    type: Literal["time_warning"] = "time_warning"
    minutes_left: int


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str
    code: Optional[str] = None


ServerMessage = Union[
    TranscriptMessage,
    AITextMessage,
    AIAudioMessage,
    AIAudioDoneMessage,
    StateChangeMessage,
    HintGivenMessage,
    TimeWarningMessage,
    ErrorMessage,
]


def encode_server_message(message: ServerMessage) -> dict[str, Any]:
    """Serialize a server message for websocket.send_json (drops unset optionals)."""
    return message.model_dump(exclude_none=True)
