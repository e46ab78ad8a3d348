"""
Turn State Machine

Drives one voice session through idle → listening → processing → speaking
→ idle, with interrupt (barge-in) back to listening from any active state and
fatal_error back to idle from any state. Text-initiated turns (hints, code
results, wrap-up) enter processing straight from idle.

| From                           | Event             | To         |
|--------------------------------|-------------------|------------|
| idle                           | start_listening   | listening  |
| idle                           | start_text_turn   | processing |
| listening                      | end_of_utterance  | processing |
| processing                     | transcript_final  | processing |
| processing                     | generation_done   | speaking   |
| speaking                       | audio_done        | idle       |
| listening/processing/speaking  | interrupt         | listening  |
| any                            | fatal_error       | idle       |

The machine is synchronous and performs no I/O. Turn identity is explicit:
every result-bearing transition takes the turn id the result belongs to and
rejects it with StaleResult unless it is the current, non-cancelled turn.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from interview_voice.config.logging_config import SessionLogAdapter, get_logger
from interview_voice.types.errors import EmptyUtterance, InvalidTransition, StaleResult
from interview_voice.types.pipeline_events import TurnState
from interview_voice.voice.audio_buffer import AudioFrameBuffer

logger = get_logger(__name__)

ACTIVE_STATES = (TurnState.LISTENING, TurnState.PROCESSING, TurnState.SPEAKING)


@dataclass
class Turn:
    """
    One user-utterance-to-AI-reply exchange.

    Attributes:
        turn_id: Monotonic id within the session (first turn is 1)
        audio: Utterance audio, set on end-of-utterance (empty for text turns)
        transcript: Final transcript, or the user text of a text turn
            (None until produced, and for turns without user text)
        reply_parts: Generated reply deltas in arrival order
        audio_bytes_sent: Synthesized PCM bytes forwarded so far
        cancelled: Interrupted or cancelled by a fatal error
    """
    turn_id: int
    audio: bytes = b""
    transcript: Optional[str] = None
    reply_parts: list[str] = field(default_factory=list)
    audio_bytes_sent: int = 0
    cancelled: bool = False
    started_at: float = field(default_factory=time.time)

    @property
    def reply_text(self) -> str:
        return "".join(self.reply_parts)


class TurnStateMachine:
    """
    Per-session turn orchestrator state.

    Args:
        buffer: Audio buffer rearmed whenever a new turn opens
        min_utterance_bytes: Utterances smaller than this are empty
        on_state_change: Called with (new_state, turn_id) on every transition
        session_id: For logging only
    """

    def __init__(
        self,
        buffer: AudioFrameBuffer,
        min_utterance_bytes: int = 0,
        on_state_change: Optional[Callable[[TurnState, int], None]] = None,
        session_id: str = "",
    ):
        self.buffer = buffer
        self.min_utterance_bytes = min_utterance_bytes
        self.on_state_change = on_state_change
        self.session_id = session_id
        self.log = SessionLogAdapter(logger, session_id)

        self.state = TurnState.IDLE
        self.turn_id = 0
        self.turn: Optional[Turn] = None
        self._cancelled_turns: set[int] = set()

    # Turn identity

    def is_current(self, turn_id: int) -> bool:
        return (
            self.turn is not None
            and turn_id == self.turn.turn_id
            and turn_id not in self._cancelled_turns
        )

    def is_cancelled(self, turn_id: int) -> bool:
        return turn_id in self._cancelled_turns

    def check_current(self, turn_id: int) -> Turn:
        """Return the current turn, or raise StaleResult for any other id."""
        if not self.is_current(turn_id):
            raise StaleResult(turn_id=turn_id, current_turn_id=self.turn_id)
        return self.turn

    # Transitions

    def start_listening(self) -> Turn:
        self._require("start_listening", TurnState.IDLE)
        turn = self._open_turn()
        self._set(TurnState.LISTENING, "start_listening")
        return turn

    def start_text_turn(self, user_text: Optional[str]) -> Turn:
        """
        Open a turn that has no audio and go straight to processing.

        The buffer stays closed, so audio sent during the turn is a protocol
        violation as in any other processing state.
        """
        self._require("start_text_turn", TurnState.IDLE)
        turn = self._open_turn()
        self.buffer.discard()
        turn.transcript = user_text
        self._set(TurnState.PROCESSING, "start_text_turn")
        return turn

    def end_of_utterance(self) -> bytes:
        """
        Close the audio buffer and move to processing.

        Raises:
            EmptyUtterance: Nothing (or too little) was captured; the buffer
                is rearmed and the machine stays in listening.
        """
        self._require("end_of_utterance", TurnState.LISTENING)
        audio = self.buffer.close()

        if len(audio) == 0 or len(audio) < self.min_utterance_bytes:
            self.buffer.reset()
            raise EmptyUtterance(f"utterance too short ({len(audio)} bytes)")

        self.turn.audio = audio
        self._set(TurnState.PROCESSING, "end_of_utterance")
        return audio

    def transcript_final(self, turn_id: int, text: str) -> None:
        turn = self.check_current(turn_id)
        self._require("transcript_final", TurnState.PROCESSING)
        turn.transcript = text

    def reply_delta(self, turn_id: int, delta: str) -> None:
        turn = self.check_current(turn_id)
        self._require("reply_delta", TurnState.PROCESSING)
        turn.reply_parts.append(delta)

    def generation_done(self, turn_id: int) -> str:
        """Move to speaking and return the full candidate reply."""
        turn = self.check_current(turn_id)
        self._require("generation_done", TurnState.PROCESSING)
        self._set(TurnState.SPEAKING, "generation_done")
        return turn.reply_text

    def audio_sent(self, turn_id: int, byte_count: int) -> None:
        turn = self.check_current(turn_id)
        self._require("audio_sent", TurnState.SPEAKING)
        turn.audio_bytes_sent += byte_count

    def audio_done(self, turn_id: int) -> Turn:
        """Close the turn; the caller appends it to history."""
        turn = self.check_current(turn_id)
        self._require("audio_done", TurnState.SPEAKING)
        self.turn = None
        self._set(TurnState.IDLE, "audio_done")
        return turn

    def interrupt(self) -> tuple[Optional[Turn], Turn]:
        """
        Cancel the in-flight turn and open a fresh one in listening.

        Returns:
            (cancelled turn or None, newly opened turn)
        """
        self._require("interrupt", *ACTIVE_STATES)
        cancelled = self._cancel_current()
        turn = self._open_turn()
        self._set(TurnState.LISTENING, "interrupt")
        return cancelled, turn

    def fatal_error(self, cancel: bool = False) -> Optional[Turn]:
        """
        Drop the current turn without appending it to history and go idle.

        Args:
            cancel: Also mark the turn cancelled so events it already queued
                are never delivered (used when the failure is external to the
                running stage: protocol violations, timeouts, disconnect).
        """
        if cancel:
            turn = self._cancel_current()
        else:
            turn = self.turn
        self.turn = None
        self.buffer.discard()
        self._set(TurnState.IDLE, "fatal_error")
        return turn

    # Internal

    def _open_turn(self) -> Turn:
        self.turn_id += 1
        self.turn = Turn(turn_id=self.turn_id)
        self.buffer.reset()
        return self.turn

    def _cancel_current(self) -> Optional[Turn]:
        turn = self.turn
        if turn is not None:
            turn.cancelled = True
            self._cancelled_turns.add(turn.turn_id)
        self.turn = None
        return turn

    def _require(self, event: str, *states: TurnState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"{event} not allowed in state {self.state.value}")

    def _set(self, new_state: TurnState, reason: str) -> None:
        old = self.state
        self.state = new_state
        self.log.info(f"🔄 Turn state {old.value} -> {new_state.value} (turn={self.turn_id}, reason={reason})")
        if self.on_state_change is not None:
            self.on_state_change(new_state, self.turn_id)
