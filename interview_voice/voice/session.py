"""
Voice Session

One VoiceSession per /ws/voice connection. It owns the audio buffer, the
turn state machine, the conversation history and these tasks:

- inbound loop: decodes client frames in arrival order and dispatches them
  as state machine events
- outbound loop: drains a FIFO of PipelineEvents to the WebSocket, dropping
  events that belong to a cancelled turn
- turn task (at most one): Transcription → Generation → Synthesis, each
  bounded by its stage timeout. Text-initiated turns (hint, code result,
  time-up wrap-up) start at Generation
- time limit timer (only when a limit is configured)

All state is owned by the session's own tasks on one event loop, so there is
no locking. Every publish from a turn task is checked against the current
turn id; results from superseded or cancelled turns are discarded.
"""

import asyncio
import math
import time
from contextlib import aclosing
from typing import Any, Awaitable, Optional, Union
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect

from interview_voice.config.logging_config import SessionLogAdapter, get_logger
from interview_voice.config.pipeline import PipelineConfig, get_pipeline_config
from interview_voice.llm import LLMMessage
from interview_voice.prompts import (
    code_context,
    code_result_summary,
    hint_level,
    hint_request,
    system_prompt,
    time_up,
    time_warning,
    whiteboard_context,
)
from interview_voice.services.interview_store import InterviewStore, StoreError
from interview_voice.services.llm_service import LLMService
from interview_voice.services.stt_service import STTService
from interview_voice.services.tts_service import TTSService
from interview_voice.types.errors import (
    BufferClosed,
    EmptyUtterance,
    OutOfOrderChunk,
    PipelineError,
    ProtocolError,
    StageTimeout,
    StaleResult,
    TranscriptionUnavailable,
)
from interview_voice.types.messages import (
    AudioChunkMessage,
    ClientMessage,
    CodeResultMessage,
    CodeUpdateMessage,
    ConfigMessage,
    HintRequestMessage,
    InterruptMessage,
    StartListeningMessage,
    StopListeningMessage,
    WhiteboardUpdateMessage,
    parse_client_message,
)
from interview_voice.types.pipeline_events import PipelineEvent, TurnState
from interview_voice.voice.audio_buffer import AudioFrameBuffer, SilencePolicy
from interview_voice.voice.turn_state import Turn, TurnStateMachine

logger = get_logger(__name__)

# Upper bound on waiting for pending record-store writes at close
STORE_DRAIN_TIMEOUT_S = 5.0

# Share of the time limit after which the interviewer is told to wrap up
TIME_WARNING_FRACTION = 0.8


class VoiceSession:
    """
    Usage:
        session = VoiceSession(websocket, stt, llm, tts, store, interview_id="abc")
        await session.run()   # returns after the client disconnects
    """

    def __init__(
        self,
        websocket: WebSocket,
        stt: STTService,
        llm: LLMService,
        tts: TTSService,
        store: Optional[InterviewStore] = None,
        config: Optional[PipelineConfig] = None,
        interview_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        """
        Args:
            websocket: Accepted FastAPI WebSocket
            stt: Transcription stage
            llm: Generation stage
            tts: Synthesis stage
            store: Interview record store (None = history is not persisted)
            config: Pipeline config (default: global config)
            interview_id: Interview being conducted (None = free mode)
            session_id: Log identifier (default: random uuid)
        """
        self.websocket = websocket
        self.stt = stt
        self.llm = llm
        self.tts = tts
        self.store = store
        self.config = config or get_pipeline_config()
        self.interview_id = interview_id
        self.session_id = session_id or str(uuid4())
        self.log = SessionLogAdapter(logger, self.session_id)

        # Per-session settings (client "config" message)
        self.language = self.config.language
        self.speed = self.config.speed

        self.buffer = AudioFrameBuffer(SilencePolicy(
            sample_rate=self.config.sample_rate,
            silence_threshold_ms=self.config.silence_threshold_ms,
            energy_threshold=self.config.energy_threshold,
            max_utterance_ms=self.config.max_utterance_ms,
        ))
        self.machine = TurnStateMachine(
            self.buffer,
            min_utterance_bytes=self.config.min_utterance_bytes,
            on_state_change=self._on_state_change,
            session_id=self.session_id,
        )

        self.history: list[LLMMessage] = [system_prompt(interview_id)]
        self.code_context: Optional[LLMMessage] = None
        self.whiteboard_context: Optional[LLMMessage] = None
        self.hints_requested = 0

        # Last sequence of an utterance the server endpointed itself; chunks
        # the client already had in flight after it are dropped, not errors
        self._endpointed_sequence: Optional[int] = None

        self._outbound: asyncio.Queue[PipelineEvent] = asyncio.Queue()
        self._outbound_task: Optional[asyncio.Task] = None
        self._turn_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._store_tasks: set[asyncio.Task] = set()
        self.is_active = True
        self._closed = False

        self.log.info(f"🎙️ Voice session created (interview={interview_id or 'free mode'})")

    @property
    def state(self) -> TurnState:
        return self.machine.state

    @property
    def turn_task(self) -> Optional[asyncio.Task]:
        """The running turn pipeline task, if any."""
        return self._turn_task

    # ============================================================
    # Lifecycle
    # ============================================================

    async def run(self) -> None:
        """Serve the connection until the client disconnects."""
        await self.start()
        try:
            await self._inbound_loop()
        finally:
            await self.close()

    async def start(self) -> None:
        """Load history, then start the outbound loop and the time limit timer."""
        await self._load_history()
        if self._outbound_task is None:
            self._outbound_task = asyncio.create_task(
                self._outbound_loop(), name=f"voice-outbound-{self.session_id}"
            )
        if self.config.time_limit_s > 0 and self._timer_task is None:
            self._timer_task = asyncio.create_task(
                self._run_time_limit(), name=f"voice-timer-{self.session_id}"
            )

    async def close(self) -> None:
        """Cancel the active stage, stop the outbound loop and flush store writes."""
        if self._closed:
            return
        self._closed = True
        self.is_active = False

        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

        if self._outbound_task is not None:
            self._outbound_task.cancel()
            await asyncio.wait({self._outbound_task}, timeout=self.config.cancel_grace_s)
            self._outbound_task = None

        if self.machine.state != TurnState.IDLE:
            self.machine.fatal_error(cancel=True)
        await self._cancel_active_stage()

        if self._store_tasks:
            _, pending = await asyncio.wait(set(self._store_tasks), timeout=STORE_DRAIN_TIMEOUT_S)
            if pending:
                self.log.warning(f"⚠️ {len(pending)} record store writes still pending at close")

        self.log.info(f"🔌 Voice session closed ({self.machine.turn_id} turns)")

    async def flush(self) -> None:
        """Wait until every queued event has been sent or dropped."""
        await self._outbound.join()

    def reset_history(self) -> None:
        """Forget the conversation, keeping the system prompt."""
        self.history = [system_prompt(self.interview_id)]
        self.log.info("🧹 History reset")

    async def _load_history(self) -> None:
        if not self.interview_id or self.store is None:
            return
        try:
            records = await self.store.load_history(self.interview_id, self.config.history_limit)
        except StoreError as e:
            self.log.warning(f"⚠️ Could not load history for interview {self.interview_id}: {e}")
            return
        self.history.extend(records)
        self.log.info(f"📜 Loaded {len(records)} history messages for interview {self.interview_id}")

    # ============================================================
    # Inbound
    # ============================================================

    async def _inbound_loop(self) -> None:
        while self.is_active:
            try:
                raw = await self._receive_frame()
            except WebSocketDisconnect as e:
                self.log.info(f"🔌 Client disconnected (code={e.code})")
                break
            await self.handle_message(raw)

    async def _receive_frame(self) -> Union[str, bytes]:
        """Next text or binary frame; raises WebSocketDisconnect on close."""
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(code=message.get("code", 1000))
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    async def handle_message(self, raw: Any) -> None:
        """Decode and dispatch one client frame."""
        try:
            message = parse_client_message(raw)
        except ProtocolError as e:
            self.log.warning(f"⚠️ Malformed client message: {e.detail}")
            self._publish_error(e)
            return

        try:
            await self._dispatch(message)
        except (OutOfOrderChunk, BufferClosed) as e:
            self.log.warning(f"⚠️ Protocol violation: {e.detail}")
            await self._abort_turn(e)
        except ProtocolError as e:
            self.log.warning(f"⚠️ Invalid client message: {e.detail}")
            self._publish_error(e)

    async def _dispatch(self, message: ClientMessage) -> None:
        if isinstance(message, AudioChunkMessage):
            await self._on_audio_chunk(message)

        elif isinstance(message, StartListeningMessage):
            if self.machine.state == TurnState.IDLE:
                self.machine.start_listening()
            else:
                await self._interrupt()

        elif isinstance(message, StopListeningMessage):
            if self.machine.state != TurnState.LISTENING:
                self.log.debug(f"stop_listening ignored in state {self.machine.state.value}")
                return
            self._end_utterance()

        elif isinstance(message, InterruptMessage):
            if self.machine.state == TurnState.IDLE:
                self.log.debug("interrupt ignored while idle")
                return
            await self._interrupt()

        elif isinstance(message, ConfigMessage):
            if message.language:
                self.language = message.language
            if message.speed:
                self.speed = message.speed
            self.log.info(f"⚙️ Session config: language={self.language}, speed={self.speed}")

        elif isinstance(message, CodeUpdateMessage):
            self.code_context = code_context(message.code, message.language) if message.code.strip() else None
            self.log.debug(f"📝 Code context updated ({len(message.code)} chars, {message.language})")

        elif isinstance(message, WhiteboardUpdateMessage):
            self.whiteboard_context = whiteboard_context(message.text) if message.text.strip() else None
            self.log.debug(f"📝 Whiteboard context updated ({len(message.text)} chars)")

        elif isinstance(message, HintRequestMessage):
            self._request_hint()

        elif isinstance(message, CodeResultMessage):
            passed = sum(1 for r in message.results if r.passed)
            self.log.info(f"🧪 Code result: {passed}/{len(message.results)} tests passed")
            summary = code_result_summary(message.results, message.stdout, message.stderr, message.error)
            self._start_text_turn(summary, "code_result")

    async def _on_audio_chunk(self, message: AudioChunkMessage) -> None:
        chunk = message.audio_bytes()
        if self._continues_endpointed_utterance(message.seq):
            self.log.debug(f"⏭️ Dropped in-flight chunk (seq={message.seq}) of the submitted utterance")
            return

        sequence = message.seq if message.seq is not None else self.buffer.next_sequence
        self.buffer.append(chunk, sequence)

        if self.buffer.end_of_utterance:
            self.log.info(f"🔇 End of utterance detected ({self.buffer.size} bytes)")
            self._end_utterance()
            if self.machine.state == TurnState.PROCESSING:
                self._endpointed_sequence = sequence

    def _continues_endpointed_utterance(self, seq: Optional[int]) -> bool:
        if self._endpointed_sequence is None or self.buffer.is_open:
            return False
        return seq is None or seq > self._endpointed_sequence

    def _end_utterance(self) -> None:
        try:
            audio = self.machine.end_of_utterance()
        except EmptyUtterance as e:
            self.log.info(f"🔇 {e.detail}, still listening")
            self._publish_session(PipelineEvent.state_change(TurnState.LISTENING))
            return

        turn_id = self.machine.turn.turn_id
        self._turn_task = asyncio.create_task(
            self._run_turn(turn_id, audio), name=f"voice-turn-{self.session_id}-{turn_id}"
        )

    def _start_text_turn(self, user_text: Optional[str], reason: str) -> Optional[int]:
        """
        Run a turn from Generation onwards. Only starts while idle; an
        in-flight turn is never superseded by one the user did not speak.

        Returns:
            The new turn id, or None when the request was ignored
        """
        if self.machine.state != TurnState.IDLE:
            self.log.info(f"⏭️ {reason} ignored while {self.machine.state.value}")
            return None

        turn_id = self.machine.start_text_turn(user_text).turn_id
        self.log.info(f"💬 Turn {turn_id} started from {reason}")
        self._turn_task = asyncio.create_task(
            self._run_turn(turn_id, user_text=user_text), name=f"voice-turn-{self.session_id}-{turn_id}"
        )
        return turn_id

    def _request_hint(self) -> None:
        if self.machine.state != TurnState.IDLE:
            self.log.info(f"⏭️ hint_request ignored while {self.machine.state.value}")
            return

        self.hints_requested += 1
        level = hint_level(self.hints_requested)
        turn_id = self._start_text_turn(hint_request(self.hints_requested), "hint_request")
        self._publish(PipelineEvent.hint_given(turn_id, level, self.hints_requested))

    async def _run_time_limit(self) -> None:
        limit_s = self.config.time_limit_s
        warning_s = limit_s * TIME_WARNING_FRACTION

        await asyncio.sleep(warning_s)
        minutes_left = max(1, math.ceil((limit_s - warning_s) / 60))
        self.log.info(f"⏰ Time warning: about {minutes_left} min left")
        self.history.append(time_warning(minutes_left))
        self._publish_session(PipelineEvent.time_warning(minutes_left))

        await asyncio.sleep(limit_s - warning_s)
        self.log.info("⏰ Interview time is up")
        self.history.append(time_up())
        self._start_text_turn(None, "time limit")

    async def _interrupt(self) -> None:
        cancelled, turn = self.machine.interrupt()
        await self._cancel_active_stage()
        if cancelled is not None:
            self.log.info(
                f"✋ Turn {cancelled.turn_id} interrupted "
                f"({len(cancelled.reply_text)} chars, {cancelled.audio_bytes_sent:,} audio bytes sent), "
                f"listening on turn {turn.turn_id}"
            )

    async def _abort_turn(self, error: PipelineError) -> None:
        """Error, then idle, cancelling whatever stage is running."""
        self._publish_error(error)
        self.machine.fatal_error(cancel=True)
        await self._cancel_active_stage()

    async def _cancel_active_stage(self) -> None:
        task = self._turn_task
        self._turn_task = None
        if task is None or task.done():
            return

        task.cancel()
        done, _ = await asyncio.wait({task}, timeout=self.config.cancel_grace_s)
        if not done:
            self.log.warning(
                f"⚠️ Turn task did not stop within {self.config.cancel_grace_s}s; its results will be discarded"
            )

    # ============================================================
    # Turn pipeline
    # ============================================================

    async def _run_turn(
        self,
        turn_id: int,
        audio: Optional[bytes] = None,
        user_text: Optional[str] = None,
    ) -> None:
        """Audio turns start at Transcription; text turns bring their user_text."""
        t_start = time.time()
        try:
            if audio is not None:
                user_text = await self._stage(
                    "transcription", self.config.transcription_timeout_s, self._transcribe(turn_id, audio)
                )
            reply = await self._stage(
                "generation", self.config.generation_timeout_s, self._generate(turn_id, user_text)
            )
            await self._stage(
                "synthesis", self.config.synthesis_timeout_s, self._synthesize(turn_id, reply)
            )

            self._publish(PipelineEvent.audio_done(turn_id))
            turn = self.machine.audio_done(turn_id)
            self._record_turn(turn)
            self.log.info(f"⏱️ LATENCY [turn {turn_id} total]: {time.time() - t_start:.2f}s")

        except StaleResult as e:
            self.log.debug(f"⏭️ {e.detail}")

        except asyncio.CancelledError:
            self.log.info(f"⚠️ Turn {turn_id} cancelled")
            raise

        except PipelineError as e:
            self.log.error(f"❌ Turn {turn_id} failed: {e.cause.value}: {e.detail}")
            self._fail_turn(turn_id, e)

        except Exception as e:
            self.log.error(f"❌ Turn {turn_id} failed unexpectedly: {e}", exc_info=True)
            self._fail_turn(turn_id, PipelineError(str(e)))

    async def _stage(self, name: str, timeout_s: float, work: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(work, timeout=timeout_s)
        except asyncio.TimeoutError:
            raise StageTimeout(name, timeout_s) from None

    async def _transcribe(self, turn_id: int, audio: bytes) -> str:
        final: Optional[str] = None
        async with aclosing(self.stt.transcribe(audio, self.language)) as updates:
            async for update in updates:
                if update.final:
                    final = update.text
                else:
                    self._publish(PipelineEvent.partial_transcript(turn_id, update.text))

        if final is None:
            raise TranscriptionUnavailable("transcription ended without a final transcript")

        self.machine.transcript_final(turn_id, final)
        self._publish(PipelineEvent.final_transcript(turn_id, final))
        return final

    async def _generate(self, turn_id: int, user_text: Optional[str]) -> str:
        context = [m for m in (self.code_context, self.whiteboard_context) if m is not None]
        async with aclosing(self.llm.generate(self.history, user_text, context)) as deltas:
            async for delta in deltas:
                self.machine.reply_delta(turn_id, delta)
                self._publish(PipelineEvent.text_delta(turn_id, delta))

        self._publish(PipelineEvent.text_done(turn_id))
        return self.machine.generation_done(turn_id)

    async def _synthesize(self, turn_id: int, text: str) -> None:
        async with aclosing(self.tts.synthesize(text, self.speed)) as frames:
            async for frame in frames:
                self._publish(PipelineEvent.audio_frame(turn_id, frame))
                self.machine.audio_sent(turn_id, len(frame))

    def _fail_turn(self, turn_id: int, error: PipelineError) -> None:
        if not self.machine.is_current(turn_id):
            self.log.debug(f"⏭️ Failure of superseded turn {turn_id} ignored: {error.detail}")
            return
        self._publish_error(error)
        self.machine.fatal_error(cancel=isinstance(error, StageTimeout))

    def _record_turn(self, turn: Turn) -> None:
        if turn.transcript is not None:
            self.history.append(LLMMessage(role="user", content=turn.transcript))
        self.history.append(LLMMessage(role="assistant", content=turn.reply_text))

        if self.interview_id and self.store is not None:
            task = asyncio.create_task(self._persist_turn(turn.transcript, turn.reply_text))
            self._store_tasks.add(task)
            task.add_done_callback(self._store_tasks.discard)

    async def _persist_turn(self, user_text: Optional[str], assistant_text: str) -> None:
        try:
            await self.store.append_turn(self.interview_id, user_text, assistant_text)
        except StoreError as e:
            self.log.warning(f"⚠️ Could not persist turn for interview {self.interview_id}: {e}")

    # ============================================================
    # Outbound
    # ============================================================

    def _on_state_change(self, state: TurnState, turn_id: int) -> None:
        if state in (TurnState.LISTENING, TurnState.IDLE):
            self._endpointed_sequence = None
        self._publish_session(PipelineEvent.state_change(state))

    def _publish(self, event: PipelineEvent) -> None:
        """Queue a turn event; raises StaleResult unless its turn is current."""
        self.machine.check_current(event.turn_id)
        self._outbound.put_nowait(event)

    def _publish_session(self, event: PipelineEvent) -> None:
        self._outbound.put_nowait(event)

    def _publish_error(self, error: PipelineError) -> None:
        self._publish_session(PipelineEvent.error(error))

    async def _outbound_loop(self) -> None:
        while True:
            event = await self._outbound.get()
            try:
                if event.turn_id is not None and self.machine.is_cancelled(event.turn_id):
                    self.log.debug(f"⏭️ Dropped {event.kind.value} of cancelled turn {event.turn_id}")
                    continue
                await self.websocket.send_json(event.to_wire())
            except (WebSocketDisconnect, RuntimeError) as e:
                self.log.info(f"🔌 Send failed, client gone ({e})")
                self.is_active = False
            finally:
                self._outbound.task_done()
