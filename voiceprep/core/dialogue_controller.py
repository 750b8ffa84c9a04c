"""
Dialogue Controller - State machine for a spoken interview.

Coordinates speech capture, speech synthesis, answer evaluation and follow-up
decisions for one candidate. All input arrives as events through dispatch();
a single consumer task handles them one at a time, so handlers never race
each other. Slow work (speaking, model calls) runs in separate tasks that post
their results back as events.
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Awaitable, Callable

from voiceprep.config.settings import Settings, get_settings
from voiceprep.core.capabilities import (
    Evaluator,
    Finalizer,
    FollowUpGenerator,
    SpeechCapture,
    SpeechSynthesizer,
    VoiceOptions,
)
from voiceprep.core.turn_taking import CaptureSupervisor, PERMISSION_ERRORS
from voiceprep.errors import (
    CaptureInterrupted,
    EvaluationFailed,
    FinalizationFailed,
    FollowUpFailed,
    InterviewError,
    StateTransitionError,
    UnsupportedEnvironment,
)
from voiceprep.models.events import (
    CaptureEnded,
    CaptureFailed,
    CaptureStarted,
    DialogueEvent,
    EvaluationResolved,
    FollowUpResolved,
    RestartCapture,
    SpeechFinished,
    StartRequested,
    StopRequested,
    Tick,
    TranscriptReceived,
)
from voiceprep.models.interview import (
    AnswerFeedback,
    DialogueState,
    InterviewOutcome,
    InterviewPhase,
    InterviewSession,
    Speaker,
    Turn,
)
from voiceprep.prompts.interviewer import InterviewerPrompts

logger = logging.getLogger(__name__)


class _Shutdown(DialogueEvent):
    """Ends the event loop once the interview is over."""


class DialogueController:
    """
    Runs one interview using a state machine pattern.

    States:
        IDLE → SPEAKING → LISTENING → EVALUATING → (SPEAKING | COMPLETE)

    Any active state may also jump to COMPLETE when the candidate ends the
    interview. The follow-up decision alone gates leaving EVALUATING; the
    answer evaluation is a display-only side channel.
    """

    VALID_TRANSITIONS: dict[DialogueState, list[DialogueState]] = {
        DialogueState.IDLE: [DialogueState.SPEAKING],
        DialogueState.SPEAKING: [DialogueState.LISTENING, DialogueState.COMPLETE],
        DialogueState.LISTENING: [DialogueState.EVALUATING, DialogueState.COMPLETE],
        DialogueState.EVALUATING: [DialogueState.SPEAKING, DialogueState.COMPLETE],
        DialogueState.COMPLETE: [],  # Terminal state
    }

    def __init__(
        self,
        questions: list[str],
        capture: SpeechCapture | None,
        synthesizer: SpeechSynthesizer | None,
        evaluator: Evaluator | None = None,
        followups: FollowUpGenerator | None = None,
        finalizer: Finalizer | None = None,
        candidate_name: str = "there",
        settings: Settings | None = None,
    ):
        """
        Initialize the controller with its collaborators.

        Args:
            questions: Main-phase questions, asked in order
            capture: Speech recognition capability
            synthesizer: Speech synthesis capability (None speaks nothing)
            evaluator: Scores answers for display
            followups: Decides on clarifying follow-ups (None always advances)
            finalizer: Persists the transcript when the interview ends
            candidate_name: Name used in the welcome line
            settings: Overrides the cached application settings
        """
        self.settings = settings or get_settings()
        self.session = InterviewSession(
            questions=list(questions),
            candidate_name=candidate_name,
        )
        self.state = DialogueState.IDLE

        self.synthesizer = synthesizer
        self.evaluator = evaluator
        self.followups = followups
        self.finalizer = finalizer
        self.prompts = InterviewerPrompts()
        self.voice = VoiceOptions(
            rate=self.settings.voice_rate,
            pitch=self.settings.voice_pitch,
            volume=self.settings.voice_volume,
            voice=self.settings.voice_name,
        )
        self.capture = CaptureSupervisor(
            capture,
            self.dispatch,
            restart_backoff=self.settings.capture_restart_backoff_ms / 1000,
            error_backoff=self.settings.capture_error_backoff_ms / 1000,
        )

        self.outcome: InterviewOutcome | None = None
        self.dropped_transcripts = 0

        self._events: asyncio.Queue[DialogueEvent] = asyncio.Queue()
        self._handlers: dict[type, Callable[[DialogueEvent], Awaitable[None]]] = {
            StartRequested: self._on_start_requested,
            StopRequested: self._on_stop_requested,
            Tick: self._on_tick,
            TranscriptReceived: self._on_transcript,
            CaptureStarted: self._on_capture_started,
            CaptureEnded: self._on_capture_ended,
            CaptureFailed: self._on_capture_failed,
            RestartCapture: self._on_restart_capture,
            SpeechFinished: self._on_speech_finished,
            FollowUpResolved: self._on_followup_resolved,
            EvaluationResolved: self._on_evaluation_resolved,
        }
        self._exit_stack: AsyncExitStack | None = None
        self._consumer: asyncio.Task | None = None
        self._ticker: asyncio.Task | None = None
        self._speech_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._closed = asyncio.Event()
        self._finalized = False

        self._utterance_id = 0
        self._answer_seq = 0
        self._feedback_seq = 0

        # Event callbacks
        self._state_change_callbacks: list[Callable[[str, DialogueState, DialogueState], Awaitable[None]]] = []
        self._turn_callbacks: list[Callable[[str, Turn], Awaitable[None]]] = []
        self._feedback_callbacks: list[Callable[[str, AnswerFeedback], Awaitable[None]]] = []
        self._finished_callbacks: list[Callable[[str, InterviewOutcome], Awaitable[None]]] = []
        self._error_callbacks: list[Callable[[str, InterviewError], Awaitable[None]]] = []

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def speaking(self) -> bool:
        return self.state == DialogueState.SPEAKING

    @property
    def listening(self) -> bool:
        return self.capture.listening

    async def start(self) -> None:
        """
        Acquire the microphone and begin the interview.

        Raises:
            UnsupportedEnvironment: speech capture is unavailable; the
                session stays inactive
            StateTransitionError: the interview was already started
        """
        if self._consumer is not None or self.state != DialogueState.IDLE:
            raise StateTransitionError("Interview has already been started")

        stack = AsyncExitStack()
        try:
            await stack.enter_async_context(self.capture.microphone())
        except UnsupportedEnvironment as e:
            await stack.aclose()
            logger.warning(f"Session {self.session_id}: cannot start interview: {e}")
            raise

        self._exit_stack = stack
        self._consumer = asyncio.create_task(self._run())
        self.dispatch(StartRequested())

    def dispatch(self, event: DialogueEvent) -> None:
        """Queue an event for the controller. Safe to call from any callback."""
        self._events.put_nowait(event)

    def request_stop(self, reason: str = "user_ended") -> None:
        """Ask the interview to end without waiting for it."""
        if self._consumer is None:
            return
        self.dispatch(StopRequested(reason=reason))

    async def stop(self, reason: str = "user_ended") -> InterviewOutcome | None:
        """
        End the interview and wait until the transcript has been finalized.

        Returns:
            The outcome, or None if the interview never started
        """
        if self._consumer is None:
            return None
        self.request_stop(reason)
        await self.wait_closed()
        return self.outcome

    async def wait_closed(self) -> None:
        """Wait until the interview finished and the microphone is released."""
        if self._consumer is None:
            return
        await self._closed.wait()

    def snapshot(self) -> dict:
        """Current session status for display."""
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "active": self.session.active,
            "phase": self.session.phase.value,
            "question_index": self.session.question_index,
            "total_questions": len(self.session.questions),
            "processing": self.session.processing,
            "listening": self.listening,
            "speaking": self.speaking,
            "elapsed_seconds": self.session.elapsed_seconds,
            "turns": len(self.session.transcript),
            "pending_feedback": (
                self.session.pending_feedback.model_dump()
                if self.session.pending_feedback else None
            ),
        }

    # =========================================================================
    # EVENT LOOP
    # =========================================================================

    async def _run(self) -> None:
        try:
            while True:
                event = await self._events.get()
                if isinstance(event, _Shutdown):
                    break
                await self._handle(event)
        finally:
            self._stop_ticker()
            if self._speech_task is not None and not self._speech_task.done():
                self._speech_task.cancel()
            if self._exit_stack is not None:
                try:
                    await self._exit_stack.aclose()
                except Exception as e:
                    logger.warning(f"Session {self.session_id}: cleanup failed: {e}")
            self._closed.set()

    async def _handle(self, event: DialogueEvent) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning(f"Session {self.session_id}: no handler for {type(event).__name__}")
            return
        try:
            await handler(event)
        except Exception as e:
            logger.exception(
                f"Session {self.session_id}: error handling {type(event).__name__}: {e}"
            )

    async def _transition(self, new_state: DialogueState) -> None:
        """
        Move the state machine.

        Raises:
            StateTransitionError: If transition is invalid
        """
        old_state = self.state
        valid_next_states = self.VALID_TRANSITIONS.get(old_state, [])
        if new_state not in valid_next_states:
            raise StateTransitionError(
                f"Invalid transition from {old_state} to {new_state}. "
                f"Valid transitions: {valid_next_states}"
            )

        self.state = new_state
        logger.info(f"Session {self.session_id}: {old_state.value} → {new_state.value}")
        await self._notify(self._state_change_callbacks, old_state, new_state)

    # =========================================================================
    # INTERVIEW FLOW
    # =========================================================================

    async def _on_start_requested(self, event: StartRequested) -> None:
        if self.state != DialogueState.IDLE:
            return
        self.session.activate()
        self._ticker = asyncio.create_task(self._tick_loop())
        logger.info(
            f"Session {self.session_id}: interview started with "
            f"{len(self.session.questions)} questions"
        )
        await self._say(self.prompts.opening_line(self.session.candidate_name))

    async def _say(self, text: str) -> None:
        """Append an interviewer turn and start speaking it."""
        await self.capture.pause()
        await self._transition(DialogueState.SPEAKING)
        turn = self.session.add_turn(Speaker.INTERVIEWER, text)
        await self._notify(self._turn_callbacks, turn)

        self._utterance_id += 1
        self._speech_task = asyncio.create_task(
            self._speak(self._utterance_id, turn.text)
        )

    async def _speak(self, utterance_id: int, text: str) -> None:
        """Synthesize one utterance. Failure counts as finished."""
        if self.synthesizer is not None:
            try:
                await asyncio.wait_for(
                    self.synthesizer.speak(text, self.voice),
                    timeout=self.settings.synthesis_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"Speech synthesis did not finish within "
                    f"{self.settings.synthesis_timeout_seconds}s, continuing"
                )
            except Exception as e:
                logger.warning(f"Speech synthesis failed, continuing: {e}")
        self.dispatch(SpeechFinished(utterance_id=utterance_id))

    async def _on_speech_finished(self, event: SpeechFinished) -> None:
        if self.state != DialogueState.SPEAKING or event.utterance_id != self._utterance_id:
            logger.debug(f"Ignoring stale speech completion {event.utterance_id}")
            return
        self._speech_task = None
        await self._transition(DialogueState.LISTENING)
        await self._resume_capture()

    async def _on_transcript(self, event: TranscriptReceived) -> None:
        if not event.is_final:
            return
        text = (event.transcript or "").strip()
        if not text:
            return

        # Exactly once per utterance: late or duplicate finals are dropped
        if self.state != DialogueState.LISTENING or self.session.processing:
            self.dropped_transcripts += 1
            logger.debug(
                f"Session {self.session_id}: dropping final transcript "
                f"while {self.state.value}"
            )
            return

        self.session.begin_processing()
        await self.capture.pause()
        await self._transition(DialogueState.EVALUATING)

        confidence = None
        if event.confidence is not None:
            confidence = max(0, min(100, round(event.confidence * 100)))
        answer = self.session.add_turn(Speaker.CANDIDATE, text, confidence)
        await self._notify(self._turn_callbacks, answer)

        self._answer_seq += 1
        if self.session.phase in (InterviewPhase.INTRO, InterviewPhase.BACKGROUND):
            await self._advance_scripted_phase()
        else:
            self._request_decisions(self._answer_seq, answer.text)

    async def _advance_scripted_phase(self) -> None:
        """Intro and background answers just move the interview forward."""
        phase = self.session.advance_phase()
        self.session.end_processing()

        if phase == InterviewPhase.BACKGROUND:
            await self._say(self.prompts.background_line())
        elif self.session.questions:
            await self._say(self.session.current_question)
        else:
            logger.info(f"Session {self.session_id}: no main questions, ending")
            await self._complete("questions_exhausted")

    def _request_decisions(self, seq: int, answer: str) -> None:
        """Fire evaluation and the follow-up decision concurrently."""
        question = self.session.current_question
        prompt = self.session.last_prompt or question
        context = self.session.get_conversation_context_str(exclude_last=1)
        allow_followup = (
            self.followups is not None and
            self.session.current_question_followups < self.settings.max_followups_per_question
        )

        if self.evaluator is not None:
            self._spawn(self._evaluate(seq, prompt, answer))
        self._spawn(self._decide_followup(seq, question, answer, context, allow_followup))

    async def _decide_followup(
        self,
        seq: int,
        question: str,
        answer: str,
        context: str,
        allow_followup: bool,
    ) -> None:
        follow_up = None
        if allow_followup:
            try:
                follow_up = await asyncio.wait_for(
                    self.followups.generate_followup(question, answer, context),
                    timeout=self.settings.followup_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"{FollowUpFailed.__name__}: no decision within "
                    f"{self.settings.followup_timeout_seconds}s, advancing"
                )
            except Exception as e:
                logger.warning(f"Follow-up generation failed, advancing: {e}")

        if isinstance(follow_up, str):
            follow_up = follow_up.strip() or None
        else:
            follow_up = None
        self.dispatch(FollowUpResolved(answer_seq=seq, follow_up=follow_up))

    async def _on_followup_resolved(self, event: FollowUpResolved) -> None:
        if self.state != DialogueState.EVALUATING or event.answer_seq != self._answer_seq:
            logger.debug(f"Discarding stale follow-up decision for answer {event.answer_seq}")
            return

        self.session.end_processing()

        if event.follow_up:
            self.session.record_followup()
            logger.info(
                f"Session {self.session_id}: follow-up on question "
                f"{self.session.question_index + 1}"
            )
            await self._say(event.follow_up)
            return

        if self.session.advance_question():
            await self._say(self.session.current_question)
        else:
            await self._complete("questions_exhausted")

    # =========================================================================
    # EVALUATION SIDE CHANNEL
    # =========================================================================

    async def _evaluate(self, seq: int, question: str, answer: str) -> None:
        feedback = None
        try:
            feedback = await asyncio.wait_for(
                self.evaluator.evaluate_answer(question, answer),
                timeout=self.settings.evaluation_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Evaluation exceeded the {self.settings.evaluation_timeout_seconds}s "
                f"grace period, no feedback shown"
            )
        except EvaluationFailed as e:
            logger.warning(f"Evaluation failed, no feedback shown: {e}")
        except Exception as e:
            logger.warning(f"Evaluator error, no feedback shown: {e}")
        self.dispatch(EvaluationResolved(answer_seq=seq, feedback=feedback))

    async def _on_evaluation_resolved(self, event: EvaluationResolved) -> None:
        if self.state == DialogueState.COMPLETE or event.feedback is None:
            return
        # An older answer's score must not replace a newer one
        if event.answer_seq < self._feedback_seq:
            return
        self._feedback_seq = event.answer_seq
        self.session.pending_feedback = event.feedback
        await self._notify(self._feedback_callbacks, event.feedback)

    # =========================================================================
    # CAPTURE RESILIENCE
    # =========================================================================

    def _may_capture(self) -> bool:
        return (
            self.state == DialogueState.LISTENING and
            self.session.active and
            not self.session.processing
        )

    async def _resume_capture(self) -> None:
        try:
            await self.capture.begin()
        except CaptureInterrupted as e:
            logger.warning(f"{e}; retrying")
            self.capture.schedule_restart(self.capture.error_backoff)

    async def _on_capture_started(self, event: CaptureStarted) -> None:
        self.capture.mark_started()
        if not self._may_capture():
            # Came up after the controller moved on
            await self.capture.pause()

    async def _on_capture_ended(self, event: CaptureEnded) -> None:
        if not self.capture.mark_ended():
            # A pause that lands after we resumed listening left capture off
            if self._may_capture():
                await self._resume_capture()
            return
        if self._may_capture():
            logger.info(f"Session {self.session_id}: speech capture ended unexpectedly")
            self.capture.schedule_restart(self.capture.restart_backoff)

    async def _on_capture_failed(self, event: CaptureFailed) -> None:
        unintentional = self.capture.mark_ended()
        if event.code in PERMISSION_ERRORS:
            error = UnsupportedEnvironment(f"Microphone access denied ({event.code})")
            logger.error(f"Session {self.session_id}: {error}")
            await self._notify(self._error_callbacks, error)
            # Without a microphone no further answer can arrive
            if self.state not in (DialogueState.IDLE, DialogueState.COMPLETE):
                await self._complete("microphone_denied")
            return

        logger.warning(f"Session {self.session_id}: speech capture error: {event.code}")
        if unintentional and self._may_capture():
            self.capture.schedule_restart(self.capture.error_backoff)

    async def _on_restart_capture(self, event: RestartCapture) -> None:
        if not self._may_capture():
            logger.debug("Skipping capture restart, no longer listening")
            return
        await self._resume_capture()

    # =========================================================================
    # ENDING
    # =========================================================================

    async def _on_stop_requested(self, event: StopRequested) -> None:
        if self.state in (DialogueState.IDLE, DialogueState.COMPLETE):
            return
        logger.info(f"Session {self.session_id}: stop requested ({event.reason})")
        await self._complete(event.reason)

    async def _complete(self, reason: str) -> None:
        if self.state == DialogueState.COMPLETE:
            return
        await self._transition(DialogueState.COMPLETE)
        self.session.complete()
        self._stop_ticker()
        await self._halt_speech()
        await self.capture.pause()

        self.outcome = await self._finalize(reason)
        await self._notify(self._finished_callbacks, self.outcome)
        self.dispatch(_Shutdown())

    async def _halt_speech(self) -> None:
        task, self._speech_task = self._speech_task, None
        if task is None or task.done():
            return
        task.cancel()
        if self.synthesizer is not None:
            try:
                await self.synthesizer.cancel()
            except Exception as e:
                logger.warning(f"Failed to cancel speech synthesis: {e}")

    async def _finalize(self, reason: str) -> InterviewOutcome:
        """Hand the transcript to the finalizer, exactly once."""
        if self._finalized:
            return self.outcome
        self._finalized = True

        fallback = self.settings.fallback_location
        if self.finalizer is None:
            return InterviewOutcome(success=True, location=fallback, reason=reason)

        try:
            result = await self.finalizer.finalize(list(self.session.transcript))
            if not result.success:
                raise FinalizationFailed("Failed to save feedback")
        except Exception as e:
            error = e if isinstance(e, FinalizationFailed) else FinalizationFailed(str(e))
            logger.error(f"Session {self.session_id}: finalization failed: {error}")
            await self._notify(self._error_callbacks, error)
            return InterviewOutcome(
                success=False,
                location=fallback,
                reason=reason,
                error=str(error),
            )

        logger.info(f"Session {self.session_id}: feedback saved ({reason})")
        return InterviewOutcome(
            success=True,
            location=result.location or fallback,
            reason=reason,
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _tick_loop(self) -> None:
        """Elapsed-time counter; never changes dialogue state."""
        while True:
            await asyncio.sleep(self.settings.elapsed_tick_seconds)
            self.dispatch(Tick())

    async def _on_tick(self, event: Tick) -> None:
        self.session.tick()

    def _stop_ticker(self) -> None:
        if self._ticker is not None and not self._ticker.done():
            self._ticker.cancel()
        self._ticker = None

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _notify(self, callbacks: list, *args) -> None:
        for callback in callbacks:
            try:
                await callback(self.session_id, *args)
            except Exception as e:
                logger.error(f"Callback error: {e}")

    # =========================================================================
    # EVENT CALLBACKS
    # =========================================================================

    def on_state_change(
        self,
        callback: Callable[[str, DialogueState, DialogueState], Awaitable[None]]
    ) -> None:
        """Register a callback for state changes."""
        self._state_change_callbacks.append(callback)

    def on_turn(self, callback: Callable[[str, Turn], Awaitable[None]]) -> None:
        """Register a callback for every appended turn."""
        self._turn_callbacks.append(callback)

    def on_feedback(self, callback: Callable[[str, AnswerFeedback], Awaitable[None]]) -> None:
        """Register a callback for answer feedback."""
        self._feedback_callbacks.append(callback)

    def on_finished(self, callback: Callable[[str, InterviewOutcome], Awaitable[None]]) -> None:
        """Register a callback for the end of the interview."""
        self._finished_callbacks.append(callback)

    def on_error(self, callback: Callable[[str, InterviewError], Awaitable[None]]) -> None:
        """Register a callback for candidate-visible errors."""
        self._error_callbacks.append(callback)
