"""
Interview session and state models for VoicePrep
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from voiceprep.errors import StateTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Speaker(str, Enum):
    """Who produced a turn."""

    CANDIDATE = "candidate"
    INTERVIEWER = "interviewer"


class InterviewPhase(str, Enum):
    """Coarse interview stages, in order."""

    INTRO = "intro"  # Welcome + self-introduction
    BACKGROUND = "background"  # One contextual prompt
    MAIN = "main"  # Question list loop
    COMPLETE = "complete"


PHASE_ORDER: list[InterviewPhase] = [
    InterviewPhase.INTRO,
    InterviewPhase.BACKGROUND,
    InterviewPhase.MAIN,
    InterviewPhase.COMPLETE,
]


class DialogueState(str, Enum):
    """Dialogue controller states."""

    IDLE = "idle"  # Not started
    SPEAKING = "speaking"  # Interviewer is talking
    LISTENING = "listening"  # Capturing candidate speech
    EVALUATING = "evaluating"  # Answer round-trip in flight
    COMPLETE = "complete"  # Terminal


class Turn(BaseModel):
    """One recorded utterance. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    speaker: Speaker
    text: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=utcnow)
    confidence: int | None = Field(
        default=None, ge=0, le=100,
        description="Recognition confidence, candidate turns only"
    )

    @field_validator("text", mode="before")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _confidence_only_for_candidate(self) -> "Turn":
        if self.confidence is not None and self.speaker != Speaker.CANDIDATE:
            raise ValueError("confidence is only recorded for candidate turns")
        return self


class AnswerFeedback(BaseModel):
    """Display-only evaluation of one answer."""

    score: int = Field(..., ge=0, le=100)
    feedback: str = ""


class FinalizationResult(BaseModel):
    """What the finalizer reports back after persisting a transcript."""

    success: bool
    location: str = ""


class InterviewOutcome(BaseModel):
    """How an interview ended, used to route the candidate."""

    success: bool
    location: str
    reason: str
    error: str | None = None


class InterviewSession(BaseModel):
    """
    Aggregate state of one spoken interview.

    Only the dialogue controller mutates a session, and only through the
    transition methods below, which enforce the session invariants.
    """

    # Identification
    session_id: str = Field(default_factory=lambda: str(uuid4()))
    candidate_name: str = "there"

    # Script
    questions: list[str] = Field(default_factory=list)

    # State
    active: bool = False
    phase: InterviewPhase = InterviewPhase.INTRO
    question_index: int = Field(default=0, ge=0)
    transcript: list[Turn] = Field(default_factory=list)
    pending_feedback: AnswerFeedback | None = None
    processing: bool = False
    elapsed_seconds: int = 0

    # Follow-up tracking
    current_question_followups: int = 0
    total_followups_asked: int = 0

    # Timing
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @field_validator("questions")
    @classmethod
    def _clean_questions(cls, value: list[str]) -> list[str]:
        return [q.strip() for q in value if q and q.strip()]

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def activate(self) -> None:
        """Mark the interview live."""
        if self.active or self.phase == InterviewPhase.COMPLETE:
            raise StateTransitionError("Session cannot be activated twice")
        self.active = True
        self.started_at = utcnow()

    def add_turn(
        self,
        speaker: Speaker,
        text: str,
        confidence: int | None = None
    ) -> Turn:
        """Append a turn to the transcript."""
        if speaker == Speaker.INTERVIEWER and self.transcript:
            if self.transcript[-1].speaker != Speaker.CANDIDATE:
                raise StateTransitionError(
                    "Interviewer turns must follow a candidate turn"
                )
        turn = Turn(speaker=speaker, text=text, confidence=confidence)
        self.transcript.append(turn)
        return turn

    def advance_phase(self) -> InterviewPhase:
        """Move one phase forward. Never regresses."""
        current = PHASE_ORDER.index(self.phase)
        self.phase = PHASE_ORDER[min(current + 1, len(PHASE_ORDER) - 1)]
        return self.phase

    def advance_question(self) -> bool:
        """
        Move to the next main question.

        Returns:
            False when the question list is exhausted; the index is left
            in place so it stays valid.
        """
        if self.phase != InterviewPhase.MAIN:
            raise StateTransitionError(
                f"Questions only advance during the main phase, not {self.phase.value}"
            )
        self.current_question_followups = 0
        if self.question_index + 1 >= len(self.questions):
            return False
        self.question_index += 1
        return True

    def record_followup(self) -> None:
        """Count a follow-up against the current question."""
        self.current_question_followups += 1
        self.total_followups_asked += 1

    def begin_processing(self) -> None:
        if self.processing:
            raise StateTransitionError("An answer is already being processed")
        self.processing = True

    def end_processing(self) -> None:
        self.processing = False

    def tick(self) -> None:
        if self.active:
            self.elapsed_seconds += 1

    def complete(self) -> None:
        """Terminal transition."""
        self.phase = InterviewPhase.COMPLETE
        self.active = False
        self.processing = False
        self.completed_at = utcnow()

    # =========================================================================
    # QUERIES
    # =========================================================================

    @property
    def current_question(self) -> str | None:
        """The main question the candidate is currently on."""
        if self.phase == InterviewPhase.MAIN and self.question_index < len(self.questions):
            return self.questions[self.question_index]
        return None

    @property
    def last_prompt(self) -> str | None:
        """Text of the most recent interviewer turn."""
        for turn in reversed(self.transcript):
            if turn.speaker == Speaker.INTERVIEWER:
                return turn.text
        return None

    def candidate_turns(self) -> list[Turn]:
        return [t for t in self.transcript if t.speaker == Speaker.CANDIDATE]

    def get_conversation_context_str(self, exclude_last: int = 0) -> str:
        """Render the transcript as plain dialogue for AI prompts."""
        turns = self.transcript[:len(self.transcript) - exclude_last]
        lines = []
        for turn in turns:
            role = "Interviewer" if turn.speaker == Speaker.INTERVIEWER else "Candidate"
            lines.append(f"{role}: {turn.text}")
        return "\n".join(lines)

    def get_duration_seconds(self) -> float:
        """Get interview duration in seconds."""
        if not self.started_at:
            return 0.0
        end = self.completed_at or utcnow()
        return (end - self.started_at).total_seconds()
