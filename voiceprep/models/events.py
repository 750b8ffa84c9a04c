"""
Events consumed by the dialogue controller.

Speech callbacks, synthesis completion, timer ticks and network responses are
all turned into one of these and pushed through DialogueController.dispatch().
"""

from dataclasses import dataclass

from voiceprep.models.interview import AnswerFeedback


class DialogueEvent:
    """Base class for everything the controller consumes."""


# Control

@dataclass(frozen=True)
class StartRequested(DialogueEvent):
    pass


@dataclass(frozen=True)
class StopRequested(DialogueEvent):
    reason: str = "user_ended"


@dataclass(frozen=True)
class Tick(DialogueEvent):
    pass


# Speech capture (emitted by the capture capability)

@dataclass(frozen=True)
class TranscriptReceived(DialogueEvent):
    transcript: str
    is_final: bool
    confidence: float | None = None  # 0..1


@dataclass(frozen=True)
class CaptureStarted(DialogueEvent):
    pass


@dataclass(frozen=True)
class CaptureEnded(DialogueEvent):
    pass


@dataclass(frozen=True)
class CaptureFailed(DialogueEvent):
    code: str = "unknown"


@dataclass(frozen=True)
class RestartCapture(DialogueEvent):
    pass


# Async completions posted back by the controller's own tasks

@dataclass(frozen=True)
class SpeechFinished(DialogueEvent):
    utterance_id: int


@dataclass(frozen=True)
class FollowUpResolved(DialogueEvent):
    answer_seq: int
    follow_up: str | None


@dataclass(frozen=True)
class EvaluationResolved(DialogueEvent):
    answer_seq: int
    feedback: AnswerFeedback | None
