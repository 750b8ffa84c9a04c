"""
Capability contracts the dialogue controller depends on.

Speech capture and synthesis usually live in the candidate's browser and are
reached through the WebSocket bridge; evaluation, follow-up generation and
finalization are in-process services. Anything with the right async methods
will do.
"""

from dataclasses import dataclass
from typing import Callable, Protocol

from voiceprep.models.events import DialogueEvent
from voiceprep.models.interview import AnswerFeedback, FinalizationResult, Turn

EventSink = Callable[[DialogueEvent], None]


@dataclass(frozen=True)
class VoiceOptions:
    """How the interviewer voice should sound."""

    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0
    voice: str | None = None


class SpeechCapture(Protocol):
    """
    Speech recognition.

    Emits TranscriptReceived, CaptureStarted, CaptureEnded and CaptureFailed
    through the listener. May end on its own at any time.
    """

    def is_supported(self) -> bool: ...

    def set_listener(self, listener: EventSink) -> None: ...

    async def open(self) -> None:
        """Acquire the microphone. Raises UnsupportedEnvironment if denied."""
        ...

    async def close(self) -> None: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class SpeechSynthesizer(Protocol):
    """Text-to-speech with a completion signal."""

    async def speak(self, text: str, options: VoiceOptions) -> None:
        """Return once the utterance finished playing."""
        ...

    async def cancel(self) -> None: ...


class Evaluator(Protocol):
    async def evaluate_answer(self, question: str, answer: str) -> AnswerFeedback: ...


class FollowUpGenerator(Protocol):
    async def generate_followup(
        self, question: str, answer: str, context: str
    ) -> str | None: ...


class Finalizer(Protocol):
    async def finalize(self, transcript: list[Turn]) -> FinalizationResult: ...
