"""
Data models and schemas for VoicePrep

Contains Pydantic models for:
- Interview sessions and transcript turns
- Dialogue controller events
- Interview and feedback records
"""

from voiceprep.models.interview import (
    InterviewSession,
    InterviewPhase,
    DialogueState,
    Speaker,
    Turn,
    AnswerFeedback,
    FinalizationResult,
    InterviewOutcome,
)
from voiceprep.models.question import (
    QuestionRequest,
    InterviewRecord,
    InterviewType,
    FeedbackRecord,
)

__all__ = [
    # Interview
    "InterviewSession",
    "InterviewPhase",
    "DialogueState",
    "Speaker",
    "Turn",
    "AnswerFeedback",
    "FinalizationResult",
    "InterviewOutcome",
    # Records
    "QuestionRequest",
    "InterviewRecord",
    "InterviewType",
    "FeedbackRecord",
]
