"""
Question and interview record models for VoicePrep
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from voiceprep.models.interview import Turn, utcnow


class InterviewType(str, Enum):
    """Which way the question mix should lean."""

    TECHNICAL = "technical"
    BEHAVIORAL = "behavioral"
    MIXED = "mixed"


class QuestionRequest(BaseModel):
    """Parameters for generating an interview's question list."""

    role: str = Field(..., min_length=1, description="Job role being interviewed for")
    level: str = Field(default="", description="Experience level, e.g. junior or senior")
    techstack: list[str] = Field(default_factory=list)
    type: InterviewType = InterviewType.TECHNICAL
    amount: int = Field(default=8, ge=1, le=20)
    company: str = ""
    user_id: str = ""

    @field_validator("techstack", mode="before")
    @classmethod
    def _split_techstack(cls, value):
        # Accept "python, sql" as well as a list
        if isinstance(value, str):
            return [s.strip() for s in value.split(",") if s.strip()]
        return value


class InterviewRecord(BaseModel):
    """A stored interview, ready to be conducted."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    role: str
    type: InterviewType = InterviewType.TECHNICAL
    level: str = ""
    techstack: list[str] = Field(default_factory=list)
    questions: list[str] = Field(default_factory=list)
    user_id: str = ""
    company: str = ""
    finalized: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class FeedbackRecord(BaseModel):
    """Persisted transcript of a finished interview."""

    interview_id: str
    user_id: str = ""
    transcript: list[Turn] = Field(default_factory=list)
    candidate_answers: int = 0
    average_confidence: float | None = None
    created_at: datetime = Field(default_factory=utcnow)
