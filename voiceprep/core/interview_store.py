"""
Interview and feedback storage.

In-memory for now; swap for a database-backed store in production.
"""

import logging

from voiceprep.models.interview import FinalizationResult, Speaker, Turn
from voiceprep.models.question import FeedbackRecord, InterviewRecord

logger = logging.getLogger(__name__)


class InterviewStore:
    """Holds generated interviews and the feedback left after each one."""

    def __init__(self):
        self._interviews: dict[str, InterviewRecord] = {}
        self._feedback: dict[str, FeedbackRecord] = {}

    def save_interview(self, record: InterviewRecord) -> InterviewRecord:
        self._interviews[record.id] = record
        logger.info(f"Stored interview {record.id} with {len(record.questions)} questions")
        return record

    def get_interview(self, interview_id: str) -> InterviewRecord | None:
        return self._interviews.get(interview_id)

    def save_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        self._feedback[record.interview_id] = record
        return record

    def get_feedback(self, interview_id: str) -> FeedbackRecord | None:
        return self._feedback.get(interview_id)


class TranscriptFinalizer:
    """
    Persists a finished transcript as feedback for one interview.

    A transcript without a single candidate answer is not worth keeping and
    is reported as a failure so the candidate is routed back home.
    """

    def __init__(self, store: InterviewStore, interview_id: str, user_id: str = ""):
        self.store = store
        self.interview_id = interview_id
        self.user_id = user_id

    async def finalize(self, transcript: list[Turn]) -> FinalizationResult:
        answers = [t for t in transcript if t.speaker == Speaker.CANDIDATE]
        if not answers:
            logger.warning(f"Interview {self.interview_id} ended without any answers")
            return FinalizationResult(success=False)

        confidences = [t.confidence for t in answers if t.confidence is not None]
        record = FeedbackRecord(
            interview_id=self.interview_id,
            user_id=self.user_id,
            transcript=list(transcript),
            candidate_answers=len(answers),
            average_confidence=(
                sum(confidences) / len(confidences) if confidences else None
            ),
        )
        self.store.save_feedback(record)
        logger.info(f"Saved feedback for interview {self.interview_id}")

        return FinalizationResult(
            success=True,
            location=f"/interview/{self.interview_id}/feedback",
        )
