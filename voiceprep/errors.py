"""
Error taxonomy for the interview dialogue.

Only UnsupportedEnvironment and FinalizationFailed ever reach the candidate;
the rest are absorbed by the dialogue controller and turned into flow
decisions or silent retries.
"""


class InterviewError(Exception):
    """Base class for interview errors."""
    pass


class StateTransitionError(InterviewError):
    """Raised when an invalid state transition is attempted."""
    pass


class UnsupportedEnvironment(InterviewError):
    """Speech capture is unavailable or the microphone was denied."""
    pass


class CaptureInterrupted(InterviewError):
    """Speech capture could not start or ended without being asked to."""
    pass


class EvaluationFailed(InterviewError):
    """The answer evaluator errored or returned something unusable."""
    pass


class FollowUpFailed(InterviewError):
    """The follow-up generator errored; treated as "advance"."""
    pass


class FinalizationFailed(InterviewError):
    """The transcript could not be persisted as feedback."""
    pass
