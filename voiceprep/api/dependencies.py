"""
API Dependencies

Provides dependency injection for API endpoints.
Manages singleton instances of core components and the registry of
interviews currently being conducted.
"""

import logging

from voiceprep.config.settings import get_settings
from voiceprep.core.ai_reasoning import AIReasoningLayer
from voiceprep.core.dialogue_controller import DialogueController
from voiceprep.core.evaluation_engine import EvaluationEngine
from voiceprep.core.interview_store import InterviewStore

logger = logging.getLogger(__name__)


# ============================================================================
# SINGLETON INSTANCES
# ============================================================================

_ai_reasoning: AIReasoningLayer | None = None
_ai_checked = False
_evaluation_engine: EvaluationEngine | None = None
_interview_store: InterviewStore | None = None
_controllers: dict[str, DialogueController] = {}


def get_ai_reasoning() -> AIReasoningLayer | None:
    """
    Get the AI reasoning layer singleton.

    Returns None when no model gateway is configured; callers fall back to
    heuristics or refuse the request.
    """
    global _ai_reasoning, _ai_checked

    if not _ai_checked:
        _ai_checked = True
        settings = get_settings()
        if settings.llm_configured:
            try:
                _ai_reasoning = AIReasoningLayer(settings)
            except Exception as e:
                logger.warning(f"AI reasoning unavailable: {e}")
                _ai_reasoning = None
        else:
            logger.info("No model gateway configured, AI features disabled")

    return _ai_reasoning


def get_evaluation_engine() -> EvaluationEngine:
    """Get the evaluation engine singleton."""
    global _evaluation_engine

    if _evaluation_engine is None:
        _evaluation_engine = EvaluationEngine(get_ai_reasoning())

    return _evaluation_engine


def get_interview_store() -> InterviewStore:
    """Get the interview store singleton."""
    global _interview_store

    if _interview_store is None:
        _interview_store = InterviewStore()

    return _interview_store


# ============================================================================
# RUNNING INTERVIEWS
# ============================================================================

def register_controller(interview_id: str, controller: DialogueController) -> None:
    _controllers[interview_id] = controller


def unregister_controller(interview_id: str) -> None:
    _controllers.pop(interview_id, None)


def get_controller(interview_id: str) -> DialogueController | None:
    return _controllers.get(interview_id)


async def cleanup():
    """Cleanup resources on shutdown."""
    global _ai_reasoning, _ai_checked, _evaluation_engine, _interview_store

    for interview_id, controller in list(_controllers.items()):
        try:
            await controller.stop("shutdown")
        except Exception as e:
            logger.warning(f"Failed to stop interview {interview_id}: {e}")
    _controllers.clear()

    if _ai_reasoning:
        await _ai_reasoning.close()

    _ai_reasoning = None
    _ai_checked = False
    _evaluation_engine = None
    _interview_store = None
