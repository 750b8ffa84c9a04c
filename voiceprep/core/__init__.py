"""
Core business logic modules for VoicePrep

Contains:
- Dialogue Controller: State machine for a spoken interview
- Turn Taking: Speech capture supervision and restarts
- AI Reasoning: Question generation, follow-ups and evaluation
- Evaluation Engine: Answer scoring with heuristic fallback
- Interview Store: Interview records and saved feedback
"""

from voiceprep.core.dialogue_controller import DialogueController
from voiceprep.core.turn_taking import CaptureSupervisor
from voiceprep.core.ai_reasoning import AIReasoningLayer
from voiceprep.core.evaluation_engine import EvaluationEngine
from voiceprep.core.interview_store import InterviewStore, TranscriptFinalizer

__all__ = [
    "DialogueController",
    "CaptureSupervisor",
    "AIReasoningLayer",
    "EvaluationEngine",
    "InterviewStore",
    "TranscriptFinalizer",
]
