"""
AI prompt templates for VoicePrep

Contains structured prompts for:
- Scripted interviewer lines
- Follow-up decision making
- Question list generation
- Answer evaluation
"""

from voiceprep.prompts.interviewer import InterviewerPrompts, NO_FOLLOWUP
from voiceprep.prompts.evaluator import EvaluatorPrompts

__all__ = [
    "InterviewerPrompts",
    "EvaluatorPrompts",
    "NO_FOLLOWUP",
]
