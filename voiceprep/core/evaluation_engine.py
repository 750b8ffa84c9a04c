"""
Evaluation Engine for VoicePrep

Scores candidate answers for on-screen feedback. Uses the AI reasoning layer
when a model is configured and falls back to text heuristics otherwise.
"""

import logging
import re
from typing import Any

from voiceprep.errors import EvaluationFailed
from voiceprep.models.interview import AnswerFeedback

logger = logging.getLogger(__name__)

TECHNICAL_KEYWORDS = {
    "architecture", "system", "design", "pipeline", "data", "api",
    "performance", "scalability", "distributed", "consistency",
    "availability", "latency", "throughput", "cache", "database",
    "optimization", "index", "query", "testing", "deployment",
    "security", "algorithm", "complexity", "cloud", "service",
}

EXPERIENCE_KEYWORDS = [
    "experience", "worked", "implemented", "built", "designed",
    "led", "managed", "optimized", "improved", "solved",
    "production", "deployed", "migrated", "scaled",
]

STRUCTURE_KEYWORDS = [
    "first", "second", "third", "finally", "additionally",
    "however", "therefore", "because", "in my experience",
    "for example", "specifically", "in conclusion",
]

# Hedges and spoken fillers, matched as whole words or phrases
HESITATIONS = [
    "maybe", "perhaps", "possibly", "i think", "i guess", "not sure",
    "um", "uh", "you know", "kind of", "sort of",
]

QUESTION_STOPWORDS = {
    "what", "when", "where", "which", "would", "could", "should", "your",
    "about", "with", "that", "this", "have", "there", "their", "describe",
    "tell", "explain", "does", "walk", "through",
}

# A spoken answer of roughly half a minute to two minutes
TARGET_WORDS = (60, 250)

# Points per signal, summing to 100
SIGNAL_WEIGHTS = {
    "detail": 25,
    "technical": 20,
    "experience": 20,
    "relevance": 15,
    "structure": 10,
    "delivery": 10,
}


class EvaluationEngine:
    """
    Central evaluation component for interview answers.

    Responsibilities:
    - Score individual answers (0-100)
    - Produce a short feedback sentence
    """

    def __init__(self, ai_reasoning: Any = None):
        """
        Initialize evaluation engine.

        Args:
            ai_reasoning: AI reasoning layer for model-based evaluation
        """
        self.ai_reasoning = ai_reasoning

    async def evaluate_answer(self, question: str, answer: str) -> AnswerFeedback:
        """
        Evaluate a single answer.

        Raises:
            EvaluationFailed: if the answer could not be scored
        """
        if not answer or not answer.strip():
            raise EvaluationFailed("Cannot evaluate an empty answer")

        if self.ai_reasoning:
            return await self.ai_reasoning.evaluate_answer(question, answer)

        return self._heuristic_evaluation(question, answer)

    # =========================================================================
    # HEURISTICS
    # =========================================================================

    def _heuristic_evaluation(self, question: str, answer: str) -> AnswerFeedback:
        """Score a spoken answer from its transcript alone."""
        signals = self._answer_signals(question, answer)

        score = sum(SIGNAL_WEIGHTS[name] * signals[name] for name in SIGNAL_WEIGHTS)

        return AnswerFeedback(
            score=max(0, min(100, round(score))),
            feedback=self._heuristic_feedback(signals),
        )

    def _answer_signals(self, question: str, answer: str) -> dict[str, float]:
        """
        Measure an answer transcript.

        Every signal except word_count is normalised to 0..1.
        """
        words = _words(answer)
        text = f" {' '.join(words)} "
        word_count = len(words)

        low, high = TARGET_WORDS
        if word_count < low:
            detail = word_count / low
        elif word_count <= high:
            detail = 1.0
        else:
            detail = max(0.5, 1 - (word_count - high) / 500)

        asked = {w for w in _words(question) if len(w) > 3 and w not in QUESTION_STOPWORDS}
        relevance = len(asked & set(words)) / len(asked) if asked else 1.0

        hesitations = sum(text.count(f" {phrase} ") for phrase in HESITATIONS)

        return {
            "word_count": word_count,
            "detail": detail,
            "technical": min(1.0, len(TECHNICAL_KEYWORDS & set(words)) / 5),
            "experience": min(1.0, sum(f" {kw} " in text for kw in EXPERIENCE_KEYWORDS) / 3),
            "structure": min(1.0, sum(f" {kw} " in text for kw in STRUCTURE_KEYWORDS) / 2),
            "relevance": relevance,
            "delivery": 1 - min(1.0, hesitations / 4),
        }

    def _heuristic_feedback(self, signals: dict[str, float]) -> str:
        """One or two sentences a candidate can act on."""
        went_well = []
        missing = []

        if signals["technical"] >= 0.8:
            went_well.append("precise technical vocabulary")
        if signals["experience"] >= 0.67:
            went_well.append("grounded in real work")
        if signals["structure"] >= 1.0:
            went_well.append("easy to follow")
        if signals["relevance"] >= 0.67 and signals["detail"] >= 1.0:
            went_well.append("stayed on the question")

        low, high = TARGET_WORDS
        if signals["word_count"] < low:
            missing.append("say more, ideally with an example")
        elif signals["word_count"] > high:
            missing.append("keep it tighter")
        if signals["relevance"] < 0.34:
            missing.append("answer the question more directly")
        if signals["experience"] < 0.34:
            missing.append("anchor it in something you worked on")
        if signals["technical"] < 0.4:
            missing.append("name the specific tools or techniques")
        if signals["delivery"] < 0.75:
            missing.append("drop the hedging and filler words")

        parts = []
        if went_well:
            parts.append("Strengths: " + ", ".join(went_well) + ".")
        if missing:
            parts.append("To improve: " + ", ".join(missing[:2]) + ".")
        return " ".join(parts) or "Answer received."


def _words(text: str) -> list[str]:
    return re.findall(r"[a-z0-9']+", text.lower())
