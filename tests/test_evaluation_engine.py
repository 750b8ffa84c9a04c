"""Answer scoring with and without a model."""

import pytest

from voiceprep.core.evaluation_engine import EvaluationEngine
from voiceprep.errors import EvaluationFailed
from voiceprep.models.interview import AnswerFeedback

STRONG_ANSWER = (
    "In my experience I designed and built a distributed data pipeline for a "
    "streaming service. First, we implemented a cache in front of the database "
    "because query latency was hurting throughput. Second, I led the migration "
    "of the api to a new service architecture, which improved availability. "
    "For example, we optimized the index on the events table and deployed the "
    "change to production with careful testing. Finally, we scaled the system "
    "across regions while keeping consistency guarantees, and I managed the "
    "rollout so performance stayed predictable during peak traffic."
)


class StubReasoning:
    def __init__(self):
        self.calls = []

    async def evaluate_answer(self, question, answer):
        self.calls.append((question, answer))
        return AnswerFeedback(score=91, feedback="Excellent.")


async def test_uses_model_when_available():
    reasoning = StubReasoning()
    engine = EvaluationEngine(reasoning)

    feedback = await engine.evaluate_answer("Q1", "my answer")

    assert feedback.score == 91
    assert reasoning.calls == [("Q1", "my answer")]


async def test_empty_answer_is_rejected():
    with pytest.raises(EvaluationFailed):
        await EvaluationEngine().evaluate_answer("Q1", "   ")


async def test_heuristic_scores_in_range():
    feedback = await EvaluationEngine().evaluate_answer("Q1", "I don't know, maybe")

    assert 0 <= feedback.score <= 100
    assert "To improve" in feedback.feedback


async def test_detailed_answer_scores_higher_than_vague_one():
    engine = EvaluationEngine()

    strong = await engine.evaluate_answer("Describe a system you built", STRONG_ANSWER)
    weak = await engine.evaluate_answer("Describe a system you built", "I think maybe a website")

    assert strong.score > weak.score
    assert "Strengths" in strong.feedback


async def test_off_topic_answer_is_told_to_answer_directly():
    engine = EvaluationEngine()
    question = "How would you tune a slow database query?"

    on_topic = await engine.evaluate_answer(
        question, "I would read the query plan and add an index to the database"
    )
    off_topic = await engine.evaluate_answer(
        question, "I would check the weather forecast and go for a walk in the park"
    )

    assert on_topic.score > off_topic.score
    assert "answer the question more directly" in off_topic.feedback
    assert "answer the question more directly" not in on_topic.feedback


async def test_filler_words_cost_points():
    engine = EvaluationEngine()
    clean = "I built the pipeline and deployed it to production"
    hesitant = "um I think I built uh the pipeline and you know maybe deployed it"

    assert (await engine.evaluate_answer("Q1", clean)).score > (
        await engine.evaluate_answer("Q1", hesitant)
    ).score
