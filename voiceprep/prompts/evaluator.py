"""
Evaluator Prompt Templates

Scores a single spoken answer for on-screen feedback.
"""


class EvaluatorPrompts:
    """Prompt templates for answer evaluation."""

    SYSTEM_CONTEXT = """You are an expert interview evaluator.

Judge the answer on correctness, depth, concrete experience and clarity.
Remember the answer was spoken and transcribed by speech recognition, so ignore
filler words and small transcription errors.
"""

    def answer_analysis_prompt(self, question: str, answer: str) -> str:
        return f"""{self.SYSTEM_CONTEXT}
As an AI interviewer, analyze this response.
Question: {question}
Response: {answer}

Return ONLY valid JSON with keys: "score" (0-100 integer) and "feedback" (string).
No code fences, no comments, no extra text.
"""
