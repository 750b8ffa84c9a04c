"""
AI Reasoning Layer for VoicePrep

Handles all AI-powered operations:
- Question list generation
- Follow-up decision making
- Answer evaluation

Talks to an OpenAI-compatible chat completions gateway: the pro endpoint
for question generation and evaluation, the flash endpoint for low-latency
follow-up decisions during the live conversation.
"""

import json
import logging
import re

import httpx
from pydantic import ValidationError

from voiceprep.config.settings import Settings, get_settings
from voiceprep.errors import EvaluationFailed, FollowUpFailed
from voiceprep.models.interview import AnswerFeedback
from voiceprep.models.question import QuestionRequest
from voiceprep.prompts.interviewer import InterviewerPrompts, NO_FOLLOWUP
from voiceprep.prompts.evaluator import EvaluatorPrompts

logger = logging.getLogger(__name__)

_FENCE_START = re.compile(r"^```(?:json)?", re.IGNORECASE)
_FENCE_END = re.compile(r"```$")


class QuestionGenerationError(Exception):
    """Raised when no usable question list came back."""
    pass


class AIReasoningLayer:
    """
    Central AI reasoning component.

    Model Selection:
    - Pro endpoint: question generation, answer evaluation
    - Flash endpoint: follow-up decisions (latency sensitive)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize AI reasoning layer with gateway configuration."""
        self.settings = settings or get_settings()
        self.base_url = self.settings.llm_host.rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {self.settings.llm_token}",
            "Content-Type": "application/json",
        }

        # HTTP client for API calls
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.settings.llm_timeout_seconds,
        )

        # Prompt templates
        self.interviewer_prompts = InterviewerPrompts()
        self.evaluator_prompts = EvaluatorPrompts()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    # =========================================================================
    # CORE AI OPERATIONS
    # =========================================================================

    def _extract_content(self, result: dict) -> str:
        """Extract text content from API response, handling list/dict formats."""
        content = result.get("choices", [{}])[0].get("message", {}).get("content", "")

        # Handle case where content is a list (multi-part response)
        if isinstance(content, list):
            text_parts = []
            for part in content:
                if isinstance(part, str):
                    text_parts.append(part)
                elif isinstance(part, dict) and "text" in part:
                    text_parts.append(part["text"])
            content = "".join(text_parts)

        return content if isinstance(content, str) else str(content)

    async def _call_model(
        self,
        prompt: str,
        endpoint: str,
        max_tokens: int = 1024,
        temperature: float = 0.7,
    ) -> str:
        """
        Send a single-message chat completion.

        Args:
            prompt: The prompt to send
            endpoint: Gateway path of the model to use
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature

        Returns:
            Model response text
        """
        payload = {
            "messages": [
                {"role": "user", "content": prompt}
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        try:
            response = await self.client.post(endpoint, json=payload)
            response.raise_for_status()
            return self._extract_content(response.json())
        except httpx.HTTPError as e:
            logger.error(f"Model API error on {endpoint}: {e}")
            raise

    @staticmethod
    def _strip_fences(text: str) -> str:
        """Drop markdown code fences models like to add around JSON."""
        text = text.strip()
        text = _FENCE_START.sub("", text)
        text = _FENCE_END.sub("", text)
        return text.strip()

    # =========================================================================
    # QUESTION GENERATION
    # =========================================================================

    async def generate_questions(self, request: QuestionRequest) -> list[str]:
        """
        Generate the question list for a new interview.

        Returns:
            Unique, trimmed questions; at most request.amount of them

        Raises:
            QuestionGenerationError: if the model output held no questions
        """
        prompt = self.interviewer_prompts.question_generation_prompt(request)
        try:
            raw = await self._call_model(
                prompt,
                self.settings.reasoning_endpoint,
                max_tokens=2048,
            )
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as e:
            raise QuestionGenerationError(f"Question generation request failed: {e}") from e

        questions = self._parse_question_list(raw)
        if not questions:
            raise QuestionGenerationError("Model returned no usable questions")

        logger.info(f"Generated {len(questions)} questions for role: {request.role}")
        return questions[:max(1, request.amount)]

    def _parse_question_list(self, raw: str) -> list[str]:
        """Parse a JSON array of questions, tolerating surrounding text."""
        text = self._strip_fences(raw)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            match = re.search(r"\[[\s\S]*\]", text)
            if not match:
                logger.warning("No JSON array found in question list response")
                return []
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse question list JSON: {e}")
                return []

        if not isinstance(parsed, list):
            return []

        # Deduplicate while keeping order
        seen: set[str] = set()
        questions = []
        for item in parsed:
            if not isinstance(item, str):
                continue
            question = item.strip()
            if question and question not in seen:
                seen.add(question)
                questions.append(question)
        return questions

    # =========================================================================
    # FOLLOW-UP DECISIONS
    # =========================================================================

    async def generate_followup(
        self,
        question: str,
        answer: str,
        context: str,
    ) -> str | None:
        """
        Decide whether the answer deserves one clarifying follow-up.

        Returns:
            The follow-up question, or None to move on

        Raises:
            FollowUpFailed: if the model call failed
        """
        prompt = self.interviewer_prompts.followup_prompt(question, answer, context)
        try:
            raw = await self._call_model(
                prompt,
                self.settings.fast_endpoint,
                max_tokens=128,
                temperature=0.8,
            )
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as e:
            raise FollowUpFailed(f"Follow-up generation failed: {e}") from e

        follow_up = self._parse_followup_response(raw)
        logger.info(f"Follow-up decision: {'ask' if follow_up else 'advance'}")
        return follow_up

    def _parse_followup_response(self, raw: str) -> str | None:
        text = self._strip_fences(raw)
        if not text or text.upper().rstrip(".") == NO_FOLLOWUP:
            return None

        # Avoid speaking JSON or other malformed output aloud
        if text.startswith("{") or text.startswith("["):
            logger.warning("Follow-up looks like JSON, treating as no follow-up")
            return None

        text = text.strip('"').strip()
        return text or None

    # =========================================================================
    # ANSWER EVALUATION
    # =========================================================================

    async def evaluate_answer(self, question: str, answer: str) -> AnswerFeedback:
        """
        Score one answer for display.

        Raises:
            EvaluationFailed: on request errors or malformed output
        """
        prompt = self.evaluator_prompts.answer_analysis_prompt(question, answer)
        try:
            raw = await self._call_model(
                prompt,
                self.settings.reasoning_endpoint,
                max_tokens=512,
                temperature=0.3,
            )
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as e:
            raise EvaluationFailed(f"Evaluation request failed: {e}") from e

        return self._parse_evaluation_response(raw)

    def _parse_evaluation_response(self, raw: str) -> AnswerFeedback:
        text = self._strip_fences(raw)
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            start = text.find("{")
            end = text.rfind("}")
            if start == -1 or end <= start:
                raise EvaluationFailed(f"No JSON found in evaluation response: {raw[:200]}")
            try:
                data = json.loads(text[start:end + 1])
            except json.JSONDecodeError as e:
                raise EvaluationFailed(f"Failed to parse evaluation JSON: {e}") from e

        if not isinstance(data, dict):
            raise EvaluationFailed("Evaluation response is not a JSON object")

        try:
            score = data.get("score")
            if isinstance(score, float):
                score = round(score)
            return AnswerFeedback(score=score, feedback=str(data.get("feedback", "")))
        except ValidationError as e:
            raise EvaluationFailed(f"Invalid evaluation structure: {e}") from e
