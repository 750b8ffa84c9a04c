"""
Interview API endpoints

Handles the interview lifecycle:
- Generating question lists
- Scoring answers and deciding follow-ups on demand
- Conducting the spoken interview over a WebSocket
- Reading back stored feedback
"""

import logging
import re
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from voiceprep.api.dependencies import (
    get_ai_reasoning,
    get_controller,
    get_evaluation_engine,
    get_interview_store,
    register_controller,
    unregister_controller,
)
from voiceprep.api.speech_bridge import WebSocketSpeech
from voiceprep.config.settings import Settings, get_settings
from voiceprep.core.ai_reasoning import AIReasoningLayer, QuestionGenerationError
from voiceprep.core.dialogue_controller import DialogueController
from voiceprep.core.evaluation_engine import EvaluationEngine
from voiceprep.core.interview_store import InterviewStore, TranscriptFinalizer
from voiceprep.errors import (
    EvaluationFailed,
    FollowUpFailed,
    InterviewError,
    UnsupportedEnvironment,
)
from voiceprep.models.interview import (
    AnswerFeedback,
    DialogueState,
    InterviewOutcome,
    Turn,
)
from voiceprep.models.question import FeedbackRecord, InterviewRecord, QuestionRequest

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class GenerateResponse(BaseModel):
    """Response after generating an interview."""
    success: bool
    id: str


class AnalyzeRequest(BaseModel):
    """Request model for scoring one answer."""
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)


class FollowUpRequest(BaseModel):
    """Request model for a follow-up decision."""
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    context: str = ""


class FollowUpResponse(BaseModel):
    """A follow-up question, or null to move on."""
    follow_up: str | None = None


# ============================================================================
# REST ENDPOINTS
# ============================================================================

@router.post("/generate", response_model=GenerateResponse)
async def generate_interview(
    request: QuestionRequest,
    ai_reasoning: AIReasoningLayer | None = Depends(get_ai_reasoning),
    store: InterviewStore = Depends(get_interview_store),
) -> GenerateResponse:
    """
    Generate and store a new interview.

    The question list comes from the model; the interview can then be
    conducted over the WebSocket using the returned id.
    """
    if ai_reasoning is None:
        raise HTTPException(status_code=503, detail="Question generation is not configured")

    try:
        questions = await ai_reasoning.generate_questions(request)
    except QuestionGenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))

    record = store.save_interview(InterviewRecord(
        role=request.role,
        type=request.type,
        level=request.level,
        techstack=request.techstack,
        questions=questions,
        user_id=request.user_id,
        company=request.company,
    ))

    return GenerateResponse(success=True, id=record.id)


@router.post("/analyze", response_model=AnswerFeedback)
async def analyze_answer(
    request: AnalyzeRequest,
    engine: EvaluationEngine = Depends(get_evaluation_engine),
) -> AnswerFeedback:
    """Score a single answer."""
    try:
        return await engine.evaluate_answer(request.question, request.answer)
    except EvaluationFailed as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/follow-up", response_model=FollowUpResponse)
async def decide_followup(
    request: FollowUpRequest,
    ai_reasoning: AIReasoningLayer | None = Depends(get_ai_reasoning),
) -> FollowUpResponse:
    """Ask whether an answer deserves a clarifying follow-up."""
    if ai_reasoning is None:
        return FollowUpResponse(follow_up=None)

    try:
        follow_up = await ai_reasoning.generate_followup(
            request.question, request.answer, request.context
        )
    except FollowUpFailed as e:
        raise HTTPException(status_code=502, detail=str(e))

    return FollowUpResponse(follow_up=follow_up)


@router.get("/{interview_id}", response_model=InterviewRecord)
async def get_interview(
    interview_id: str,
    store: InterviewStore = Depends(get_interview_store),
) -> InterviewRecord:
    """Get a stored interview."""
    record = store.get_interview(interview_id)

    if not record:
        raise HTTPException(status_code=404, detail="Interview not found")

    return record


@router.get("/{interview_id}/status")
async def get_interview_status(interview_id: str) -> dict[str, Any]:
    """Get the live status of an interview being conducted."""
    controller = get_controller(interview_id)

    if not controller:
        raise HTTPException(status_code=404, detail="Interview is not in progress")

    return controller.snapshot()


@router.get("/{interview_id}/feedback", response_model=FeedbackRecord)
async def get_interview_feedback(
    interview_id: str,
    store: InterviewStore = Depends(get_interview_store),
) -> FeedbackRecord:
    """Get the transcript saved when an interview ended."""
    feedback = store.get_feedback(interview_id)

    if not feedback:
        raise HTTPException(status_code=404, detail="Feedback not found")

    return feedback


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

def _error_kind(error: Exception) -> str:
    """UnsupportedEnvironment -> unsupported_environment"""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", type(error).__name__).lower()


def _wire_controller(controller: DialogueController, speech: WebSocketSpeech) -> None:
    """Forward controller callbacks to the browser."""

    async def on_state_change(session_id: str, old: DialogueState, new: DialogueState):
        session = controller.session
        await speech.send({
            "type": "state",
            "state": new.value,
            "phase": session.phase.value,
            "question_index": session.question_index,
            "elapsed_seconds": session.elapsed_seconds,
        })

    async def on_turn(session_id: str, turn: Turn):
        await speech.send({
            "type": "turn",
            "speaker": turn.speaker.value,
            "text": turn.text,
            "confidence": turn.confidence,
        })

    async def on_feedback(session_id: str, feedback: AnswerFeedback):
        await speech.send({"type": "feedback", **feedback.model_dump()})

    async def on_finished(session_id: str, outcome: InterviewOutcome):
        await speech.send({
            "type": "finished",
            "success": outcome.success,
            "location": outcome.location,
        })

    async def on_error(session_id: str, error: InterviewError):
        await speech.send({
            "type": "error",
            "kind": _error_kind(error),
            "message": str(error),
        })

    controller.on_state_change(on_state_change)
    controller.on_turn(on_turn)
    controller.on_feedback(on_feedback)
    controller.on_finished(on_finished)
    controller.on_error(on_error)


@router.websocket("/ws/{interview_id}")
async def websocket_interview(
    websocket: WebSocket,
    interview_id: str,
    settings: Settings = Depends(get_settings),
    store: InterviewStore = Depends(get_interview_store),
    engine: EvaluationEngine = Depends(get_evaluation_engine),
    ai_reasoning: AIReasoningLayer | None = Depends(get_ai_reasoning),
):
    """
    WebSocket endpoint for conducting a spoken interview.

    Client sends:
    - start: Begin the interview (candidate_name, user_id, speech_supported)
    - transcript: Speech recognition result (transcript, is_final, confidence)
    - capture_started / capture_ended / capture_error: Recognition lifecycle
    - speech_finished: An utterance finished playing (utterance_id)
    - end: End the interview
    - ping

    Server sends:
    - speak / cancel_speech: Interviewer speech
    - listen / stop_listening: Recognition control
    - state, turn, feedback: Progress for display
    - finished: Interview over, with where to go next
    - error: Something the candidate should know about
    """
    await websocket.accept()

    record = store.get_interview(interview_id)

    if not record:
        await websocket.close(code=4004, reason="Interview not found")
        return

    speech = WebSocketSpeech(websocket, language_code=settings.language_code)
    controller: DialogueController | None = None

    try:
        while True:
            data = await websocket.receive_json()
            if speech.handle_client_message(data):
                continue

            message_type = data.get("type")

            if message_type == "start":
                if controller is not None:
                    await speech.send({
                        "type": "error",
                        "kind": "already_started",
                        "message": "Interview already started",
                    })
                    continue

                speech.supported = bool(data.get("speech_supported", True))
                user_id = str(data.get("user_id") or record.user_id)
                candidate = DialogueController(
                    questions=record.questions,
                    capture=speech,
                    synthesizer=speech,
                    evaluator=engine,
                    followups=ai_reasoning,
                    finalizer=TranscriptFinalizer(store, interview_id, user_id),
                    candidate_name=str(data.get("candidate_name") or "there"),
                    settings=settings,
                )
                _wire_controller(candidate, speech)

                try:
                    await candidate.start()
                except UnsupportedEnvironment as e:
                    await speech.send({
                        "type": "error",
                        "kind": _error_kind(e),
                        "message": str(e),
                    })
                    continue

                controller = candidate
                register_controller(interview_id, controller)

            elif message_type == "end":
                if controller is not None:
                    await controller.stop("user_ended")
                await websocket.close()
                break

            elif message_type == "ping":
                await speech.send({"type": "pong"})

            else:
                logger.debug(f"Ignoring unknown message type: {message_type}")

    except WebSocketDisconnect:
        # Client disconnected
        logger.info(f"Interview {interview_id}: client disconnected")
    except Exception as e:
        logger.error(f"Interview {interview_id}: WebSocket error: {e}")
        try:
            await speech.send({
                "type": "error",
                "kind": "internal",
                "message": str(e),
            })
        except Exception as send_error:
            # The socket itself may be what failed
            logger.debug(f"Interview {interview_id}: could not report error: {send_error}")
    finally:
        if controller is not None:
            await controller.stop("disconnected")
            unregister_controller(interview_id)
