"""Behaviour of the spoken interview state machine."""

import asyncio

import pytest

from conftest import (
    FakeCapture,
    FakeEvaluator,
    FakeFinalizer,
    FakeFollowUps,
    FakeSynthesizer,
    answer_when_listening,
    wait_until,
)
from voiceprep.core.dialogue_controller import DialogueController
from voiceprep.errors import (
    EvaluationFailed,
    FinalizationFailed,
    FollowUpFailed,
    StateTransitionError,
    UnsupportedEnvironment,
)
from voiceprep.models.interview import (
    PHASE_ORDER,
    DialogueState,
    FinalizationResult,
    InterviewPhase,
    Speaker,
)


async def run_to_completion(controller, capture, answers):
    for answer in answers:
        await answer_when_listening(controller, capture, answer)
    await asyncio.wait_for(controller.wait_closed(), timeout=2)


# =========================================================================
# HAPPY PATH
# =========================================================================

async def test_happy_path_records_alternating_transcript(make_controller, capture, finalizer):
    controller = make_controller(["Q1", "Q2"], candidate_name="Ada")

    await controller.start()
    await run_to_completion(controller, capture, ["I am Ada", "Five years", "A1", "A2"])

    transcript = controller.session.transcript
    assert len(transcript) == 8
    assert [t.speaker for t in transcript] == [Speaker.INTERVIEWER, Speaker.CANDIDATE] * 4
    interviewer = [t.text for t in transcript if t.speaker == Speaker.INTERVIEWER]
    assert interviewer[0].startswith("Hello Ada!")
    assert interviewer[2:] == ["Q1", "Q2"]

    assert controller.state == DialogueState.COMPLETE
    assert controller.session.phase == InterviewPhase.COMPLETE
    assert not controller.session.active
    assert controller.outcome.success
    assert controller.outcome.location == "/interview/abc/feedback"
    assert len(finalizer.calls) == 1
    assert finalizer.calls[0] == transcript
    assert capture.closed


async def test_opening_line_is_spoken_first(make_controller, synthesizer):
    controller = make_controller(["Q1"], candidate_name="Grace")

    await controller.start()
    await wait_until(lambda: synthesizer.spoken)

    assert synthesizer.spoken[0].startswith("Hello Grace!")
    assert "introduce yourself" in synthesizer.spoken[0]


async def test_phase_never_regresses(make_controller, capture):
    controller = make_controller(["Q1", "Q2"])
    phases = []

    async def record(session_id, old, new):
        phases.append(controller.session.phase)

    controller.on_state_change(record)
    await controller.start()
    await run_to_completion(controller, capture, ["intro", "background", "a1", "a2"])

    indexes = [PHASE_ORDER.index(p) for p in phases]
    assert indexes == sorted(indexes)
    assert phases[-1] == InterviewPhase.COMPLETE


async def test_no_questions_completes_after_background(make_controller, capture):
    controller = make_controller([])

    await controller.start()
    await run_to_completion(controller, capture, ["intro", "background"])

    assert controller.outcome.reason == "questions_exhausted"
    assert len(controller.session.candidate_turns()) == 2


# =========================================================================
# TURN TAKING
# =========================================================================

async def test_capture_stays_off_while_interviewer_speaks(settings, capture, finalizer):
    synthesizer = FakeSynthesizer(block=True)
    controller = DialogueController(
        ["Q1"], capture, synthesizer, finalizer=finalizer, settings=settings
    )

    await controller.start()
    await wait_until(lambda: synthesizer.active == 1)

    assert controller.state == DialogueState.SPEAKING
    assert not controller.listening
    assert capture.start_calls == 0

    # A stray result while speaking is not an answer
    capture.say("hello?")
    await asyncio.sleep(0.02)
    assert controller.session.candidate_turns() == []

    synthesizer.release()
    await wait_until(lambda: controller.listening)
    assert synthesizer.active == 0
    assert controller.state == DialogueState.LISTENING

    await controller.stop()


async def test_duplicate_final_transcripts_are_processed_once(make_controller, capture):
    controller = make_controller(["Q1"])

    await controller.start()
    await wait_until(lambda: controller.listening)
    capture.say("my introduction")
    capture.say("my introduction")
    await wait_until(lambda: controller.session.candidate_turns())
    await wait_until(lambda: not controller.session.processing)
    await wait_until(lambda: controller.session.phase == InterviewPhase.BACKGROUND and controller.listening)

    assert len(controller.session.candidate_turns()) == 1
    assert controller.dropped_transcripts == 1


async def test_interim_transcripts_are_ignored(make_controller, capture):
    controller = make_controller(["Q1"])

    await controller.start()
    await wait_until(lambda: controller.listening)
    capture.say("my intro", is_final=False)
    await asyncio.sleep(0.02)

    assert controller.state == DialogueState.LISTENING
    assert controller.session.candidate_turns() == []


async def test_confidence_is_recorded_as_percentage(make_controller, capture):
    controller = make_controller(["Q1"])

    await controller.start()
    await answer_when_listening(controller, capture, "hello there", confidence=0.876)

    assert controller.session.candidate_turns()[0].confidence == 88


# =========================================================================
# EVALUATION
# =========================================================================

async def test_feedback_targets_the_question_answered(make_controller, capture):
    evaluator = FakeEvaluator(score=70)
    controller = make_controller(["Q1", "Q2"], evaluator=evaluator)
    received = []

    async def on_feedback(session_id, feedback):
        received.append(feedback)

    controller.on_feedback(on_feedback)
    await controller.start()
    await answer_when_listening(controller, capture, "intro")
    await answer_when_listening(controller, capture, "background")
    await answer_when_listening(controller, capture, "answer one")
    await wait_until(lambda: received)

    # Intro and background answers are not scored
    assert evaluator.calls == [("Q1", "answer one")]
    assert controller.session.pending_feedback.score == 70


async def test_late_feedback_is_shown_after_the_next_question(make_controller, capture):
    evaluator = FakeEvaluator(score=64, delay=0.2)
    controller = make_controller(["Q1", "Q2"], evaluator=evaluator)

    await controller.start()
    await answer_when_listening(controller, capture, "intro")
    await answer_when_listening(controller, capture, "background")
    await answer_when_listening(controller, capture, "a1")
    await wait_until(lambda: controller.session.last_prompt == "Q2")
    assert controller.session.pending_feedback is None

    await wait_until(lambda: controller.session.pending_feedback is not None)

    assert controller.session.pending_feedback.score == 64
    assert controller.session.question_index == 1
    assert controller.state != DialogueState.COMPLETE


async def test_slow_feedback_never_replaces_newer_feedback(make_controller, capture):
    evaluator = FakeEvaluator(score=[10, 99], delay=[0.3, 0.0])
    controller = make_controller(["Q1", "Q2", "Q3"], evaluator=evaluator)

    await controller.start()
    await answer_when_listening(controller, capture, "intro")
    await answer_when_listening(controller, capture, "background")
    await answer_when_listening(controller, capture, "a1")
    await answer_when_listening(controller, capture, "a2")
    await wait_until(lambda: controller.session.pending_feedback is not None)
    assert controller.session.pending_feedback.score == 99

    # Let the first answer's evaluation resolve
    await asyncio.sleep(0.4)

    assert len(evaluator.calls) == 2
    assert controller.session.pending_feedback.score == 99


@pytest.mark.parametrize("evaluator", [
    FakeEvaluator(error=EvaluationFailed("bad json")),
    FakeEvaluator(error=RuntimeError("boom")),
    FakeEvaluator(delay=5.0),
])
async def test_evaluator_failure_does_not_block_the_interview(make_controller, capture, evaluator):
    controller = make_controller(["Q1", "Q2"], evaluator=evaluator)

    await controller.start()
    await run_to_completion(controller, capture, ["intro", "background", "a1", "a2"])

    assert controller.outcome.success
    assert controller.session.pending_feedback is None
    assert len(controller.session.candidate_turns()) == 4


# =========================================================================
# FOLLOW-UPS
# =========================================================================

async def test_single_followup_per_question(make_controller, capture):
    followups = FakeFollowUps(["Can you elaborate?"] * 5)
    controller = make_controller(["Q1", "Q2"], followups=followups)

    await controller.start()
    await run_to_completion(
        controller, capture, ["intro", "background", "a1", "more on a1", "a2", "more on a2"]
    )

    interviewer = [t.text for t in controller.session.transcript if t.speaker == Speaker.INTERVIEWER]
    assert interviewer[2:] == ["Q1", "Can you elaborate?", "Q2", "Can you elaborate?"]
    assert len(followups.calls) == 2
    assert controller.session.total_followups_asked == 2


async def test_followup_keeps_question_index(make_controller, capture):
    followups = FakeFollowUps(["Which database?"])
    controller = make_controller(["Q1", "Q2"], followups=followups)

    await controller.start()
    await answer_when_listening(controller, capture, "intro")
    await answer_when_listening(controller, capture, "background")
    await answer_when_listening(controller, capture, "we used a database")
    await wait_until(lambda: controller.session.last_prompt == "Which database?")
    await wait_until(lambda: controller.state == DialogueState.LISTENING)

    assert controller.session.question_index == 0
    assert controller.session.last_prompt == "Which database?"
    question, answer, context = followups.calls[0]
    assert question == "Q1"
    assert answer == "we used a database"
    assert "Interviewer: Q1" in context
    assert "we used a database" not in context


async def test_followup_failure_advances(make_controller, capture):
    followups = FakeFollowUps(error=FollowUpFailed("gateway down"))
    controller = make_controller(["Q1", "Q2"], followups=followups)

    await controller.start()
    await answer_when_listening(controller, capture, "intro")
    await answer_when_listening(controller, capture, "background")
    await answer_when_listening(controller, capture, "a1")
    await wait_until(lambda: controller.session.last_prompt == "Q2")
    await wait_until(lambda: controller.state == DialogueState.LISTENING)

    assert controller.session.question_index == 1
    assert controller.session.last_prompt == "Q2"


async def test_zero_followup_budget_never_asks(settings, capture, synthesizer, finalizer):
    followups = FakeFollowUps(["Why?"])
    controller = DialogueController(
        ["Q1"], capture, synthesizer,
        followups=followups,
        finalizer=finalizer,
        settings=settings.model_copy(update={"max_followups_per_question": 0}),
    )

    await controller.start()
    await run_to_completion(controller, capture, ["intro", "background", "a1"])

    assert followups.calls == []


# =========================================================================
# CAPTURE RESILIENCE
# =========================================================================

async def test_spontaneous_capture_end_is_restarted(make_controller, capture):
    controller = make_controller(["Q1"])

    await controller.start()
    await wait_until(lambda: controller.listening)
    turns_before = len(controller.session.transcript)

    capture.drop()
    await wait_until(lambda: capture.start_calls == 2)
    await wait_until(lambda: controller.listening)

    assert controller.capture.restarts == 1
    assert len(controller.session.transcript) == turns_before

    await answer_when_listening(controller, capture, "still here")
    assert controller.session.candidate_turns()[-1].text == "still here"


async def test_network_error_is_restarted(make_controller, capture):
    controller = make_controller(["Q1"])

    await controller.start()
    await wait_until(lambda: controller.listening)
    capture.fail("network")
    capture.drop()
    await wait_until(lambda: capture.start_calls == 2)

    # The trailing end after the error must not add a second restart
    await asyncio.sleep(0.05)
    assert capture.start_calls == 2


async def test_permission_denied_is_reported_and_not_retried(make_controller, capture, finalizer):
    controller = make_controller(["Q1"])
    errors = []

    async def on_error(session_id, error):
        errors.append(error)

    controller.on_error(on_error)
    await controller.start()
    await wait_until(lambda: controller.listening)

    capture.fail("not-allowed")
    await asyncio.wait_for(controller.wait_closed(), timeout=2)
    await asyncio.sleep(0.05)

    assert isinstance(errors[0], UnsupportedEnvironment)
    assert capture.start_calls == 1
    assert controller.state == DialogueState.COMPLETE
    assert controller.outcome.reason == "microphone_denied"
    assert len(finalizer.calls) == 1


async def test_intentional_pause_is_not_restarted(make_controller, capture):
    controller = make_controller(["Q1", "Q2"])

    await controller.start()
    await answer_when_listening(controller, capture, "intro")
    await wait_until(lambda: controller.state == DialogueState.LISTENING and controller.listening)

    # One start per listening period
    assert capture.start_calls == 2
    assert controller.capture.restarts == 0


# =========================================================================
# STARTING AND STOPPING
# =========================================================================

@pytest.mark.parametrize("capture", [
    FakeCapture(supported=False),
    FakeCapture(deny_open=True),
    None,
])
async def test_unsupported_environment_keeps_session_inactive(make_controller, capture):
    controller = make_controller(["Q1"], capture=capture)

    with pytest.raises(UnsupportedEnvironment):
        await controller.start()

    assert not controller.session.active
    assert controller.state == DialogueState.IDLE
    assert controller.session.transcript == []


async def test_start_twice_is_rejected(make_controller):
    controller = make_controller(["Q1"])

    await controller.start()
    with pytest.raises(StateTransitionError):
        await controller.start()


async def test_stop_while_speaking_cancels_speech(settings, capture, finalizer):
    synthesizer = FakeSynthesizer(block=True)
    controller = DialogueController(
        ["Q1"], capture, synthesizer, finalizer=finalizer, settings=settings
    )

    await controller.start()
    await wait_until(lambda: synthesizer.active == 1)
    outcome = await asyncio.wait_for(controller.stop(), timeout=2)

    assert outcome.reason == "user_ended"
    assert synthesizer.cancel_calls == 1
    assert controller.state == DialogueState.COMPLETE
    assert capture.closed

    # Stopping again reuses the first outcome
    again = await controller.stop()
    assert again is outcome
    assert len(finalizer.calls) == 1


async def test_stop_before_start_is_a_noop(make_controller, finalizer):
    controller = make_controller(["Q1"])

    assert await controller.stop() is None
    assert finalizer.calls == []


async def test_results_after_stop_are_discarded(make_controller, capture):
    evaluator = FakeEvaluator(delay=0.1)
    controller = make_controller(["Q1", "Q2"], evaluator=evaluator)

    await controller.start()
    await answer_when_listening(controller, capture, "intro")
    await answer_when_listening(controller, capture, "background")
    await answer_when_listening(controller, capture, "a1")
    await controller.stop()
    await asyncio.sleep(0.2)

    assert controller.session.pending_feedback is None
    assert controller.state == DialogueState.COMPLETE


async def test_elapsed_time_ticks_while_active(make_controller):
    controller = make_controller(["Q1"])

    await controller.start()
    await wait_until(lambda: controller.session.elapsed_seconds >= 2)
    await controller.stop()
    elapsed = controller.session.elapsed_seconds
    await asyncio.sleep(0.15)

    assert controller.session.elapsed_seconds == elapsed


# =========================================================================
# FINALIZATION
# =========================================================================

@pytest.mark.parametrize("finalizer", [
    FakeFinalizer(result=FinalizationResult(success=False)),
    FakeFinalizer(error=RuntimeError("disk full")),
])
async def test_finalization_failure_routes_home(make_controller, capture, finalizer):
    controller = make_controller(["Q1"], finalizer=finalizer)
    errors = []

    async def on_error(session_id, error):
        errors.append(error)

    controller.on_error(on_error)
    await controller.start()
    await run_to_completion(controller, capture, ["intro", "background", "a1"])

    assert not controller.outcome.success
    assert controller.outcome.location == "/"
    assert isinstance(errors[0], FinalizationFailed)
    assert len(finalizer.calls) == 1


async def test_without_finalizer_interview_still_ends(make_controller, capture):
    controller = make_controller(["Q1"], finalizer=None)

    await controller.start()
    await run_to_completion(controller, capture, ["intro", "background", "a1"])

    assert controller.outcome.success
    assert controller.outcome.location == "/"


async def test_callback_errors_do_not_break_the_flow(make_controller, capture):
    controller = make_controller(["Q1"])

    async def broken(*args):
        raise RuntimeError("ui went away")

    controller.on_turn(broken)
    controller.on_state_change(broken)
    await controller.start()
    await run_to_completion(controller, capture, ["intro", "background", "a1"])

    assert controller.outcome.success
