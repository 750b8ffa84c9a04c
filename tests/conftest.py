"""Shared fixtures and in-memory fakes for the dialogue tests."""

import asyncio

import pytest

from voiceprep.config.settings import Settings
from voiceprep.core.dialogue_controller import DialogueController
from voiceprep.models.events import (
    CaptureEnded,
    CaptureFailed,
    CaptureStarted,
    TranscriptReceived,
)
from voiceprep.models.interview import AnswerFeedback, DialogueState, FinalizationResult


class FakeCapture:
    """Speech capture that reports start/stop immediately."""

    def __init__(self, supported=True, deny_open=False):
        self.supported = supported
        self.deny_open = deny_open
        self.listener = None
        self.opened = False
        self.closed = False
        self.start_calls = 0
        self.stop_calls = 0

    def is_supported(self):
        return self.supported

    def set_listener(self, listener):
        self.listener = listener

    async def open(self):
        if self.deny_open:
            raise PermissionError("microphone denied")
        self.opened = True

    async def close(self):
        self.closed = True

    async def start(self):
        self.start_calls += 1
        self.listener(CaptureStarted())

    async def stop(self):
        self.stop_calls += 1
        self.listener(CaptureEnded())

    def say(self, text, confidence=0.9, is_final=True):
        self.listener(TranscriptReceived(transcript=text, is_final=is_final, confidence=confidence))

    def drop(self):
        """Capture ends on its own."""
        self.listener(CaptureEnded())

    def fail(self, code):
        self.listener(CaptureFailed(code=code))


class FakeSynthesizer:
    """Records what was spoken; optionally holds utterances until released."""

    def __init__(self, block=False):
        self.block = block
        self.spoken = []
        self.cancel_calls = 0
        self.active = 0
        self._release = asyncio.Event()

    async def speak(self, text, options):
        self.spoken.append(text)
        self.active += 1
        try:
            if self.block:
                await self._release.wait()
                self._release.clear()
        finally:
            self.active -= 1

    def release(self):
        self._release.set()

    async def cancel(self):
        self.cancel_calls += 1


class FakeEvaluator:
    """Scores every answer; score and delay may be lists, one entry per call."""

    def __init__(self, score=70, error=None, delay=0.0):
        self.score = score
        self.error = error
        self.delay = delay
        self.calls = []

    async def evaluate_answer(self, question, answer):
        call = len(self.calls)
        self.calls.append((question, answer))
        delay = self.delay[call] if isinstance(self.delay, list) else self.delay
        score = self.score[call] if isinstance(self.score, list) else self.score
        if delay:
            await asyncio.sleep(delay)
        if self.error:
            raise self.error
        return AnswerFeedback(score=score, feedback="Solid answer.")


class FakeFollowUps:
    """Returns scripted follow-ups in order, then None."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls = []

    async def generate_followup(self, question, answer, context):
        self.calls.append((question, answer, context))
        if self.error:
            raise self.error
        return self.replies.pop(0) if self.replies else None


class FakeFinalizer:
    def __init__(self, result=None, error=None):
        self.result = result or FinalizationResult(success=True, location="/interview/abc/feedback")
        self.error = error
        self.calls = []

    async def finalize(self, transcript):
        self.calls.append(list(transcript))
        if self.error:
            raise self.error
        return self.result


async def wait_until(predicate, timeout=2.0):
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def settings():
    return Settings(
        llm_host="",
        llm_token="",
        capture_restart_backoff_ms=10,
        capture_error_backoff_ms=20,
        synthesis_timeout_seconds=1.0,
        evaluation_timeout_seconds=0.5,
        followup_timeout_seconds=0.5,
        elapsed_tick_seconds=0.05,
    )


@pytest.fixture
def capture():
    return FakeCapture()


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def finalizer():
    return FakeFinalizer()


@pytest.fixture
async def make_controller(settings, capture, synthesizer, finalizer):
    created = []

    def _make(questions=("Q1", "Q2"), **kwargs):
        kwargs.setdefault("capture", capture)
        kwargs.setdefault("synthesizer", synthesizer)
        kwargs.setdefault("finalizer", finalizer)
        kwargs.setdefault("evaluator", FakeEvaluator())
        kwargs.setdefault("settings", settings)
        controller = DialogueController(questions=list(questions), **kwargs)
        created.append(controller)
        return controller

    yield _make

    for controller in created:
        await controller.stop("test_teardown")


async def answer_when_listening(controller, capture, text, confidence=0.9):
    """Wait for the controller to listen, then speak one final answer."""
    await wait_until(lambda: controller.state == DialogueState.LISTENING and controller.listening)
    answered = len(controller.session.candidate_turns())
    capture.say(text, confidence=confidence)
    # The whole answer round-trip can finish between two polls
    await wait_until(lambda: len(controller.session.candidate_turns()) == answered + 1)
