"""
Turn-taking support for speech capture.

Browser speech recognition stops on its own (silence timeouts, network
hiccups). The CaptureSupervisor tells those spontaneous ends apart from the
pauses the controller asks for, and schedules restarts for the former.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from voiceprep.core.capabilities import EventSink, SpeechCapture
from voiceprep.errors import CaptureInterrupted, UnsupportedEnvironment
from voiceprep.models.events import RestartCapture

logger = logging.getLogger(__name__)

# Capture error codes that mean the microphone will not come back by retrying
PERMISSION_ERRORS = frozenset({"not-allowed", "service-not-allowed"})


class CaptureSupervisor:
    """
    Owns the speech-capture capability on behalf of the dialogue controller.

    Tracks three flags:
    - listening: capture confirmed started and not yet ended
    - start in flight: start() issued, no started/ended event seen yet
    - pause requested: the next end is intentional and must not be restarted

    At most one restart is pending at any time; each one waits a fixed backoff
    and then asks the controller (through a RestartCapture event) to resume,
    so the controller re-checks its own state before capture starts again.
    """

    def __init__(
        self,
        capture: SpeechCapture | None,
        dispatch: EventSink,
        restart_backoff: float = 0.3,
        error_backoff: float = 0.5,
    ):
        self._capture = capture
        self._dispatch = dispatch
        self.restart_backoff = restart_backoff
        self.error_backoff = error_backoff

        self._listening = False
        self._start_in_flight = False
        self._pause_requested = True
        self._restart_task: asyncio.Task | None = None
        self.restarts = 0

        if capture is not None:
            capture.set_listener(dispatch)

    @property
    def supported(self) -> bool:
        if self._capture is None:
            return False
        try:
            return bool(self._capture.is_supported())
        except Exception as e:
            logger.warning(f"Speech capture support check failed: {e}")
            return False

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def start_in_flight(self) -> bool:
        return self._start_in_flight

    @property
    def restart_pending(self) -> bool:
        return self._restart_task is not None and not self._restart_task.done()

    # =========================================================================
    # MICROPHONE OWNERSHIP
    # =========================================================================

    @asynccontextmanager
    async def microphone(self) -> AsyncIterator["CaptureSupervisor"]:
        """
        Hold the microphone for the duration of the block.

        The capture is paused and the microphone released on every exit,
        including errors and cancellation.
        """
        if not self.supported:
            raise UnsupportedEnvironment("Speech recognition is not supported in this environment")
        try:
            await self._capture.open()
        except UnsupportedEnvironment:
            raise
        except Exception as e:
            raise UnsupportedEnvironment(f"Microphone could not be acquired: {e}") from e

        logger.info("Microphone acquired")
        try:
            yield self
        finally:
            await self.pause()
            try:
                await self._capture.close()
            except Exception as e:
                logger.warning(f"Failed to release microphone: {e}")
            logger.info("Microphone released")

    # =========================================================================
    # CAPTURE CONTROL
    # =========================================================================

    async def begin(self) -> bool:
        """
        Start capturing unless a capture is already running or starting.

        Returns:
            True if a start was issued

        Raises:
            CaptureInterrupted: if the capability refused to start
        """
        if self._listening or self._start_in_flight:
            logger.debug("Capture already active, not starting another")
            return False

        self._cancel_restart()
        self._pause_requested = False
        self._start_in_flight = True
        try:
            await self._capture.start()
        except Exception as e:
            self._start_in_flight = False
            raise CaptureInterrupted(f"Speech capture failed to start: {e}") from e
        return True

    async def pause(self) -> None:
        """Stop capturing on purpose; the resulting end is not restarted."""
        already_paused = self._pause_requested
        self._pause_requested = True
        self._cancel_restart()
        # One stop per capture session
        if already_paused or not (self._listening or self._start_in_flight):
            return
        try:
            await self._capture.stop()
        except Exception as e:
            logger.warning(f"Speech capture stop failed: {e}")

    def mark_started(self) -> None:
        self._start_in_flight = False
        self._listening = True

    def mark_ended(self) -> bool:
        """
        Record that capture ended.

        Returns:
            True if the end was unintentional
        """
        self._listening = False
        self._start_in_flight = False
        return not self._pause_requested

    # =========================================================================
    # RESTARTS
    # =========================================================================

    def schedule_restart(self, delay: float | None = None) -> bool:
        """
        Ask for a restart after the backoff.

        Returns:
            False if a restart is already pending
        """
        if self.restart_pending:
            return False
        delay = self.restart_backoff if delay is None else delay
        self._restart_task = asyncio.create_task(self._restart_after(delay))
        return True

    async def _restart_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self.restarts += 1
        logger.info(f"Restarting speech capture (attempt {self.restarts})")
        self._dispatch(RestartCapture())

    def _cancel_restart(self) -> None:
        if self._restart_task is not None and not self._restart_task.done():
            self._restart_task.cancel()
        self._restart_task = None
