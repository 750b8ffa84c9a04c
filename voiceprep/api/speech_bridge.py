"""
WebSocket speech bridge

The candidate's browser does the actual speech recognition and synthesis
(Web Speech API). This module exposes both as the capture and synthesizer
capabilities the dialogue controller expects, translating between controller
calls and JSON messages on the interview WebSocket.
"""

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from voiceprep.core.capabilities import EventSink, VoiceOptions
from voiceprep.errors import UnsupportedEnvironment
from voiceprep.models.events import (
    CaptureEnded,
    CaptureFailed,
    CaptureStarted,
    DialogueEvent,
    TranscriptReceived,
)

logger = logging.getLogger(__name__)


class WebSocketSpeech:
    """Speech capture and synthesis running in the browser on the other end of a WebSocket."""

    def __init__(self, websocket: WebSocket, language_code: str = "en-US"):
        self.websocket = websocket
        self.language_code = language_code
        self.supported = False

        self._listener: EventSink | None = None
        self._send_lock = asyncio.Lock()
        self._pending: dict[str, asyncio.Future] = {}
        self._next_utterance = 0
        self._open = False

    async def send(self, message: dict[str, Any]) -> None:
        """Send one JSON message; concurrent senders are serialized."""
        async with self._send_lock:
            await self.websocket.send_json(message)

    # =========================================================================
    # SPEECH CAPTURE
    # =========================================================================

    def is_supported(self) -> bool:
        return self.supported

    def set_listener(self, listener: EventSink) -> None:
        self._listener = listener

    async def open(self) -> None:
        if not self.supported:
            raise UnsupportedEnvironment("Browser reported no speech recognition support")
        self._open = True

    async def close(self) -> None:
        self._open = False
        self._resolve_pending()

    async def start(self) -> None:
        await self.send({"type": "listen", "language": self.language_code})

    async def stop(self) -> None:
        await self.send({"type": "stop_listening"})

    # =========================================================================
    # SPEECH SYNTHESIS
    # =========================================================================

    async def speak(self, text: str, options: VoiceOptions) -> None:
        self._next_utterance += 1
        utterance_id = str(self._next_utterance)
        done = asyncio.get_running_loop().create_future()
        self._pending[utterance_id] = done
        try:
            await self.send({
                "type": "speak",
                "utterance_id": utterance_id,
                "text": text,
                "rate": options.rate,
                "pitch": options.pitch,
                "volume": options.volume,
                "voice": options.voice,
            })
            await done
        finally:
            self._pending.pop(utterance_id, None)

    async def cancel(self) -> None:
        self._resolve_pending()
        await self.send({"type": "cancel_speech"})

    def _resolve_pending(self) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_result(None)

    # =========================================================================
    # CLIENT MESSAGES
    # =========================================================================

    def handle_client_message(self, data: dict[str, Any]) -> bool:
        """
        Route a speech-related client message.

        Returns:
            True if the message was consumed
        """
        message_type = data.get("type")

        if message_type == "transcript":
            self._emit(TranscriptReceived(
                transcript=str(data.get("transcript") or ""),
                is_final=bool(data.get("is_final", True)),
                confidence=self._parse_confidence(data.get("confidence")),
            ))
        elif message_type == "capture_started":
            self._emit(CaptureStarted())
        elif message_type == "capture_ended":
            self._emit(CaptureEnded())
        elif message_type == "capture_error":
            self._emit(CaptureFailed(code=str(data.get("code") or "unknown")))
        elif message_type == "speech_finished":
            future = self._pending.get(str(data.get("utterance_id")))
            if future is not None and not future.done():
                future.set_result(None)
        else:
            return False

        return True

    def _emit(self, event: DialogueEvent) -> None:
        if self._listener is None:
            logger.debug(f"No listener for {type(event).__name__}, dropping")
            return
        self._listener(event)

    @staticmethod
    def _parse_confidence(value: Any) -> float | None:
        if value is None:
            return None
        try:
            return min(1.0, max(0.0, float(value)))
        except (TypeError, ValueError):
            return None
