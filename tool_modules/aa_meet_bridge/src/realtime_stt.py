"""
Realtime Speech-to-Text stream.

Keeps one websocket open to the OpenAI realtime API, configured for
transcription only with server-side voice activity detection. Meeting
audio from parec is forwarded as base64 PCM16; every completed
transcription is handed to the utterance callback.

Lifecycle:
    CONNECTING --open--> CONFIGURING --session.updated--> STREAMING --error/close--> CLOSED

CLOSED is terminal. There is no reconnect: the supervising process
restarts the whole bridge.
"""

import asyncio
import base64
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set

import websockets
from websockets.asyncio.client import connect as ws_connect

from tool_modules.aa_meet_bridge.src.audio_capture import ParecCapture
from tool_modules.aa_meet_bridge.src.config import RealtimeConfig
from tool_modules.aa_meet_bridge.src.errors import TranscriptionStreamError

logger = logging.getLogger(__name__)

TRANSCRIBE_ONLY_INSTRUCTIONS = "Transcribe the user's speech accurately. Do not generate responses."


class StreamState(str, Enum):
    CONNECTING = "connecting"
    CONFIGURING = "configuring"
    STREAMING = "streaming"
    CLOSED = "closed"


class RealtimeTranscriber:
    """
    Streaming transcription adapter.

    Callbacks:
        on_utterance(text): awaited in its own task per completed utterance
        on_speech_started() / on_speech_stopped(): informational
        on_error(details): service-reported error events
        on_closed(): fired once when the stream reaches CLOSED
    """

    def __init__(
        self,
        config: RealtimeConfig,
        capture: ParecCapture,
        on_utterance: Callable[[str], Awaitable[None]],
        is_paused: Callable[[], bool] = lambda: False,
        on_speech_started: Optional[Callable[[], None]] = None,
        on_speech_stopped: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Any], None]] = None,
        on_closed: Optional[Callable[[], None]] = None,
        connect: Callable = ws_connect,
    ):
        self.config = config
        self.capture = capture
        self.on_utterance = on_utterance
        self._is_paused = is_paused
        self.on_speech_started = on_speech_started
        self.on_speech_stopped = on_speech_stopped
        self.on_error = on_error
        self.on_closed = on_closed
        self._connect = connect

        self.state = StreamState.CONNECTING
        self.error: Optional[TranscriptionStreamError] = None
        self._ws = None
        self._forward_task: Optional[asyncio.Task] = None
        self._utterance_tasks: Set[asyncio.Task] = set()
        self.chunks_sent = 0
        self.utterances_completed = 0

    def session_update_message(self) -> dict:
        """The configuration sent right after the connection opens."""
        return {
            "type": "session.update",
            "session": {
                "modalities": ["text"],
                "instructions": TRANSCRIBE_ONLY_INSTRUCTIONS,
                "input_audio_format": "pcm16",
                "input_audio_transcription": {"model": self.config.transcription_model},
                "turn_detection": {
                    "type": "server_vad",
                    "threshold": self.config.vad_threshold,
                    "prefix_padding_ms": self.config.prefix_padding_ms,
                    "silence_duration_ms": self.config.silence_duration_ms,
                },
            },
        }

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

    async def run(self) -> None:
        """Connect and process events until the stream closes."""
        if self.state is StreamState.CLOSED:
            raise TranscriptionStreamError("Transcription stream already closed")

        logger.info(f"[STT] Connecting to {self.config.url}")
        try:
            async with self._connect(self.config.url, additional_headers=self.headers, max_size=None) as ws:
                self._ws = ws
                await self._on_open()
                async for raw in ws:
                    await self.handle_message(raw)
            logger.info("[STT] 🔌 Connection closed")
        except websockets.exceptions.WebSocketException as e:
            self.error = TranscriptionStreamError(f"WebSocket error: {e}")
            logger.error(f"[STT] ❌ {self.error}")
        except (OSError, asyncio.TimeoutError) as e:
            self.error = TranscriptionStreamError(f"Could not reach transcription service: {e}")
            logger.error(f"[STT] ❌ {self.error}")
        finally:
            await self._shutdown()

    async def _on_open(self) -> None:
        logger.info("[STT] ✅ Connected to OpenAI Realtime API")
        self.state = StreamState.CONFIGURING
        await self._ws.send(json.dumps(self.session_update_message()))

    async def handle_message(self, raw) -> None:
        try:
            event = json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            logger.warning(f"[STT] Ignoring undecodable message: {str(raw)[:80]}")
            return
        if isinstance(event, dict):
            await self.handle_event(event)

    async def handle_event(self, event: dict) -> None:
        """React to one server event."""
        event_type = event.get("type")

        if event_type == "session.created":
            logger.info("[STT] 📡 Session created")

        elif event_type == "session.updated":
            if self.state is StreamState.CONFIGURING:
                logger.info("[STT] ✅ Session configured (transcription mode)")
                self.state = StreamState.STREAMING
                self._forward_task = asyncio.create_task(self._forward_audio())

        elif event_type == "input_audio_buffer.speech_started":
            if not self._is_paused():
                logger.info("[STT] 🎤 Speech detected")
            if self.on_speech_started:
                self.on_speech_started()

        elif event_type == "input_audio_buffer.speech_stopped":
            if not self._is_paused():
                logger.info("[STT] 🔇 Speech ended")
            if self.on_speech_stopped:
                self.on_speech_stopped()

        elif event_type == "conversation.item.input_audio_transcription.completed":
            transcript = (event.get("transcript") or "").strip()
            if transcript:
                self.utterances_completed += 1
                self._dispatch_utterance(transcript)

        elif event_type == "error":
            details = event.get("error")
            logger.error(f"[STT] ❌ Error: {details}")
            if self.on_error:
                self.on_error(details)

        else:
            logger.debug(f"[STT] Unhandled event: {event_type}")

    def _dispatch_utterance(self, text: str) -> None:
        # Own task so the receive loop keeps draining events during a response cycle
        task = asyncio.create_task(self.on_utterance(text))
        self._utterance_tasks.add(task)
        task.add_done_callback(self._utterance_tasks.discard)

    async def _forward_audio(self) -> None:
        try:
            async for chunk in self.capture.chunks():
                if self.state is not StreamState.STREAMING:
                    break
                message = {
                    "type": "input_audio_buffer.append",
                    "audio": base64.b64encode(chunk).decode("ascii"),
                }
                await self._ws.send(json.dumps(message))
                self.chunks_sent += 1
        except asyncio.CancelledError:
            raise
        except websockets.exceptions.ConnectionClosed:
            logger.debug("[STT] Stopped forwarding audio: connection closed")
        except OSError as e:
            logger.error(f"[STT] ❌ Audio capture error: {e}")

    async def _shutdown(self) -> None:
        if self.state is StreamState.CLOSED:
            return
        self.state = StreamState.CLOSED

        if self._forward_task and not self._forward_task.done():
            self._forward_task.cancel()
            try:
                await self._forward_task
            except asyncio.CancelledError:
                pass
        self._forward_task = None

        await self.capture.stop()

        logger.info(f"[STT] Stream closed ({self.chunks_sent} chunks sent, {self.utterances_completed} utterances)")
        if self.on_closed:
            self.on_closed()

    async def close(self) -> None:
        """Close the connection; run() then finishes its shutdown."""
        if self._ws is not None:
            await self._ws.close()

    def cancel_pending(self) -> None:
        for task in list(self._utterance_tasks):
            task.cancel()
