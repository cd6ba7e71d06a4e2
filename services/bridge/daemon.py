#!/usr/bin/env python3
"""
Meet Bridge Daemon

Joins the audio of a browser meeting as a voice participant. Started by a
supervising process once the browser is in the call.

Features:
- Realtime transcription of the meeting output device
- Replies generated with meeting-control tools, spoken into a virtual mic
- SIGNAL:<NAME> lines on stdout for leave / mute / pause / search
- Delegated search results and typed messages read from stdin
- Forced exit if the supervisor does not act on a leave request

Usage:
    python -m services.bridge                       # Run daemon
    python -m services.bridge --status              # Check if running
    python -m services.bridge --stop                # Stop running daemon
    python -m services.bridge --persona-file p.yaml # Custom persona

Exit codes:
    0  normal shutdown (stream closed, signal, or leave timeout)
    1  another instance running, or unexpected daemon error
    2  configuration error
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

from services.base.daemon import BaseDaemon
from tool_modules.aa_meet_bridge.src.audio_capture import ParecCapture
from tool_modules.aa_meet_bridge.src.audio_output import PaplayOutput
from tool_modules.aa_meet_bridge.src.config import BridgeConfig
from tool_modules.aa_meet_bridge.src.errors import ConfigError
from tool_modules.aa_meet_bridge.src.llm_responder import ResponseGenerator
from tool_modules.aa_meet_bridge.src.realtime_stt import RealtimeTranscriber
from tool_modules.aa_meet_bridge.src.search_client import PendingSearchRegistry, build_search_client
from tool_modules.aa_meet_bridge.src.session import Session
from tool_modules.aa_meet_bridge.src.session_controller import SessionController
from tool_modules.aa_meet_bridge.src.signals import SignalChannel, SignalFileSink, StdoutSignalSink
from tool_modules.aa_meet_bridge.src.supervisor_channel import SupervisorInput
from tool_modules.aa_meet_bridge.src.tool_executor import ToolExecutor
from tool_modules.aa_meet_bridge.src.transcript_log import TranscriptLog
from tool_modules.aa_meet_bridge.src.tts_engine import SpeechSynthesizer

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2

# How long run_daemon waits for the transcription task after closing the socket
STREAM_CLOSE_TIMEOUT = 5.0


class MeetBridgeDaemon(BaseDaemon):
    """Voice bridge daemon for one meeting."""

    name = "meet-bridge"
    description = "Meeting voice bridge"

    def __init__(self, config: BridgeConfig, verbose: bool = False):
        super().__init__(verbose=verbose)
        self.config = config

        self.session: Optional[Session] = None
        self.signals: Optional[SignalChannel] = None
        self.registry: Optional[PendingSearchRegistry] = None
        self.transcript: Optional[TranscriptLog] = None
        self.generator: Optional[ResponseGenerator] = None
        self.output: Optional[PaplayOutput] = None
        self.synthesizer: Optional[SpeechSynthesizer] = None
        self.search_client = None
        self.executor: Optional[ToolExecutor] = None
        self.controller: Optional[SessionController] = None
        self.capture: Optional[ParecCapture] = None
        self.transcriber: Optional[RealtimeTranscriber] = None
        self.supervisor: Optional[SupervisorInput] = None

    # ==================== CLI ====================

    @classmethod
    def create_argument_parser(cls) -> argparse.ArgumentParser:
        parser = super().create_argument_parser()
        parser.add_argument("--input-device", help="PulseAudio source carrying meeting audio")
        parser.add_argument("--output-device", help="PulseAudio sink feeding the virtual microphone")
        parser.add_argument("--voice", help="ElevenLabs voice id")
        parser.add_argument("--persona-file", type=Path, help="YAML file with name and system_prompt")
        return parser

    @classmethod
    def load_config(cls, parsed: argparse.Namespace, environ=None) -> BridgeConfig:
        """Resolve configuration from the environment plus CLI overrides, then validate."""
        config = BridgeConfig.from_env(environ, persona_file=parsed.persona_file)
        if parsed.input_device:
            config.audio.input_device = parsed.input_device
        if parsed.output_device:
            config.audio.output_device = parsed.output_device
        if parsed.voice:
            config.voice.voice_id = parsed.voice
        config.validate()
        return config

    @classmethod
    def from_args(cls, parsed: argparse.Namespace) -> "MeetBridgeDaemon":
        try:
            config = cls.load_config(parsed)
        except ConfigError as e:
            for error in e.errors:
                logger.error(f"[CONFIG] ❌ {error}")
            raise SystemExit(EXIT_CONFIG_ERROR)
        return cls(config, verbose=parsed.verbose)

    # ==================== Wiring ====================

    def build(self) -> None:
        """Construct and connect every component."""
        config = self.config

        self.session = Session(max_history=config.max_history)

        self.signals = SignalChannel()
        self.signals.subscribe(StdoutSignalSink())
        if config.signal_file:
            self.signals.subscribe(SignalFileSink(config.signal_file))

        self.registry = PendingSearchRegistry()
        self.transcript = TranscriptLog(config.transcript_file, assistant_name=config.persona.name)

        self.generator = ResponseGenerator(config.response, config.persona.render())
        self.output = PaplayOutput(config.audio.output_device, sample_rate=config.audio.sample_rate)
        self.synthesizer = SpeechSynthesizer(
            config.voice,
            self.output,
            is_muted=lambda: self.session.is_muted,
        )
        self.search_client = build_search_client(config.search, self.signals, self.registry)

        self.executor = ToolExecutor(
            self.session,
            self.signals,
            self.synthesizer,
            self.generator,
            search_client=self.search_client,
            transcript=self.transcript,
            leave_timeout=config.leave_timeout_seconds,
            on_forced_exit=self._on_leave_timeout,
        )
        self.controller = SessionController(
            self.session,
            self.generator,
            self.executor,
            self.synthesizer,
            transcript=self.transcript,
        )

        self.capture = ParecCapture(
            config.audio.input_device,
            sample_rate=config.audio.sample_rate,
            latency_ms=config.audio.capture_latency_ms,
        )
        self.transcriber = RealtimeTranscriber(
            config.realtime,
            self.capture,
            on_utterance=self.controller.on_utterance,
            is_paused=lambda: self.session.is_paused,
            on_closed=self.request_shutdown,
        )
        self.supervisor = SupervisorInput(self.registry, on_say=self.controller.speak_text)

    def _on_leave_timeout(self) -> None:
        logger.warning("[BRIDGE] ⏰ Still running after leave request, exiting")
        self.request_shutdown()

    # ==================== Lifecycle ====================

    async def startup(self):
        self.build()
        search = self.config.search.mode if self.search_client else "disabled"
        logger.info(
            f"[BRIDGE] 🤖 {self.config.persona.name} starting "
            f"(input={self.config.audio.input_device}, output={self.config.audio.output_device}, "
            f"rate={self.config.audio.sample_rate}, search={search})"
        )

    async def run_daemon(self):
        stt_task = asyncio.create_task(self.transcriber.run(), name="realtime-stt")
        supervisor_task = asyncio.create_task(self._read_supervisor(), name="supervisor-input")

        try:
            await self._shutdown_event.wait()
        finally:
            supervisor_task.cancel()
            await self.transcriber.close()
            try:
                await asyncio.wait_for(stt_task, timeout=STREAM_CLOSE_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("[BRIDGE] Transcription stream did not close in time")
            except asyncio.CancelledError:
                pass

        if self.transcriber.error is not None:
            logger.error(f"[BRIDGE] Exiting after transcription failure: {self.transcriber.error}")
            self.exit_code = 1

    async def _read_supervisor(self) -> None:
        try:
            await self.supervisor.run()
        except (OSError, ValueError) as e:
            # stdin is a tty or closed; delegated search and say are unavailable
            logger.warning(f"[BRIDGE] Supervisor input unavailable: {e}")

    async def shutdown(self):
        if self.executor:
            self.executor.cancel_timers()
        if self.registry:
            self.registry.cancel_all()
        if self.transcriber:
            self.transcriber.cancel_pending()
        if self.capture:
            await self.capture.stop()

        for client in (self.generator, self.synthesizer, self.search_client):
            close = getattr(client, "close", None)
            if close:
                await close()

        if self.session:
            stats = self.session.stats.as_dict()
            logger.info(f"[BRIDGE] 📊 Session stats: {stats}")
        logger.info("[BRIDGE] 👋 Bridge stopped")


def main():
    MeetBridgeDaemon.main()


if __name__ == "__main__":
    main()
