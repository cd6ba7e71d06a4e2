"""
Session Controller.

Orchestrates one conversational cycle per completed utterance:
1. Guard: ignore while paused, drop while a cycle is in flight
2. Append the user turn to the (bounded) history
3. Generate a reply (content, tool calls, or both)
4. Run tool calls one after another, in the order returned
5. Speak the reply unless muted

Utterances that arrive mid-cycle are dropped, never queued: a queue
would answer questions the room has already moved past. The processing
flag is cleared in a finally block so a failure anywhere in the cycle
never wedges the session.

Usage:
    controller = SessionController(session, generator, executor, synthesizer)
    transcriber = RealtimeTranscriber(..., on_utterance=controller.on_utterance)
"""

import logging
import time
from typing import Optional

from tool_modules.aa_meet_bridge.src.errors import ResponseGenerationError, SynthesisError
from tool_modules.aa_meet_bridge.src.llm_responder import ResponseGenerator
from tool_modules.aa_meet_bridge.src.session import Role, Session
from tool_modules.aa_meet_bridge.src.tool_executor import ToolExecutor
from tool_modules.aa_meet_bridge.src.transcript_log import TranscriptLog
from tool_modules.aa_meet_bridge.src.tts_engine import SpeechSynthesizer

logger = logging.getLogger(__name__)


class SessionController:
    """Owns the session and sequences generator, tools and speech."""

    def __init__(
        self,
        session: Session,
        generator: ResponseGenerator,
        executor: ToolExecutor,
        synthesizer: SpeechSynthesizer,
        transcript: Optional[TranscriptLog] = None,
    ):
        self.session = session
        self.generator = generator
        self.executor = executor
        self.synthesizer = synthesizer
        self.transcript = transcript or TranscriptLog()

    async def on_utterance(self, text: str) -> None:
        """Entry point for each completed speech segment."""
        text = (text or "").strip()
        if not text:
            return

        session = self.session
        stats = session.stats

        if session.is_paused:
            stats.utterances_ignored_paused += 1
            logger.debug(f'[BRIDGE] ⏸️ Paused, ignoring: "{text}"')
            return

        if session.is_processing_response:
            stats.utterances_dropped += 1
            logger.info(f'[BRIDGE] ⏳ Still processing previous response, dropping: "{text}"')
            return

        session.is_processing_response = True
        stats.utterances_received += 1
        start = time.perf_counter()

        try:
            session.append(Role.USER, text)
            self.transcript.record(Role.USER, text)

            try:
                result = await self.generator.generate(session.messages())
            except ResponseGenerationError as e:
                logger.error(f"[BRIDGE] ❌ Response generation failed: {e}")
                stats.errors += 1
                return

            # Tools can change mute/pause state, so each one finishes before the next
            for call in result.tool_calls:
                await self.executor.execute(call)

            if result.has_content and not session.is_muted:
                session.append(Role.ASSISTANT, result.content)
                self.transcript.record(Role.ASSISTANT, result.content)
                if await self.synthesizer.speak(result.content):
                    stats.responses_spoken += 1
            elif result.has_content:
                logger.info("[BRIDGE] 🔇 Muted, reply not spoken")

            latency_ms = (time.perf_counter() - start) * 1000
            stats.record_cycle(latency_ms)
            logger.info(f"[BRIDGE] ✅ Cycle complete in {latency_ms:.0f}ms")

        except SynthesisError as e:
            logger.error(f"[BRIDGE] ❌ Speech synthesis failed: {e}")
            stats.errors += 1
        except Exception as e:
            logger.exception(f"[BRIDGE] ❌ Response error: {e}")
            stats.errors += 1
        finally:
            session.is_processing_response = False

    async def speak_text(self, text: str) -> bool:
        """
        Speak a typed message into the meeting.

        Shares the re-entrancy guard with utterance handling; returns False
        if a cycle is in flight, the text is empty, or we are muted.
        """
        text = (text or "").strip()
        if not text or self.session.is_processing_response:
            return False

        self.session.is_processing_response = True
        try:
            spoken = await self.synthesizer.speak(text)
            if spoken:
                self.session.append(Role.ASSISTANT, text)
                self.transcript.record(Role.ASSISTANT, text)
                self.session.stats.responses_spoken += 1
            return spoken
        except SynthesisError as e:
            logger.error(f"[BRIDGE] ❌ Could not speak message: {e}")
            self.session.stats.errors += 1
            return False
        finally:
            self.session.is_processing_response = False
