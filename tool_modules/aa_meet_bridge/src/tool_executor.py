"""
Meeting tool execution.

Runs the tool calls returned by the response generator against the
session. Meeting controls flip session flags and emit signals for the
supervisor; web_search runs a search and asks the generator for a spoken
summary.

Mute and unmute are guarded against redundant calls (no state change, no
signal). Pause and resume are simply idempotent. leave_meeting is not
guarded: a repeated call re-emits the signal and re-arms the exit timer.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from tool_modules.aa_meet_bridge.src.errors import (
    ResponseGenerationError,
    SearchError,
    SearchTimeoutError,
    SynthesisError,
)
from tool_modules.aa_meet_bridge.src.llm_responder import ResponseGenerator
from tool_modules.aa_meet_bridge.src.search_client import SearchClient, SearchResult, clamp_count
from tool_modules.aa_meet_bridge.src.session import Role, Session
from tool_modules.aa_meet_bridge.src.signals import MeetingSignal, SignalChannel
from tool_modules.aa_meet_bridge.src.tools import ToolCall, ToolKind
from tool_modules.aa_meet_bridge.src.transcript_log import TranscriptLog
from tool_modules.aa_meet_bridge.src.tts_engine import SpeechSynthesizer

logger = logging.getLogger(__name__)

LEAVE_ACK = "Okay, signing off!"
PAUSE_ACK = "I'll stop listening now. Say my name when you want me back."
RESUME_ACK = "I'm listening again. How can I help?"
SEARCH_NOT_CONFIGURED = "Web search isn't configured."
SEARCH_NO_RESULTS = "I couldn't find any results for that."
SEARCH_FAILED = "Sorry, the search failed."
SEARCH_TIMED_OUT = "Sorry, the search took too long."

SEARCH_ANSWER_RULES = (
    "RULES: Answer ONLY what was asked. For places or venues, list 2-3 options with name and "
    'address only, e.g. "There\'s [Name] at [Address], [Name] at [Address], and [Name] at '
    '[Address]." No explanations, no suggestions, no filler. One sentence.'
)


def format_search_results(results: List[SearchResult]) -> str:
    """System message carrying search results into the history."""
    lines = [f"{i}. {r.title}: {r.snippet}" for i, r in enumerate(results, start=1)]
    return "Search results:\n" + "\n".join(lines) + "\n\n" + SEARCH_ANSWER_RULES


class ToolExecutor:
    """Dispatches decoded tool calls to their handlers."""

    def __init__(
        self,
        session: Session,
        signals: SignalChannel,
        synthesizer: SpeechSynthesizer,
        generator: ResponseGenerator,
        search_client: Optional[SearchClient] = None,
        transcript: Optional[TranscriptLog] = None,
        leave_timeout: float = 60.0,
        on_forced_exit: Optional[Callable[[], None]] = None,
    ):
        self.session = session
        self.signals = signals
        self.synthesizer = synthesizer
        self.generator = generator
        self.search_client = search_client
        self.transcript = transcript or TranscriptLog()
        self.leave_timeout = leave_timeout
        self.on_forced_exit = on_forced_exit

        self._leave_timer: Optional[asyncio.TimerHandle] = None
        self._handlers: Dict[ToolKind, Callable[[ToolCall], Awaitable[None]]] = {
            ToolKind.LEAVE_MEETING: self._leave_meeting,
            ToolKind.MUTE_SELF: self._mute_self,
            ToolKind.UNMUTE_SELF: self._unmute_self,
            ToolKind.PAUSE_LISTENING: self._pause_listening,
            ToolKind.RESUME_LISTENING: self._resume_listening,
            ToolKind.WEB_SEARCH: self._web_search,
        }

    @property
    def handled_kinds(self) -> set:
        return set(self._handlers)

    @property
    def leave_timer_armed(self) -> bool:
        return self._leave_timer is not None and not self._leave_timer.cancelled()

    async def execute(self, call: ToolCall) -> None:
        """Run one tool call. Unknown tools are logged and ignored."""
        self.session.stats.tool_calls += 1
        logger.info(f"[TOOL] 🔧 Tool call: {call.name}")

        if call.kind is None:
            logger.warning(f"[TOOL] ⚠️ Unknown tool: {call.name}")
            return

        await self._handlers[call.kind](call)

    async def _say(self, text: str) -> bool:
        """Speak an acknowledgement unless muted. Synthesis failures are logged."""
        if self.session.is_muted:
            return False
        try:
            spoken = await self.synthesizer.speak(text)
        except SynthesisError as e:
            logger.error(f"[TOOL] ❌ Could not speak acknowledgement: {e}")
            self.session.stats.errors += 1
            return False
        if spoken:
            self.session.stats.responses_spoken += 1
        return spoken

    # ==================== Meeting controls ====================

    async def _leave_meeting(self, call: ToolCall) -> None:
        logger.info("[TOOL] 👋 Leaving meeting...")

        # Acknowledge before the supervisor pulls us out
        await self._say(LEAVE_ACK)

        self.signals.emit(MeetingSignal.LEAVE_MEETING)
        self.session.is_paused = True
        self._arm_leave_timer()

    def _arm_leave_timer(self) -> None:
        if self._leave_timer is not None:
            self._leave_timer.cancel()
        loop = asyncio.get_running_loop()
        self._leave_timer = loop.call_later(self.leave_timeout, self._forced_exit)
        logger.info(f"[TOOL] ⏱️ Exiting in {self.leave_timeout:.0f}s unless terminated first")

    def _forced_exit(self) -> None:
        logger.warning("[TOOL] ⏱️ Timeout waiting for supervisor, exiting anyway")
        self._leave_timer = None
        if self.on_forced_exit:
            self.on_forced_exit()

    def cancel_timers(self) -> None:
        if self._leave_timer is not None:
            self._leave_timer.cancel()
            self._leave_timer = None

    async def _mute_self(self, call: ToolCall) -> None:
        if self.session.is_muted:
            logger.info("[TOOL] 🔇 Already muted, ignoring duplicate call")
            return
        self.session.is_muted = True
        logger.info("[TOOL] 🔇 Muted - will not speak")
        self.signals.emit(MeetingSignal.MUTED)

    async def _unmute_self(self, call: ToolCall) -> None:
        if not self.session.is_muted:
            logger.info("[TOOL] 🔊 Already unmuted, ignoring duplicate call")
            return
        self.session.is_muted = False
        logger.info("[TOOL] 🔊 Unmuted - resuming speech")
        self.signals.emit(MeetingSignal.UNMUTED)
        # No spoken confirmation: it would interrupt whoever is talking

    async def _pause_listening(self, call: ToolCall) -> None:
        self.session.is_paused = True
        logger.info("[TOOL] ⏸️ Paused - not processing speech")
        self.signals.emit(MeetingSignal.PAUSED)
        await self._say(PAUSE_ACK)

    async def _resume_listening(self, call: ToolCall) -> None:
        self.session.is_paused = False
        logger.info("[TOOL] ▶️ Resumed - processing speech")
        self.signals.emit(MeetingSignal.RESUMED)
        await self._say(RESUME_ACK)

    # ==================== Web search ====================

    async def _web_search(self, call: ToolCall) -> None:
        query = str(call.arguments.get("query") or "").strip()
        if not query:
            logger.warning("[TOOL] ⚠️ web_search called without query")
            return

        if self.search_client is None:
            logger.warning("[TOOL] ⚠️ Web search requested but no search backend is configured")
            await self._say(SEARCH_NOT_CONFIGURED)
            return

        count = clamp_count(call.arguments.get("count"))
        logger.info(f'[TOOL] 🔍 Searching for: "{query}" (count={count})')

        try:
            results = await self.search_client.search(query, count)
        except SearchTimeoutError as e:
            logger.error(f"[TOOL] ❌ {e}")
            self.session.stats.errors += 1
            await self._say(SEARCH_TIMED_OUT)
            return
        except SearchError as e:
            logger.error(f"[TOOL] ❌ Search error: {e}")
            self.session.stats.errors += 1
            await self._say(SEARCH_FAILED)
            return

        if not results:
            await self._say(SEARCH_NO_RESULTS)
            return

        logger.info(f"[TOOL] 📄 Got {len(results)} results")
        self.session.append(Role.ASSISTANT, f'[Searched for "{query}"]')
        self.session.append(Role.SYSTEM, format_search_results(results))

        try:
            summary = await self.generator.generate(self.session.messages())
        except ResponseGenerationError as e:
            logger.error(f"[TOOL] ❌ Could not summarize search results: {e}")
            self.session.stats.errors += 1
            await self._say(SEARCH_FAILED)
            return

        if summary.has_tool_calls:
            logger.debug(f"[TOOL] Ignoring tool calls in search summary: {[c.name for c in summary.tool_calls]}")

        if summary.has_content and not self.session.is_muted:
            self.session.append(Role.ASSISTANT, summary.content)
            self.transcript.record(Role.ASSISTANT, summary.content)
            await self._say(summary.content)
