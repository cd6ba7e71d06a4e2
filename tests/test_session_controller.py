"""Tests for tool_modules/aa_meet_bridge/src/session_controller.py - Conversation cycle."""

import asyncio

import pytest

from conftest import FakeGenerator, FakeSynthesizer, make_call
from tool_modules.aa_meet_bridge.src.errors import ResponseGenerationError
from tool_modules.aa_meet_bridge.src.llm_responder import LLMResponse
from tool_modules.aa_meet_bridge.src.session import Role, Session
from tool_modules.aa_meet_bridge.src.session_controller import SessionController
from tool_modules.aa_meet_bridge.src.signals import MeetingSignal, SignalChannel
from tool_modules.aa_meet_bridge.src.tool_executor import LEAVE_ACK, PAUSE_ACK, ToolExecutor


class Bridge:
    """Controller wired to fakes, the way the daemon wires the real pieces."""

    def __init__(self, *responses, session=None, synthesizer=None):
        self.session = session or Session()
        self.signals = SignalChannel()
        self.generator = FakeGenerator(*responses)
        self.synthesizer = synthesizer or FakeSynthesizer(self.session)
        self.executor = ToolExecutor(self.session, self.signals, self.synthesizer, self.generator)
        self.controller = SessionController(self.session, self.generator, self.executor, self.synthesizer)

    @property
    def spoken(self):
        return self.synthesizer.spoken


def reply(content=None, *calls):
    return LLMResponse(content=content, tool_calls=list(calls))


# ==================== Basic cycle ====================


class TestOnUtterance:
    """Tests for SessionController.on_utterance."""

    @pytest.mark.asyncio
    async def test_question_answered(self):
        bridge = Bridge(reply("It's three o'clock."))
        await bridge.controller.on_utterance("Claw, what time is it?")

        assert bridge.session.messages() == [
            {"role": "user", "content": "Claw, what time is it?"},
            {"role": "assistant", "content": "It's three o'clock."},
        ]
        assert bridge.spoken == ["It's three o'clock."]
        assert bridge.session.is_processing_response is False
        assert bridge.session.stats.responses_spoken == 1
        assert bridge.session.stats.cycles_completed == 1

    @pytest.mark.asyncio
    async def test_empty_reply_is_silent(self):
        bridge = Bridge(reply(None))
        await bridge.controller.on_utterance("we should ship friday")
        assert bridge.spoken == []
        assert [t.role for t in bridge.session.history] == [Role.USER]

    @pytest.mark.asyncio
    async def test_blank_utterance_ignored(self):
        bridge = Bridge(reply("hi"))
        await bridge.controller.on_utterance("   ")
        assert bridge.generator.requests == []
        assert bridge.session.stats.utterances_received == 0

    @pytest.mark.asyncio
    async def test_generation_failure_resets_flag(self):
        bridge = Bridge(ResponseGenerationError("No response from API"))
        await bridge.controller.on_utterance("Claw, hello?")

        assert bridge.spoken == []
        assert bridge.session.is_processing_response is False
        assert bridge.session.stats.errors == 1
        assert [t.role for t in bridge.session.history] == [Role.USER]

    @pytest.mark.asyncio
    async def test_synthesis_failure_resets_flag(self):
        session = Session()
        bridge = Bridge(reply("hello"), session=session, synthesizer=FakeSynthesizer(session, fail=True))
        await bridge.controller.on_utterance("Claw?")
        assert session.is_processing_response is False
        assert session.stats.errors == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_resets_flag(self):
        bridge = Bridge(RuntimeError("boom"))
        await bridge.controller.on_utterance("Claw?")
        assert bridge.session.is_processing_response is False

    @pytest.mark.asyncio
    async def test_history_bounded(self):
        bridge = Bridge(*[reply(f"answer {i}") for i in range(15)])
        for i in range(15):
            await bridge.controller.on_utterance(f"question {i}")
        assert len(bridge.session.history) == 20
        assert bridge.session.history[-1].text == "answer 14"

    @pytest.mark.asyncio
    async def test_request_carries_history(self):
        bridge = Bridge(reply("one"), reply("two"))
        await bridge.controller.on_utterance("first")
        await bridge.controller.on_utterance("second")
        assert [m["content"] for m in bridge.generator.requests[1]] == ["first", "one", "second"]


# ==================== Re-entrancy ====================


class TestReentrancy:
    """Utterances arriving mid-cycle are dropped, not queued."""

    @pytest.mark.asyncio
    async def test_drop_while_processing(self):
        release = asyncio.Event()
        bridge = Bridge()

        async def slow_generate(history):
            bridge.generator.requests.append(history)
            await release.wait()
            return reply("Answer to the first.")

        bridge.generator.generate = slow_generate

        first = asyncio.create_task(bridge.controller.on_utterance("Claw, first question"))
        await asyncio.sleep(0)
        assert bridge.session.is_processing_response is True

        await bridge.controller.on_utterance("Claw, second question")
        release.set()
        await first

        assert len(bridge.generator.requests) == 1
        assert "second question" not in [t.text for t in bridge.session.history]
        assert bridge.session.stats.utterances_dropped == 1
        assert bridge.spoken == ["Answer to the first."]

    @pytest.mark.asyncio
    async def test_accepts_again_after_cycle(self):
        bridge = Bridge(reply("a"), reply("b"))
        await bridge.controller.on_utterance("one")
        await bridge.controller.on_utterance("two")
        assert bridge.spoken == ["a", "b"]


# ==================== Tool interplay ====================


class TestToolInterplay:
    """Cycle behavior when replies carry tool calls."""

    @pytest.mark.asyncio
    async def test_paused_utterances_ignored(self):
        bridge = Bridge(reply("Sure.", make_call("pause_listening")), reply("ignored"))
        await bridge.controller.on_utterance("Claw, stop listening")
        await bridge.controller.on_utterance("this is private")

        assert bridge.session.is_paused is True
        assert len(bridge.generator.requests) == 1
        assert bridge.session.stats.utterances_ignored_paused == 1
        assert bridge.spoken[0] == PAUSE_ACK

    @pytest.mark.asyncio
    async def test_mute_then_silent_then_unmute(self):
        bridge = Bridge(
            reply(None, make_call("mute_self")),
            reply("should not be heard"),
            reply(None, make_call("unmute_self")),
            reply("Back again."),
        )
        await bridge.controller.on_utterance("Claw, mute yourself")
        await bridge.controller.on_utterance("Claw, what's 2+2?")
        await bridge.controller.on_utterance("Claw, unmute")
        await bridge.controller.on_utterance("Claw, you there?")

        assert bridge.signals.emitted() == [MeetingSignal.MUTED, MeetingSignal.UNMUTED]
        assert bridge.spoken == ["Back again."]
        assistant_turns = [t.text for t in bridge.session.history if t.role is Role.ASSISTANT]
        assert "should not be heard" not in assistant_turns

        # User turns are still recorded and sent while muted
        user_turns = [t.text for t in bridge.session.history if t.role is Role.USER]
        assert "Claw, what's 2+2?" in user_turns
        assert "Claw, unmute" in user_turns
        assert bridge.generator.requests[1][-1] == {"role": "user", "content": "Claw, what's 2+2?"}
        assert bridge.generator.requests[2][-1] == {"role": "user", "content": "Claw, unmute"}

    @pytest.mark.asyncio
    async def test_reply_content_suppressed_by_mute_in_same_reply(self):
        bridge = Bridge(reply("Okay, muting.", make_call("mute_self")))
        await bridge.controller.on_utterance("Claw, mute yourself")
        assert bridge.spoken == []
        assert bridge.session.is_muted is True

    @pytest.mark.asyncio
    async def test_tools_run_in_order(self):
        bridge = Bridge(reply(None, make_call("pause_listening"), make_call("resume_listening")))
        await bridge.controller.on_utterance("Claw, pause then resume")
        assert bridge.signals.emitted() == [MeetingSignal.PAUSED, MeetingSignal.RESUMED]
        assert bridge.session.is_paused is False

    @pytest.mark.asyncio
    async def test_leave(self):
        bridge = Bridge(reply(None, make_call("leave_meeting")))
        await bridge.controller.on_utterance("Claw, leave the meeting")

        assert bridge.spoken == [LEAVE_ACK]
        assert bridge.signals.emitted() == [MeetingSignal.LEAVE_MEETING]
        assert bridge.session.is_paused is True
        bridge.executor.cancel_timers()

    @pytest.mark.asyncio
    async def test_unknown_tool_does_not_block_reply(self):
        bridge = Bridge(reply("Done.", make_call("share_screen")))
        await bridge.controller.on_utterance("Claw, share your screen")
        assert bridge.spoken == ["Done."]


# ==================== speak_text ====================


class TestSpeakText:
    """Tests for typed messages spoken on the supervisor's behalf."""

    @pytest.mark.asyncio
    async def test_speaks_and_records(self):
        bridge = Bridge()
        assert await bridge.controller.speak_text("Sharing my screen now.") is True
        assert bridge.spoken == ["Sharing my screen now."]
        assert bridge.session.history[-1].role is Role.ASSISTANT

    @pytest.mark.asyncio
    async def test_muted(self):
        bridge = Bridge()
        bridge.session.is_muted = True
        assert await bridge.controller.speak_text("hello") is False
        assert bridge.session.history == []

    @pytest.mark.asyncio
    async def test_busy(self):
        bridge = Bridge()
        bridge.session.is_processing_response = True
        assert await bridge.controller.speak_text("hello") is False
        assert bridge.spoken == []
