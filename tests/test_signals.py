"""Tests for tool_modules/aa_meet_bridge/src/signals.py - Supervisor signals."""

import io
import json

from tool_modules.aa_meet_bridge.src.signals import (
    MeetingSignal,
    SignalChannel,
    SignalEvent,
    SignalFileSink,
    StdoutSignalSink,
)


class TestSignalEvent:
    def test_line_without_payload(self):
        assert SignalEvent(MeetingSignal.LEAVE_MEETING).to_line() == "SIGNAL:LEAVE_MEETING"

    def test_line_with_payload(self):
        event = SignalEvent(MeetingSignal.SEARCH_REQUEST, {"id": "abc", "query": "weather", "count": 3})
        prefix, body = event.to_line().split(" ", 1)
        assert prefix == "SIGNAL:SEARCH_REQUEST"
        assert json.loads(body) == {"id": "abc", "query": "weather", "count": 3}

    def test_signal_names(self):
        assert {s.value for s in MeetingSignal} == {
            "LEAVE_MEETING",
            "MUTED",
            "UNMUTED",
            "PAUSED",
            "RESUMED",
            "SEARCH_REQUEST",
        }


class TestSignalChannel:
    """Tests for SignalChannel fan-out."""

    def test_emit_reaches_subscribers(self):
        channel = SignalChannel()
        received = []
        channel.subscribe(received.append)
        channel.emit(MeetingSignal.MUTED)
        assert [e.signal for e in received] == [MeetingSignal.MUTED]

    def test_history_and_emitted(self):
        channel = SignalChannel()
        channel.emit(MeetingSignal.PAUSED)
        channel.emit(MeetingSignal.RESUMED)
        assert channel.emitted() == [MeetingSignal.PAUSED, MeetingSignal.RESUMED]

    def test_history_keeps_recent_events(self):
        channel = SignalChannel(keep=2)
        for signal in (MeetingSignal.MUTED, MeetingSignal.UNMUTED, MeetingSignal.PAUSED):
            channel.emit(signal)
        assert channel.emitted() == [MeetingSignal.UNMUTED, MeetingSignal.PAUSED]

    def test_payload_kwargs(self):
        channel = SignalChannel()
        event = channel.emit(MeetingSignal.SEARCH_REQUEST, id="1", query="q", count=2)
        assert event.payload == {"id": "1", "query": "q", "count": 2}

    def test_failing_subscriber_does_not_block_others(self):
        channel = SignalChannel()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(received.append)
        channel.emit(MeetingSignal.LEAVE_MEETING)
        assert len(received) == 1

    def test_unsubscribe(self):
        channel = SignalChannel()
        received = []
        channel.subscribe(received.append)
        channel.unsubscribe(received.append)
        channel.emit(MeetingSignal.MUTED)
        assert received == []


class TestSinks:
    def test_stdout_sink_writes_line(self):
        stream = io.StringIO()
        channel = SignalChannel()
        channel.subscribe(StdoutSignalSink(stream))
        channel.emit(MeetingSignal.LEAVE_MEETING)
        channel.emit(MeetingSignal.MUTED)
        assert stream.getvalue() == "SIGNAL:LEAVE_MEETING\nSIGNAL:MUTED\n"

    def test_file_sink_keeps_latest(self, tmp_path):
        path = tmp_path / "signals" / "bridge.signal"
        sink = SignalFileSink(path)
        sink(SignalEvent(MeetingSignal.PAUSED))
        sink(SignalEvent(MeetingSignal.LEAVE_MEETING))
        lines = path.read_text().splitlines()
        assert lines[0] == "LEAVE_MEETING"
        assert len(lines) == 2

    def test_file_sink_write_failure_is_logged(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        sink = SignalFileSink(blocker / "bridge.signal")
        sink(SignalEvent(MeetingSignal.MUTED))
