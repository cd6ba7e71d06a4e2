"""
Supervisor signal channel.

Privileged meeting actions (actually clicking "Leave", toggling the browser
mic) belong to a supervising process. The bridge announces them as typed
SignalEvents; sinks subscribed to the channel deliver them. The stdout sink
keeps the line protocol a supervisor can tail:

    SIGNAL:LEAVE_MEETING
    SIGNAL:SEARCH_REQUEST {"id": "...", "query": "...", "count": 3}
"""

import json
import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Deque, List, Optional, TextIO

logger = logging.getLogger(__name__)

SIGNAL_PREFIX = "SIGNAL:"

# Events retained in SignalChannel.history
RECENT_SIGNALS = 50


class MeetingSignal(str, Enum):
    LEAVE_MEETING = "LEAVE_MEETING"
    MUTED = "MUTED"
    UNMUTED = "UNMUTED"
    PAUSED = "PAUSED"
    RESUMED = "RESUMED"
    SEARCH_REQUEST = "SEARCH_REQUEST"


@dataclass
class SignalEvent:
    """A signal plus its optional payload."""

    signal: MeetingSignal
    payload: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_line(self) -> str:
        line = f"{SIGNAL_PREFIX}{self.signal.value}"
        if self.payload:
            line += " " + json.dumps(self.payload)
        return line


SignalSubscriber = Callable[[SignalEvent], None]


class SignalChannel:
    """Fan-out of SignalEvents to subscribers."""

    def __init__(self, keep: int = RECENT_SIGNALS):
        self._subscribers: List[SignalSubscriber] = []
        self.history: Deque[SignalEvent] = deque(maxlen=keep)

    def subscribe(self, subscriber: SignalSubscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: SignalSubscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    def emit(self, signal: MeetingSignal, **payload) -> SignalEvent:
        """Deliver a signal to every subscriber. A failing subscriber is skipped."""
        event = SignalEvent(signal=signal, payload=payload)
        self.history.append(event)
        logger.info(f"[SIGNAL] 📣 {signal.value}")

        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                logger.error(f"[SIGNAL] Subscriber failed for {signal.value}: {e}")

        return event

    def emitted(self) -> List[MeetingSignal]:
        return [event.signal for event in self.history]


class StdoutSignalSink:
    """Writes one SIGNAL:<NAME> line per event to the monitored stream."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    def __call__(self, event: SignalEvent) -> None:
        stream = self._stream or sys.stdout
        stream.write(event.to_line() + "\n")
        stream.flush()


class SignalFileSink:
    """Keeps the latest signal and its time in a file for pollers."""

    def __init__(self, path: Path):
        self.path = path

    def __call__(self, event: SignalEvent) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(f"{event.signal.value}\n{event.timestamp.isoformat()}\n")
            logger.debug(f"[SIGNAL] Wrote {event.signal.value} to {self.path}")
        except OSError as e:
            logger.warning(f"[SIGNAL] Could not write signal file {self.path}: {e}")
