"""
Meeting session state.

A Session is the single live meeting-participation context: conversation
history plus the muted/paused/processing flags. It is owned by the
SessionController and mutated only by it and the ToolExecutor.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 20


class Role(str, Enum):
    """Conversation roles understood by the chat-completion service."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Turn:
    """One role-tagged entry in the conversation history."""

    role: Role
    text: str

    def to_message(self) -> dict:
        return {"role": self.role.value, "content": self.text}


@dataclass
class SessionStats:
    """Counters for a meeting session."""

    utterances_received: int = 0
    utterances_dropped: int = 0
    utterances_ignored_paused: int = 0
    responses_spoken: int = 0
    tool_calls: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0
    min_latency_ms: float = float("inf")
    max_latency_ms: float = 0.0
    cycles_completed: int = 0

    def record_cycle(self, latency_ms: float) -> None:
        self.cycles_completed += 1
        self.total_latency_ms += latency_ms
        self.min_latency_ms = min(self.min_latency_ms, latency_ms)
        self.max_latency_ms = max(self.max_latency_ms, latency_ms)

    @property
    def avg_latency_ms(self) -> float:
        if self.cycles_completed == 0:
            return 0.0
        return self.total_latency_ms / self.cycles_completed

    def as_dict(self) -> dict:
        return {
            "utterances_received": self.utterances_received,
            "utterances_dropped": self.utterances_dropped,
            "utterances_ignored_paused": self.utterances_ignored_paused,
            "responses_spoken": self.responses_spoken,
            "tool_calls": self.tool_calls,
            "errors": self.errors,
            "cycles_completed": self.cycles_completed,
            "avg_latency_ms": self.avg_latency_ms,
            "min_latency_ms": self.min_latency_ms if self.min_latency_ms != float("inf") else 0,
            "max_latency_ms": self.max_latency_ms,
        }


@dataclass
class Session:
    """
    State of the one meeting the bridge is attending.

    The muted and paused flags are independent: muted suppresses speech
    output only, paused suppresses handling of incoming utterances.
    """

    history: List[Turn] = field(default_factory=list)
    is_processing_response: bool = False
    is_muted: bool = False
    is_paused: bool = False
    max_history: int = DEFAULT_MAX_HISTORY
    stats: SessionStats = field(default_factory=SessionStats)

    def append(self, role: Role, text: str) -> Turn:
        """Append a turn, keeping only the most recent max_history entries."""
        turn = Turn(role=role, text=text)
        self.history.append(turn)
        if len(self.history) > self.max_history:
            dropped = len(self.history) - self.max_history
            del self.history[:dropped]
            logger.debug(f"History trimmed by {dropped} turn(s)")
        return turn

    def messages(self) -> List[dict]:
        """History as role/content pairs, oldest first."""
        return [turn.to_message() for turn in self.history]

    def clear_history(self) -> None:
        self.history = []

    def snapshot(self) -> dict:
        return {
            "muted": self.is_muted,
            "paused": self.is_paused,
            "processing": self.is_processing_response,
            "history_length": len(self.history),
            "stats": self.stats.as_dict(),
        }
