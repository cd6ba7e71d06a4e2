"""
Meeting tool definitions.

The function-calling schemas sent with every generation request, and the
ToolCall type the service's tool_calls are decoded into. Decoding happens
once, at the response boundary; everything past it works with ToolKind.

The descriptions are deliberately strict so the model prefers speaking
over calling a tool.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class ToolKind(str, Enum):
    LEAVE_MEETING = "leave_meeting"
    MUTE_SELF = "mute_self"
    UNMUTE_SELF = "unmute_self"
    PAUSE_LISTENING = "pause_listening"
    RESUME_LISTENING = "resume_listening"
    WEB_SEARCH = "web_search"

    @classmethod
    def from_name(cls, name: str) -> Optional["ToolKind"]:
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass
class ToolCall:
    """A decoded tool invocation. kind is None for names we don't know."""

    name: str
    kind: Optional[ToolKind]
    arguments: Dict[str, Any] = field(default_factory=dict)
    call_id: str = ""

    @classmethod
    def from_api(cls, raw: dict) -> Optional["ToolCall"]:
        """
        Decode one entry of a chat-completion `tool_calls` list.

        Entries that are not objects, or whose `function` is not an object,
        are logged and decode to None. Malformed argument JSON decodes to an
        empty argument dict; the handler then decides whether it can run
        without arguments.
        """
        function = raw.get("function") if isinstance(raw, dict) else None
        if not isinstance(function, dict):
            logger.warning(f"[TOOL] Skipping malformed tool call: {str(raw)[:200]}")
            return None

        name = function.get("name")
        if not isinstance(name, str):
            name = ""
        arguments: Dict[str, Any] = {}

        raw_args = function.get("arguments")
        if raw_args:
            try:
                parsed = json.loads(raw_args) if isinstance(raw_args, str) else raw_args
                if isinstance(parsed, dict):
                    arguments = parsed
                else:
                    logger.warning(f"[TOOL] Arguments for {name} are not an object: {raw_args!r}")
            except json.JSONDecodeError:
                logger.warning(f"[TOOL] Could not parse arguments for {name}: {raw_args!r}")

        return cls(
            name=name,
            kind=ToolKind.from_name(name),
            arguments=arguments,
            call_id=raw.get("id", ""),
        )


def _function(name: str, description: str, parameters: Optional[dict] = None) -> dict:
    spec: Dict[str, Any] = {"name": name, "description": description}
    if parameters:
        spec["parameters"] = parameters
    return {"type": "function", "function": spec}


MEETING_TOOLS: List[dict] = [
    _function(
        ToolKind.LEAVE_MEETING.value,
        "Leave the meeting and end the session. ONLY call this if someone EXPLICITLY says "
        "'<name>, leave the meeting' or '<name>, leave the call'. Do NOT call for casual "
        "farewells like 'bye', 'see ya', 'goodbye' or 'thank you'.",
    ),
    _function(
        ToolKind.MUTE_SELF.value,
        "Mute your microphone so you stop speaking. ONLY call this if someone EXPLICITLY says "
        "'<name>, mute yourself'. Do NOT call for 'thanks', 'that's all' or silence.",
    ),
    _function(
        ToolKind.UNMUTE_SELF.value,
        "Unmute your microphone to speak again. ONLY call this if you are currently muted AND "
        "someone EXPLICITLY asks you to unmute. Do NOT call if already unmuted.",
    ),
    _function(
        ToolKind.PAUSE_LISTENING.value,
        "Temporarily stop listening to the meeting. ONLY call this if someone EXPLICITLY says "
        "'<name>, stop listening' or 'give us privacy'.",
    ),
    _function(
        ToolKind.RESUME_LISTENING.value,
        "Resume listening after being paused. ONLY call this if someone EXPLICITLY asks you "
        "to start listening again while paused.",
    ),
    _function(
        ToolKind.WEB_SEARCH.value,
        "Search the web for current information. Use when someone asks you to look up or "
        "search for something, or asks about facts that may have changed recently.",
        {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query to look up"},
                "count": {
                    "type": "integer",
                    "description": "Number of results to return (1-5, default 3)",
                },
            },
            "required": ["query"],
        },
    ),
]


def tool_names() -> List[str]:
    return [tool["function"]["name"] for tool in MEETING_TOOLS]
