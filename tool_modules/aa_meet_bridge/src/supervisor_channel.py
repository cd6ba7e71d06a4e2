"""
Supervisor input channel.

The supervising process writes one JSON object per line to our stdin:

    {"type": "search_results", "id": "<request id>", "results": [{...}, ...]}
    {"type": "say", "text": "Sharing my screen now."}

search_results answers a delegated search; say speaks a typed message into
the meeting. Anything else (non-JSON noise, unknown types) is ignored.
"""

import asyncio
import json
import logging
import sys
from typing import Awaitable, Callable, Optional, Set

from tool_modules.aa_meet_bridge.src.search_client import PendingSearchRegistry

logger = logging.getLogger(__name__)


class SupervisorInput:
    """Reads supervisor messages and routes them."""

    def __init__(
        self,
        registry: PendingSearchRegistry,
        on_say: Optional[Callable[[str], Awaitable[bool]]] = None,
    ):
        self.registry = registry
        self.on_say = on_say
        self.lines_read = 0
        self._tasks: Set[asyncio.Task] = set()

    def handle_line(self, line: str) -> bool:
        """
        Handle one input line.

        Returns:
            True if the line was acted on
        """
        line = line.strip()
        if not line:
            return False

        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug(f"[SUPERVISOR] Ignoring non-JSON input: {line[:80]}")
            return False

        if not isinstance(data, dict):
            return False

        message_type = data.get("type")

        if message_type == "search_results" and data.get("id"):
            results = data.get("results") or []
            if not isinstance(results, list):
                logger.warning(f"[SUPERVISOR] search_results for {data['id']} is not a list")
                results = []
            return self.registry.resolve(str(data["id"]), results)

        if message_type == "say" and self.on_say and str(data.get("text") or "").strip():
            task = asyncio.create_task(self.on_say(str(data["text"])))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return True

        logger.debug(f"[SUPERVISOR] Ignoring message type {message_type!r}")
        return False

    async def run(self, reader: Optional[asyncio.StreamReader] = None) -> None:
        """Consume lines until EOF. EOF ends the reader, not the session."""
        if reader is None:
            reader = await open_stdin_reader()

        while True:
            raw = await reader.readline()
            if not raw:
                logger.info("[SUPERVISOR] Input channel closed")
                return
            self.lines_read += 1
            self.handle_line(raw.decode(errors="replace"))


async def open_stdin_reader() -> asyncio.StreamReader:
    """Wrap stdin in an asyncio StreamReader."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader
