"""
LLM Response Generator.

Handles:
- Building the chat-completion request (persona + history + meeting tools)
- Decoding the reply into spoken content, tool calls, or both

One HTTP request per generation cycle. The service picks tools
automatically (tool_choice="auto"), so a reply can carry zero, one or
several tool calls next to optional text.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

import httpx

from tool_modules.aa_meet_bridge.src.config import ResponseConfig
from tool_modules.aa_meet_bridge.src.errors import ResponseGenerationError
from tool_modules.aa_meet_bridge.src.tools import MEETING_TOOLS, ToolCall

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from the LLM."""

    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    latency_ms: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class ResponseGenerator:
    """
    Chat-completion client for meeting replies.

    The system persona is fixed for the session and prepended to the
    history on every request.
    """

    def __init__(
        self,
        config: ResponseConfig,
        system_prompt: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the generator.

        Args:
            config: Endpoint, model and sampling settings
            system_prompt: Persona text placed before the history
            client: Shared HTTP client (one is created if omitted)
        """
        self.config = config
        self.system_prompt = system_prompt
        self._client = client or httpx.AsyncClient(timeout=config.timeout)
        self._owns_client = client is None

    def build_payload(self, history: List[dict]) -> dict:
        messages = [{"role": "system", "content": self.system_prompt}, *history]
        return {
            "model": self.config.model,
            "messages": messages,
            "tools": MEETING_TOOLS,
            "tool_choice": "auto",
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }

    async def generate(self, history: List[dict]) -> LLMResponse:
        """
        Generate a reply for the conversation so far.

        Args:
            history: Role/content pairs, oldest first

        Returns:
            LLMResponse with content and/or tool calls

        Raises:
            ResponseGenerationError: On transport failure or an unusable reply
        """
        payload = self.build_payload(history)
        headers = {"Authorization": f"Bearer {self.config.api_key}"}
        start = time.perf_counter()

        try:
            response = await self._client.post(self.config.url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ResponseGenerationError(
                f"Chat completion returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise ResponseGenerationError(f"Chat completion request failed: {e}") from e
        except ValueError as e:
            raise ResponseGenerationError(f"Chat completion returned invalid JSON: {e}") from e

        latency_ms = (time.perf_counter() - start) * 1000
        result = self.parse_response(data)
        result.latency_ms = latency_ms

        logger.info(
            f"[LLM] 💬 Reply in {latency_ms:.0f}ms "
            f"(content={'yes' if result.has_content else 'no'}, tools={[c.name for c in result.tool_calls]})"
        )
        return result

    @staticmethod
    def parse_response(data: dict) -> LLMResponse:
        """Decode a chat-completion body into an LLMResponse."""
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ResponseGenerationError("No response from API")
        if not isinstance(choices, list) or not isinstance(choices[0], dict):
            raise ResponseGenerationError(f"Malformed choices in response: {str(choices)[:200]}")

        message = choices[0].get("message") or {}
        if not isinstance(message, dict):
            raise ResponseGenerationError(f"Malformed message in response: {str(message)[:200]}")

        content = message.get("content")
        if content is not None and not isinstance(content, str):
            raise ResponseGenerationError(f"Malformed content in response: {str(content)[:200]}")

        raw_calls = message.get("tool_calls") or []
        if not isinstance(raw_calls, list):
            logger.warning(f"[LLM] Ignoring tool_calls that is not a list: {str(raw_calls)[:200]}")
            raw_calls = []

        tool_calls = []
        for raw in raw_calls:
            call = ToolCall.from_api(raw)
            if call is not None:
                tool_calls.append(call)
        return LLMResponse(content=content, tool_calls=tool_calls)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
