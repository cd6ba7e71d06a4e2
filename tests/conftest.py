"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Add project paths
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from tool_modules.aa_meet_bridge.src.errors import ResponseGenerationError, SynthesisError  # noqa: E402
from tool_modules.aa_meet_bridge.src.llm_responder import LLMResponse  # noqa: E402
from tool_modules.aa_meet_bridge.src.session import Session  # noqa: E402
from tool_modules.aa_meet_bridge.src.signals import SignalChannel  # noqa: E402
from tool_modules.aa_meet_bridge.src.tools import ToolCall, ToolKind  # noqa: E402
from tool_modules.aa_meet_bridge.src.transcript_log import TranscriptLog  # noqa: E402


def make_call(name: str, **arguments) -> ToolCall:
    """Build a decoded tool call the way the generator would."""
    return ToolCall(name=name, kind=ToolKind.from_name(name), arguments=arguments)


class FakeGenerator:
    """Returns queued LLMResponses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: List[List[dict]] = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def generate(self, history):
        self.requests.append([dict(m) for m in history])
        if not self.responses:
            return LLMResponse()
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        pass


class FakeSynthesizer:
    """Records what would have been spoken. Honors the session mute flag."""

    def __init__(self, session: Optional[Session] = None, fail: bool = False):
        self.session = session
        self.fail = fail
        self.spoken: List[str] = []

    async def speak(self, text: str) -> bool:
        if self.session is not None and self.session.is_muted:
            return False
        if self.fail:
            raise SynthesisError("TTS unavailable")
        self.spoken.append(text)
        return True

    async def close(self):
        pass


class FakeSearchClient:
    """Returns fixed results or raises a fixed error."""

    def __init__(self, results=None, error: Optional[Exception] = None):
        self.results = results or []
        self.error = error
        self.queries: List[tuple] = []

    async def search(self, query, count=3):
        self.queries.append((query, count))
        if self.error:
            raise self.error
        return list(self.results)


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def signals():
    return SignalChannel()


@pytest.fixture
def transcript():
    return TranscriptLog()


@pytest.fixture
def synthesizer(session):
    return FakeSynthesizer(session)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def generation_error():
    return ResponseGenerationError("No response from API")
