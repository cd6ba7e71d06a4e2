"""Exception types for the meeting bridge.

Only ConfigError (at startup) and a closed transcription stream end the
process. Everything else is caught inside the conversation loop and turned
into silence or a short spoken fallback.
"""


class MeetBridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigError(MeetBridgeError):
    """Raised when startup configuration is missing or invalid."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Config validation failed: {'; '.join(errors)}")


class ResponseGenerationError(MeetBridgeError):
    """The chat-completion call failed or returned something unusable."""


class SearchError(MeetBridgeError):
    """The search provider failed."""


class SearchTimeoutError(SearchError):
    """A delegated search was not answered in time."""

    def __init__(self, request_id: str, timeout: float):
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Search {request_id} timed out after {timeout:.0f}s")


class SynthesisError(MeetBridgeError):
    """The TTS service rejected the request or playback failed."""


class TranscriptionStreamError(MeetBridgeError):
    """The realtime transcription connection failed."""
