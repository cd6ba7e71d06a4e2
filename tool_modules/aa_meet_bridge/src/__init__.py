"""
Meet Bridge - voice participation in a browser meeting.

This module provides:
- Realtime transcription of meeting audio (OpenAI realtime, server VAD)
- Reply generation with meeting-control tools (OpenAI chat completions)
- ElevenLabs speech played into a virtual microphone
- Voice-triggered leave / mute / pause, announced to a supervisor as signals
- Web search, direct (Exa) or delegated to the supervisor
"""

__version__ = "0.1.0"
