"""
Text-to-Speech Engine.

ElevenLabs synthesis streamed straight into the virtual microphone:
1. Normalize the text for pronunciation (street abbreviations)
2. Request raw PCM from ElevenLabs at the device sample rate
3. Pipe the response body into paplay as it arrives
"""

import logging
import re
import time
from typing import Callable, Optional

import httpx

from tool_modules.aa_meet_bridge.src.audio_output import PaplayOutput
from tool_modules.aa_meet_bridge.src.config import VoiceConfig
from tool_modules.aa_meet_bridge.src.errors import SynthesisError

logger = logging.getLogger(__name__)

# Address abbreviations the voice otherwise reads letter by letter.
# Matched case-sensitively, only when followed by whitespace, a comma or
# the end of the text ("St. Louis" is left alone).
ABBREVIATIONS = {
    "St": "Street",
    "Ave": "Avenue",
    "Blvd": "Boulevard",
    "Dr": "Drive",
    "Rd": "Road",
    "Ln": "Lane",
    "Ct": "Court",
    "Pl": "Place",
}

_ABBREVIATION_PATTERNS = [
    (re.compile(rf"\b{abbr}\b(?=\s|,|$)"), expansion) for abbr, expansion in ABBREVIATIONS.items()
]


def expand_abbreviations(text: str) -> str:
    """Expand address abbreviations for better TTS pronunciation."""
    for pattern, expansion in _ABBREVIATION_PATTERNS:
        text = pattern.sub(expansion, text)
    return text


class SpeechSynthesizer:
    """
    Speaks text into the meeting.

    Muting is checked when speak() is called; a muted synthesizer returns
    immediately without contacting the TTS service.
    """

    def __init__(
        self,
        config: VoiceConfig,
        output: PaplayOutput,
        is_muted: Callable[[], bool] = lambda: False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the synthesizer.

        Args:
            config: ElevenLabs voice/model settings
            output: Playback device writer
            is_muted: Returns the session's current mute state
            client: Shared HTTP client (one is created if omitted)
        """
        self.config = config
        self.output = output
        self._is_muted = is_muted
        self._client = client or httpx.AsyncClient(timeout=config.timeout)
        self._owns_client = client is None
        self.utterances_spoken = 0

    @property
    def url(self) -> str:
        return f"{self.config.base_url}/{self.config.voice_id}?output_format=pcm_{self.output.sample_rate}"

    def build_payload(self, text: str) -> dict:
        return {
            "text": text,
            "model_id": self.config.model_id,
            "voice_settings": {
                "stability": self.config.stability,
                "similarity_boost": self.config.similarity_boost,
            },
            "apply_text_normalization": "on",
        }

    async def speak(self, text: str) -> bool:
        """
        Synthesize `text` and play it to the meeting.

        Returns:
            True if audio was played, False if skipped (muted or empty)

        Raises:
            SynthesisError: If the TTS service or playback fails
        """
        if self._is_muted():
            logger.info("[TTS] 🔇 (muted, skipping TTS)")
            return False

        text = expand_abbreviations(text.strip())
        if not text:
            return False

        headers = {
            "xi-api-key": self.config.api_key,
            "Accept": "audio/pcm",
        }
        start = time.perf_counter()

        try:
            async with self._client.stream(
                "POST", self.url, json=self.build_payload(text), headers=headers
            ) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode(errors="replace")
                    raise SynthesisError(f"ElevenLabs error {response.status_code}: {body[:200]}")

                written = await self.output.play_stream(response.aiter_bytes())
        except httpx.HTTPError as e:
            raise SynthesisError(f"ElevenLabs request failed: {e}") from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.utterances_spoken += 1
        logger.info(f"[TTS] 🔊 Spoke {len(text)} chars ({written} bytes) in {elapsed_ms:.0f}ms")
        return True

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
