"""
Meet Bridge Configuration.

Centralizes all configuration for the meeting bridge:
- API credentials for transcription, response generation, TTS and search
- Audio device names and sample rate
- Voice and persona settings
- Signal / transcript file locations

Everything is resolved once at startup from the environment (and an optional
persona YAML file). Missing transcription/generation/TTS credentials are
fatal; a missing search credential only disables web search.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

import yaml

from tool_modules.aa_meet_bridge.src.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_ASSISTANT_NAME = "Claw"

DEFAULT_SYSTEM_PROMPT = """You are {name}, an AI assistant taking part in a voice meeting. Stay silent unless someone addresses you by name.

HOW TO BEHAVE:
- Never announce that you are present or listening.
- Stay quiet during general conversation.
- Speak only when someone says "{name}" followed by a question or request.

WHEN ADDRESSED:
- Answer in one or two natural sentences.
- Always say something. Do not call a tool without also speaking.

NOTES AND ACTION ITEMS:
- If asked to note or remember something, say "Noted" or "Got it" and repeat the key point briefly.
  It stays in the transcript for later review; no tool is needed.
- If asked to add an action item, acknowledge it and restate it clearly.

SCHEDULING AND FOLLOW-UPS:
- For anything that needs calendars, email or other systems you cannot reach live,
  accept the request and say you will take care of it after the call.
  The request stays in the transcript and is handled once the meeting ends.
- Never say you cannot do something. Defer it instead.

MEETING CONTROLS (only on an explicit command):
- leave_meeting: only for "{name}, leave the meeting" or "{name}, leave the call". Not for a casual goodbye.
- mute_self: only for "{name}, mute yourself".
- unmute_self: only when you are muted and someone asks you to unmute.
- pause_listening: only for "{name}, stop listening" or "{name}, give us privacy".
- resume_listening: only when paused and someone asks you to listen again.

WEB SEARCH:
- Use web_search when asked to look something up or for facts that may have changed recently.
- Answer only what was asked, in one or two sentences.
- For places, name two or three options with their addresses.
- If asked for a recommendation, pick one and give a short reason."""

SEARCH_MODES = ("exa", "delegate")


@dataclass
class AudioConfig:
    """Audio device configuration."""

    # OpenAI realtime and ElevenLabs pcm output both use 24kHz mono PCM16
    sample_rate: int = 24000

    # Monitor of the sink the browser plays meeting audio into
    input_device: str = "meeting-output.monitor"

    # Sink whose monitor the browser uses as its microphone
    output_device: str = "VirtualMic"

    capture_latency_ms: int = 50


@dataclass
class RealtimeConfig:
    """Streaming transcription settings."""

    api_key: str = ""
    url: str = "wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview"
    transcription_model: str = "whisper-1"
    vad_threshold: float = 0.5
    prefix_padding_ms: int = 300
    silence_duration_ms: int = 700


@dataclass
class ResponseConfig:
    """Chat-completion settings."""

    api_key: str = ""
    url: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    max_tokens: int = 150
    temperature: float = 0.7
    timeout: float = 30.0


@dataclass
class VoiceConfig:
    """ElevenLabs TTS settings."""

    api_key: str = ""
    voice_id: str = "cgSgspJ2msm6clMCkdW9"
    model_id: str = "eleven_turbo_v2_5"
    stability: float = 0.5
    similarity_boost: float = 0.75
    base_url: str = "https://api.elevenlabs.io/v1/text-to-speech"
    timeout: float = 30.0


@dataclass
class SearchConfig:
    """Web search settings."""

    api_key: str = ""
    mode: str = "exa"  # exa (direct API) or delegate (supervisor answers on stdin)
    url: str = "https://api.exa.ai/search"
    location: str = "CA"
    timeout_seconds: float = 30.0

    @property
    def enabled(self) -> bool:
        if self.mode == "delegate":
            return True
        return bool(self.api_key)


@dataclass
class PersonaConfig:
    """Who the assistant is in the meeting."""

    name: str = DEFAULT_ASSISTANT_NAME
    system_prompt: Optional[str] = None

    def render(self) -> str:
        """The system prompt with the assistant's name filled in."""
        template = self.system_prompt or DEFAULT_SYSTEM_PROMPT
        return template.replace("{name}", self.name)


@dataclass
class BridgeConfig:
    """Main configuration for the meeting bridge."""

    audio: AudioConfig = field(default_factory=AudioConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    response: ResponseConfig = field(default_factory=ResponseConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    persona: PersonaConfig = field(default_factory=PersonaConfig)

    # Session settings
    max_history: int = 20
    leave_timeout_seconds: float = 60.0

    # Supervisor handoff files (optional)
    signal_file: Optional[Path] = None
    transcript_file: Optional[Path] = None

    def validate(self) -> None:
        """Raise ConfigError listing every problem found."""
        errors: List[str] = []

        # One OpenAI key serves both transcription and responses
        if not self.realtime.api_key or not self.response.api_key:
            errors.append("OPENAI_API_KEY not set")
        if not self.voice.api_key:
            errors.append("ELEVENLABS_API_KEY not set")
        if self.audio.sample_rate <= 0:
            errors.append(f"SAMPLE_RATE must be positive, got {self.audio.sample_rate}")
        if self.search.mode not in SEARCH_MODES:
            errors.append(f"SEARCH_MODE must be one of {', '.join(SEARCH_MODES)}, got {self.search.mode!r}")
        if self.max_history <= 0:
            errors.append("max_history must be positive")

        if errors:
            raise ConfigError(errors)

        if not self.search.enabled:
            logger.warning("EXA_API_KEY not set - web search will answer 'not configured'")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        persona_file: Optional[Path] = None,
    ) -> "BridgeConfig":
        """
        Build the configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)
            persona_file: Optional YAML file with `name` and `system_prompt`

        Returns:
            An unvalidated BridgeConfig (call validate() before use)
        """
        env = os.environ if environ is None else environ
        config = cls()

        openai_key = env.get("OPENAI_API_KEY", "")
        config.realtime.api_key = openai_key
        config.response.api_key = openai_key

        config.voice.api_key = env.get("ELEVENLABS_API_KEY", "")
        config.voice.voice_id = env.get("ELEVENLABS_VOICE_ID") or config.voice.voice_id
        config.voice.model_id = env.get("ELEVENLABS_MODEL_ID") or config.voice.model_id

        config.search.api_key = env.get("EXA_API_KEY", "")
        config.search.mode = (env.get("SEARCH_MODE") or config.search.mode).lower()
        config.search.location = env.get("SEARCH_LOCATION") or config.search.location

        sample_rate = env.get("SAMPLE_RATE")
        if sample_rate:
            try:
                config.audio.sample_rate = int(sample_rate)
            except ValueError:
                raise ConfigError([f"SAMPLE_RATE must be an integer, got {sample_rate!r}"])
        config.audio.input_device = env.get("INPUT_DEVICE") or config.audio.input_device
        config.audio.output_device = env.get("OUTPUT_DEVICE") or config.audio.output_device

        if persona_file:
            config.persona = load_persona(persona_file)
        if env.get("ASSISTANT_NAME"):
            config.persona.name = env["ASSISTANT_NAME"]
        if env.get("SYSTEM_PROMPT"):
            config.persona.system_prompt = env["SYSTEM_PROMPT"]

        if env.get("SIGNAL_FILE"):
            config.signal_file = Path(env["SIGNAL_FILE"]).expanduser()
        if env.get("TRANSCRIPT_FILE"):
            config.transcript_file = Path(env["TRANSCRIPT_FILE"]).expanduser()

        return config


def load_persona(path: Path) -> PersonaConfig:
    """Load a persona definition from YAML."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigError([f"Persona file not found: {path}"])
    except yaml.YAMLError as e:
        raise ConfigError([f"Persona file {path} is not valid YAML: {e}"])

    if not isinstance(data, dict):
        raise ConfigError([f"Persona file {path} must contain a mapping"])

    persona = PersonaConfig(
        name=str(data.get("name") or DEFAULT_ASSISTANT_NAME),
        system_prompt=data.get("system_prompt"),
    )
    logger.info(f"Loaded persona '{persona.name}' from {path}")
    return persona
