"""
Audio Output to the virtual microphone.

Plays raw PCM16 mono into a PulseAudio sink with paplay. The browser uses
that sink's monitor as its microphone, so whatever we play is heard in the
meeting.

Audio is piped into paplay's stdin as it streams in from the TTS service;
no intermediate file is written. Only one playback runs at a time.
"""

import asyncio
import logging
from typing import AsyncIterator, List

from tool_modules.aa_meet_bridge.src.errors import SynthesisError

logger = logging.getLogger(__name__)


class PaplayOutput:
    """Exclusive writer to the outbound audio device."""

    def __init__(self, device: str, sample_rate: int = 24000):
        """
        Initialize audio output.

        Args:
            device: PulseAudio sink name (e.g. "VirtualMic")
            sample_rate: Rate of the PCM we will be fed
        """
        self.device = device
        self.sample_rate = sample_rate
        self._lock = asyncio.Lock()
        self.playbacks = 0

    def build_command(self) -> List[str]:
        return [
            "paplay",
            f"--device={self.device}",
            "--format=s16le",
            f"--rate={self.sample_rate}",
            "--channels=1",
            "--raw",
        ]

    def is_playing(self) -> bool:
        return self._lock.locked()

    async def play_stream(self, chunks: AsyncIterator[bytes]) -> int:
        """
        Play a PCM stream to the device, waiting for any playback in progress.

        Args:
            chunks: Async iterator of raw PCM16 bytes

        Returns:
            Number of bytes written

        Raises:
            SynthesisError: If paplay cannot be started or exits with an error
        """
        async with self._lock:
            try:
                process = await asyncio.create_subprocess_exec(
                    *self.build_command(),
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                )
            except OSError as e:
                raise SynthesisError(f"Could not start paplay: {e}") from e

            written = 0
            try:
                async for chunk in chunks:
                    if not chunk:
                        continue
                    process.stdin.write(chunk)
                    await process.stdin.drain()
                    written += len(chunk)
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.warning(f"[AUDIO] paplay closed its input early: {e}")
            finally:
                if not process.stdin.is_closing():
                    process.stdin.close()
                returncode = await process.wait()

            self.playbacks += 1
            if returncode != 0:
                raise SynthesisError(f"paplay exited with status {returncode}")

            logger.debug(f"[AUDIO] Played {written} bytes to {self.device}")
            return written
