"""
Meeting audio capture.

Records raw PCM16 mono from a PulseAudio/PipeWire source (normally the
monitor of the sink the browser plays the meeting into) using parec, and
yields the chunks as they arrive. The transcription stream is the only
consumer.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional

logger = logging.getLogger(__name__)

READ_SIZE = 4800  # 100ms of 24kHz PCM16 mono


class ParecCapture:
    """
    Captures audio from a PulseAudio source with parec.

    Usage:
        capture = ParecCapture("meeting-output.monitor", sample_rate=24000)
        async for chunk in capture.chunks():
            ...
        await capture.stop()
    """

    def __init__(
        self,
        device: str,
        sample_rate: int = 24000,
        latency_ms: int = 50,
        read_size: int = READ_SIZE,
    ):
        """
        Initialize audio capture.

        Args:
            device: PulseAudio source name
            sample_rate: Capture rate in Hz
            latency_ms: Requested parec latency
            read_size: Max bytes per yielded chunk
        """
        self.device = device
        self.sample_rate = sample_rate
        self.latency_ms = latency_ms
        self.read_size = read_size

        self._process: Optional[asyncio.subprocess.Process] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._running = False
        self.bytes_captured = 0

    def build_command(self) -> List[str]:
        return [
            "parec",
            f"--device={self.device}",
            "--format=s16le",
            f"--rate={self.sample_rate}",
            "--channels=1",
            f"--latency-msec={self.latency_ms}",
        ]

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the parec process."""
        if self._running:
            return

        logger.info(f"[CAPTURE] 🎧 Starting audio capture from {self.device}")
        self._process = await asyncio.create_subprocess_exec(
            *self.build_command(),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._running = True
        self._stderr_task = asyncio.create_task(self._log_stderr())
        logger.info(f"[CAPTURE] ✅ Audio capture started (PID {self._process.pid})")

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield PCM chunks until capture stops or parec exits."""
        if not self._running:
            await self.start()

        if self._process is None or self._process.stdout is None:
            raise RuntimeError("parec was started without a stdout pipe")
        stdout = self._process.stdout

        while self._running:
            chunk = await stdout.read(self.read_size)
            if not chunk:
                logger.warning("[CAPTURE] parec stream ended")
                break
            self.bytes_captured += len(chunk)
            yield chunk

    async def _log_stderr(self) -> None:
        if not self._process or not self._process.stderr:
            return
        async for line in self._process.stderr:
            text = line.decode(errors="replace").strip()
            if text:
                logger.warning(f"[CAPTURE] parec: {text}")

    async def stop(self) -> None:
        """Stop parec and wait for it to exit."""
        self._running = False

        if self._process and self._process.returncode is None:
            try:
                self._process.terminate()
                await asyncio.wait_for(self._process.wait(), timeout=2.0)
            except asyncio.TimeoutError:
                self._process.kill()
                await self._process.wait()
            except ProcessLookupError:
                pass
            logger.info(f"[CAPTURE] Stopped audio capture ({self.bytes_captured} bytes captured)")

        if self._stderr_task:
            self._stderr_task.cancel()
            try:
                await self._stderr_task
            except asyncio.CancelledError:
                pass
            self._stderr_task = None

        self._process = None
