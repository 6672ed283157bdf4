"""
recorder.py — Recording capability boundary.

The workflow only needs "record for N seconds, give me the audio bytes".
Real capture (microphone / browser MediaRecorder upload) lives outside this
service; TimedRecorder stands in for it by waiting the requested duration
and returning a silent PCM WAV clip.

Recordings run inside an asyncio.Task owned by the orchestrator, so a
cancel or reset interrupts the wait with CancelledError.
"""

import asyncio
import io
import logging
import wave
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Recorder(ABC):
    @abstractmethod
    async def record(self, duration: float) -> bytes:
        """Capture `duration` seconds of audio and return it as an encoded blob."""


def silent_wav(duration: float, sample_rate: int = 16_000) -> bytes:
    """Mono 16-bit PCM silence, `duration` seconds long (at least one frame)."""
    frames = max(1, int(duration * sample_rate))
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(b"\x00\x00" * frames)
    return buf.getvalue()


class TimedRecorder(Recorder):
    def __init__(self, sample_rate: int = 16_000) -> None:
        self.sample_rate = sample_rate

    async def record(self, duration: float) -> bytes:
        logger.info("Recording started (%.1fs)", duration)
        await asyncio.sleep(duration)
        logger.info("Recording finished")
        return silent_wav(duration, self.sample_rate)
