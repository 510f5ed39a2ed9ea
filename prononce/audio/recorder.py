from __future__ import annotations

import asyncio
import io
import wave
from typing import List, Optional

from prononce.contracts import AudioFrame


def _write_pcm16_wav(fileobj, pcm16: bytes, sample_rate: int, channels: int) -> None:
    with wave.open(fileobj, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)  # 16-bit
        wf.setframerate(sample_rate)
        wf.writeframes(pcm16)


def encode_wav(pcm16: bytes, sample_rate: int, channels: int) -> bytes:
    buf = io.BytesIO()
    _write_pcm16_wav(buf, pcm16, sample_rate=sample_rate, channels=channels)
    return buf.getvalue()


class WavRecorder:
    """Collects frames while recording; stop() encodes them into a WAV blob off the loop."""

    def __init__(self, *, sample_rate: int, channels: int) -> None:
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self._parts: List[bytes] = []
        self._recording = True
        self._task: Optional[asyncio.Task] = None

    @property
    def recording(self) -> bool:
        return self._recording

    def write(self, frame: AudioFrame) -> None:
        if self._recording:
            self._parts.append(frame.pcm16)

    def duration(self) -> float:
        bytes_per_second = self.sample_rate * self.channels * 2
        if bytes_per_second <= 0:
            return 0.0
        return sum(len(p) for p in self._parts) / float(bytes_per_second)

    def stop(self) -> "asyncio.Task[Optional[bytes]]":
        """Stop recording; returns a task resolving to the WAV bytes (None if nothing captured)."""
        self._recording = False
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._encode())
        return self._task

    async def _encode(self) -> Optional[bytes]:
        pcm16 = b"".join(self._parts)
        self._parts = []
        if not pcm16:
            return None
        return await asyncio.to_thread(encode_wav, pcm16, self.sample_rate, self.channels)
