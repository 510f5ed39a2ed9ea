from __future__ import annotations

import asyncio
import threading
from typing import Any, Callable, Optional

from prononce.contracts import AudioFrame


class MicError(RuntimeError):
    pass


class PermissionDenied(MicError):
    """The OS or the user refused microphone access."""


class Unsupported(MicError):
    """No capture backend or no input device in this runtime."""


_PERMISSION_MARKERS = (
    "permission",
    "not allowed",
    "access denied",
    "unanticipated host error",
    "-9999",
)


def _import_sounddevice():
    try:
        import sounddevice as sd
    except ImportError as e:
        raise Unsupported(
            "sounddevice is not installed. Install with: python -m pip install sounddevice"
        ) from e
    except OSError as e:
        # sounddevice raises OSError when the PortAudio shared library is missing.
        raise Unsupported("PortAudio library not found; audio capture is unavailable.") from e
    return sd


def classify_stream_error(exc: BaseException) -> MicError:
    text = str(exc).lower()
    if any(marker in text for marker in _PERMISSION_MARKERS):
        return PermissionDenied(
            "Microphone access denied. Allow microphone access for this terminal/app and retry."
        )
    if "no default input device" in text or "invalid device" in text or "-9996" in text:
        return Unsupported("No usable input device found. Try --list-devices and --device.")
    return MicError(
        "Failed to open microphone stream. "
        "Try --list-devices and select a device id with --device."
    )


class MicStream:
    """
    An acquired input device. PortAudio calls back on its own thread; each block is
    wrapped in an AudioFrame and handed to the event loop with call_soon_threadsafe,
    so consumers only ever run on the loop thread.
    """

    def __init__(
        self,
        *,
        sample_rate: int,
        channels: int,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self._loop = loop
        self._stream: Any = None
        self._on_frame: Optional[Callable[[AudioFrame], None]] = None
        self._frames_seen = 0
        self._released = False
        self._lock = threading.Lock()

    def attach(self, stream: Any) -> None:
        self._stream = stream

    @property
    def released(self) -> bool:
        return self._released

    def start(self, on_frame: Callable[[AudioFrame], None]) -> None:
        if self._released:
            raise MicError("microphone stream already released")
        self._on_frame = on_frame
        if self._stream is not None:
            # PortAudio often reports a refused permission at start, not at open.
            try:
                self._stream.start()
            except Exception as e:
                raise classify_stream_error(e) from e

    def detach(self) -> None:
        """Stop delivering frames; the device stays open until release()."""
        self._on_frame = None

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        self._on_frame = None
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    # PortAudio thread
    def _callback(self, indata, frames: int, time_info, status) -> None:
        del time_info, status
        if self._released:
            return
        frame = AudioFrame(
            pcm16=bytes(indata),
            sample_rate=self.sample_rate,
            channels=self.channels,
            start_time=self._frames_seen / self.sample_rate,
            duration=frames / self.sample_rate,
        )
        self._frames_seen += frames
        try:
            self._loop.call_soon_threadsafe(self._deliver, frame)
        except RuntimeError:
            # Loop already closed; the stream is about to be released.
            return

    # Loop thread
    def _deliver(self, frame: AudioFrame) -> None:
        on_frame = self._on_frame
        if on_frame is not None and not self._released:
            on_frame(frame)


class SoundDeviceMicSource:
    """
    Live microphone source using the `sounddevice` package (PortAudio).
    Delivers raw PCM16 blocks of fixed duration to the event loop.
    """

    def __init__(
        self,
        *,
        block_ms: int = 32,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[int] = None,
    ) -> None:
        if block_ms <= 0:
            raise ValueError("block_ms must be > 0")
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if channels not in (1, 2):
            raise ValueError("channels must be 1 or 2 (for now)")

        self.block_ms = int(block_ms)
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.device = device

    @staticmethod
    def list_devices() -> str:
        sd = _import_sounddevice()
        return str(sd.query_devices())

    @property
    def frames_per_block(self) -> int:
        return max(1, int(round(self.block_ms * self.sample_rate / 1000.0)))

    def _open(self, loop: asyncio.AbstractEventLoop) -> MicStream:
        sd = _import_sounddevice()
        try:
            sd.query_devices(self.device, kind="input")
        except Exception as e:
            raise classify_stream_error(e) from e

        mic = MicStream(sample_rate=self.sample_rate, channels=self.channels, loop=loop)
        try:
            stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                device=self.device,
                blocksize=self.frames_per_block,
                callback=mic._callback,
            )
        except Exception as e:
            raise classify_stream_error(e) from e
        mic.attach(stream)
        return mic

    async def acquire(self) -> MicStream:
        """Open the input device; raises PermissionDenied / Unsupported / MicError."""
        loop = asyncio.get_running_loop()
        return await asyncio.to_thread(self._open, loop)
