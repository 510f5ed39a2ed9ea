from __future__ import annotations

from typing import Callable, List, Optional

import numpy as np

from prononce.contracts import AudioFrame

FrameSink = Callable[[AudioFrame], None]


class AudioContext:
    """
    Shared analysis context for one capture: fans each AudioFrame out to the
    registered sinks and keeps the most recent `analysis_size` mono samples
    for pitch analysis.

    Whoever constructs a context closes it. Runs on the event loop thread only.
    """

    def __init__(self, *, sample_rate: int = 16000, analysis_size: int = 2048) -> None:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if analysis_size <= 0:
            raise ValueError("analysis_size must be > 0")
        self.sample_rate = int(sample_rate)
        self.analysis_size = int(analysis_size)
        self._window = np.zeros(self.analysis_size, dtype=np.float32)
        self._filled = 0
        self._sinks: List[FrameSink] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def add_sink(self, sink: FrameSink) -> Callable[[], None]:
        if self._closed:
            raise RuntimeError("audio context is closed")
        self._sinks.append(sink)

        def _remove() -> None:
            if sink in self._sinks:
                self._sinks.remove(sink)

        return _remove

    def feed(self, frame: AudioFrame) -> None:
        if self._closed:
            return
        samples = frame.samples()
        n = len(samples)
        if n >= self.analysis_size:
            self._window[:] = samples[-self.analysis_size:]
        elif n:
            self._window = np.roll(self._window, -n)
            self._window[-n:] = samples
        self._filled = min(self.analysis_size, self._filled + n)
        for sink in list(self._sinks):
            sink(frame)

    def latest_window(self) -> Optional[np.ndarray]:
        """Copy of the last `analysis_size` samples, or None until the window is full."""
        if self._closed or self._filled < self.analysis_size:
            return None
        return self._window.copy()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._sinks.clear()
