from __future__ import annotations

import numpy as np

from prononce.contracts import AudioFrame


def frame_rms(frame: AudioFrame) -> float:
    """RMS energy of a frame on the int16 scale (0..32768)."""
    if not frame.pcm16:
        return 0.0
    samples = np.frombuffer(frame.pcm16, dtype="<i2").astype(np.float64)
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples * samples)))


class EnergyVAD:
    def __init__(self, rms_threshold: float = 250.0) -> None:
        if rms_threshold < 0:
            raise ValueError("rms_threshold must be >= 0")
        self.rms_threshold = float(rms_threshold)

    def is_speech(self, frame: AudioFrame) -> bool:
        return frame_rms(frame) >= self.rms_threshold


class EndOfSpeechDetector:
    """
    Signals the natural end of an utterance: speech was heard, then at least
    `end_silence_sec` of continuous non-speech followed.
    """

    def __init__(self, vad: EnergyVAD, end_silence_sec: float = 1.2) -> None:
        if end_silence_sec <= 0:
            raise ValueError("end_silence_sec must be > 0")
        self.vad = vad
        self.end_silence_sec = float(end_silence_sec)
        self._heard_speech = False
        self._silence = 0.0

    @property
    def heard_speech(self) -> bool:
        return self._heard_speech

    def push(self, frame: AudioFrame) -> bool:
        if self.vad.is_speech(frame):
            self._heard_speech = True
            self._silence = 0.0
            return False
        if not self._heard_speech:
            return False
        self._silence += float(frame.duration)
        return self._silence >= self.end_silence_sec
