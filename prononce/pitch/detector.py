"""
Frame-level pitch detection.

The tracker only needs `(pitch_hz, clarity)` for one analysis window; the
adapter here uses librosa's pYIN, taking the voicing probability as clarity.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional, Protocol

import numpy as np

from prononce.contracts import EngineUnavailable


class PitchDetector(Protocol):
    @property
    def ready(self) -> bool:
        ...

    async def warm_up(self) -> None:
        ...

    def find_pitch(self, frame: np.ndarray, sample_rate: int) -> tuple[float, float]:
        ...


class PyinPitchDetector:
    def __init__(
        self,
        *,
        fmin: float = 50.0,
        fmax: float = 600.0,
        warm_up_size: int = 2048,
        warm_up_sample_rate: int = 16000,
        librosa: Any = None,
    ) -> None:
        if fmin <= 0 or fmax <= fmin:
            raise ValueError("expected 0 < fmin < fmax")
        self.fmin = float(fmin)
        self.fmax = float(fmax)
        self.warm_up_size = int(warm_up_size)
        self.warm_up_sample_rate = int(warm_up_sample_rate)
        self._librosa = librosa
        self._ready = False
        self._warm_task: Optional[asyncio.Task] = None

    @property
    def ready(self) -> bool:
        return self._ready

    def _get_librosa(self) -> Any:
        if self._librosa is None:
            try:
                import librosa
            except ImportError as e:
                raise EngineUnavailable(
                    "librosa is not installed. Install with: python -m pip install librosa"
                ) from e
            self._librosa = librosa
        return self._librosa

    def _estimate(self, frame: np.ndarray, sample_rate: int) -> tuple[float, float]:
        librosa = self._get_librosa()
        y = np.asarray(frame, dtype=np.float32)
        f0, voiced_flag, voiced_prob = librosa.pyin(
            y,
            fmin=self.fmin,
            fmax=self.fmax,
            sr=sample_rate,
            frame_length=len(y),
            center=False,
        )
        f0 = np.asarray(f0, dtype=np.float64)
        voiced = np.asarray(voiced_flag, dtype=bool) & ~np.isnan(f0)
        if not voiced.any():
            return 0.0, 0.0
        probs = np.asarray(voiced_prob, dtype=np.float64)[voiced]
        return float(np.median(f0[voiced])), float(np.clip(probs.mean(), 0.0, 1.0))

    def _warm(self) -> None:
        # First pyin call compiles its numba kernels; pay that cost before sampling.
        self._get_librosa()
        try:
            self._estimate(np.zeros(self.warm_up_size, dtype=np.float32), self.warm_up_sample_rate)
        except Exception as e:
            raise EngineUnavailable(f"pitch detector warm-up failed: {e}") from e
        self._ready = True

    async def warm_up(self) -> None:
        if self._ready:
            return
        if self._warm_task is None or (self._warm_task.done() and not self._ready):
            self._warm_task = asyncio.get_running_loop().create_task(asyncio.to_thread(self._warm))
        await asyncio.shield(self._warm_task)

    def find_pitch(self, frame: np.ndarray, sample_rate: int) -> tuple[float, float]:
        if not self._ready or len(frame) == 0:
            return 0.0, 0.0
        return self._estimate(frame, sample_rate)
