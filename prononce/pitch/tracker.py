from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import numpy as np

from prononce.contracts import EngineUnavailable, PitchPoint
from prononce.pitch.detector import PitchDetector

FrameSource = Callable[[], Optional[np.ndarray]]


@dataclass(frozen=True)
class PitchTrackerConfig:
    interval_ms: int = 16
    clarity_threshold: float = 0.8
    min_pitch_hz: float = 50.0
    max_pitch_hz: float = 600.0

    def __post_init__(self) -> None:
        if self.interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        if not 0.0 <= self.clarity_threshold <= 1.0:
            raise ValueError("clarity_threshold must be in [0, 1]")
        if self.min_pitch_hz <= 0 or self.max_pitch_hz <= self.min_pitch_hz:
            raise ValueError("expected 0 < min_pitch_hz < max_pitch_hz")

    def accepts(self, pitch: float, clarity: float) -> bool:
        return clarity >= self.clarity_threshold and self.min_pitch_hz <= pitch <= self.max_pitch_hz


class PitchTrackingHandle:
    def __init__(self) -> None:
        self._points: List[PitchPoint] = []
        self._tasks: List[asyncio.Task] = []
        self._stopped = False
        self._frozen: Optional[tuple[PitchPoint, ...]] = None
        self._estimate: Optional[asyncio.Task] = None
        self._failed = False
        self.ticks = 0
        self.skipped_ticks = 0

    @property
    def estimating(self) -> bool:
        return self._estimate is not None and not self._estimate.done()

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def contour(self) -> tuple[PitchPoint, ...]:
        if self._frozen is not None:
            return self._frozen
        return tuple(self._points)

    def _append(self, point: PitchPoint) -> None:
        if not self._stopped:
            self._points.append(point)

    def stop(self) -> tuple[PitchPoint, ...]:
        """Stop sampling and return the contour; later calls return the same contour."""
        if self._frozen is None:
            self._stopped = True
            for task in self._tasks:
                task.cancel()
            if self._estimate is not None:
                self._estimate.cancel()
            self._frozen = tuple(self._points)
        return self._frozen


class PitchTracker:
    """
    Samples the latest analysis window at a fixed cadence while capture runs.
    Silence/noise (low clarity or implausible pitch) contributes no points.

    Estimates run in a worker thread, one at a time; a tick that lands while
    one is still running is skipped, never queued.
    """

    def __init__(
        self,
        detector: PitchDetector,
        config: PitchTrackerConfig | None = None,
        *,
        clock: Callable[[], float] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.detector = detector
        self.config = config or PitchTrackerConfig()
        self._clock = clock
        self.logger = logger

    def start(self, frame_source: FrameSource, sample_rate: int) -> PitchTrackingHandle:
        loop = asyncio.get_running_loop()
        clock = self._clock or loop.time
        handle = PitchTrackingHandle()
        started_at = clock()
        handle._tasks.append(loop.create_task(self._warm_up(handle)))
        handle._tasks.append(
            loop.create_task(self._sample_loop(handle, frame_source, int(sample_rate), clock, started_at))
        )
        return handle

    async def _warm_up(self, handle: PitchTrackingHandle) -> None:
        try:
            await self.detector.warm_up()
        except EngineUnavailable as e:
            if self.logger is not None:
                self.logger.warning("pitch_detector_unavailable", extra={"detail": str(e)})

    def _tick(
        self,
        handle: PitchTrackingHandle,
        frame_source: FrameSource,
        sample_rate: int,
        clock: Callable[[], float],
        started_at: float,
    ) -> None:
        handle.ticks += 1
        if not self.detector.ready or handle.estimating:
            handle.skipped_ticks += 1
            return
        frame = frame_source()
        if frame is None:
            handle.skipped_ticks += 1
            return
        at = clock() - started_at
        handle._estimate = asyncio.get_running_loop().create_task(
            self._run_estimate(handle, frame, sample_rate, at)
        )

    async def _run_estimate(
        self,
        handle: PitchTrackingHandle,
        frame: np.ndarray,
        sample_rate: int,
        at: float,
    ) -> None:
        try:
            pitch, clarity = await asyncio.to_thread(self.detector.find_pitch, frame, sample_rate)
        except Exception:
            if not handle._failed and self.logger is not None:
                self.logger.exception("pitch_estimate_failed")
            handle._failed = True
            return
        if self.config.accepts(pitch, clarity):
            handle._append(PitchPoint(time=at, pitch=float(pitch), clarity=float(clarity)))

    async def _sample_loop(
        self,
        handle: PitchTrackingHandle,
        frame_source: FrameSource,
        sample_rate: int,
        clock: Callable[[], float],
        started_at: float,
    ) -> None:
        interval = self.config.interval_ms / 1000.0
        while not handle.stopped:
            self._tick(handle, frame_source, sample_rate, clock, started_at)
            await asyncio.sleep(interval)
