from __future__ import annotations

import asyncio
import time

import numpy as np
import pytest

from prononce.contracts import EngineUnavailable
from prononce.pitch.detector import PyinPitchDetector
from prononce.pitch.tracker import PitchTracker, PitchTrackerConfig


class _FakeDetector:
    def __init__(
        self,
        pitch: float = 200.0,
        clarity: float = 0.95,
        *,
        gate=None,
        fail: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.pitch = pitch
        self.clarity = clarity
        self._gate = gate
        self._fail = fail
        self.delay = delay
        self._ready = False
        self.calls = 0

    @property
    def ready(self) -> bool:
        return self._ready

    async def warm_up(self) -> None:
        if self._gate is not None:
            await self._gate.wait()
        if self._fail:
            raise EngineUnavailable("no pitch backend")
        self._ready = True

    def find_pitch(self, frame, sample_rate):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return self.pitch, self.clarity


def _window():
    return np.zeros(256, dtype=np.float32)


@pytest.mark.asyncio
async def test_tracker_collects_accepted_points_until_stopped() -> None:
    tracker = PitchTracker(_FakeDetector(), PitchTrackerConfig(interval_ms=5))
    handle = tracker.start(_window, 16000)
    await asyncio.sleep(0.06)
    contour = handle.stop()
    assert len(contour) >= 2
    assert all(p.pitch == 200.0 and p.clarity == 0.95 for p in contour)
    times = [p.time for p in contour]
    assert times == sorted(times)

    await asyncio.sleep(0.03)
    assert handle.stop() is contour
    assert handle.contour == contour


@pytest.mark.asyncio
async def test_tracker_drops_unclear_or_out_of_range_points() -> None:
    for pitch, clarity in ((200.0, 0.5), (30.0, 0.99), (900.0, 0.99)):
        detector = _FakeDetector(pitch=pitch, clarity=clarity)
        handle = PitchTracker(detector, PitchTrackerConfig(interval_ms=5)).start(_window, 16000)
        await asyncio.sleep(0.03)
        assert handle.stop() == ()
        assert detector.calls > 0


@pytest.mark.asyncio
async def test_ticks_before_warm_up_are_skipped_not_queued() -> None:
    gate = asyncio.Event()
    detector = _FakeDetector(gate=gate)
    handle = PitchTracker(detector, PitchTrackerConfig(interval_ms=5)).start(_window, 16000)
    await asyncio.sleep(0.03)
    assert detector.calls == 0
    assert handle.skipped_ticks == handle.ticks > 0

    gate.set()
    await asyncio.sleep(0.03)
    contour = handle.stop()
    # an estimate still running at stop() is dropped
    assert 0 < len(contour) <= detector.calls


@pytest.mark.asyncio
async def test_missing_window_is_skipped() -> None:
    detector = _FakeDetector()
    handle = PitchTracker(detector, PitchTrackerConfig(interval_ms=5)).start(lambda: None, 16000)
    await asyncio.sleep(0.03)
    assert handle.stop() == ()
    assert detector.calls == 0


@pytest.mark.asyncio
async def test_unavailable_detector_yields_empty_contour() -> None:
    detector = _FakeDetector(fail=True)
    handle = PitchTracker(detector, PitchTrackerConfig(interval_ms=5)).start(_window, 16000)
    await asyncio.sleep(0.03)
    assert handle.stop() == ()


def test_tracker_config_validation() -> None:
    with pytest.raises(ValueError):
        PitchTrackerConfig(interval_ms=0)
    with pytest.raises(ValueError):
        PitchTrackerConfig(clarity_threshold=1.5)
    with pytest.raises(ValueError):
        PitchTrackerConfig(min_pitch_hz=300.0, max_pitch_hz=200.0)
    cfg = PitchTrackerConfig()
    assert cfg.accepts(50.0, 0.8)
    assert not cfg.accepts(49.9, 0.9)
    assert not cfg.accepts(200.0, 0.79)


def test_pyin_detector_uses_voiced_frames(monkeypatch) -> None:
    class _FakeLibrosa:
        def pyin(self, y, *, fmin, fmax, sr, frame_length, center):
            assert frame_length == len(y)
            assert center is False
            f0 = np.array([np.nan, 210.0, 190.0])
            voiced = np.array([False, True, True])
            prob = np.array([0.1, 0.9, 0.7])
            return f0, voiced, prob

    det = PyinPitchDetector(librosa=_FakeLibrosa())
    assert det.find_pitch(np.zeros(2048, dtype=np.float32), 16000) == (0.0, 0.0)
    asyncio.run(det.warm_up())
    assert det.ready
    pitch, clarity = det.find_pitch(np.zeros(2048, dtype=np.float32), 16000)
    assert pitch == 200.0
    assert clarity == pytest.approx(0.8)


def test_pyin_detector_warm_up_failure_is_engine_unavailable() -> None:
    class _BrokenLibrosa:
        def pyin(self, *args, **kwargs):
            raise RuntimeError("numba exploded")

    det = PyinPitchDetector(librosa=_BrokenLibrosa())
    with pytest.raises(EngineUnavailable):
        asyncio.run(det.warm_up())
    assert not det.ready


@pytest.mark.asyncio
async def test_slow_detector_runs_off_the_loop_and_skips_busy_ticks() -> None:
    detector = _FakeDetector(delay=0.1)
    handle = PitchTracker(detector, PitchTrackerConfig(interval_ms=5)).start(_window, 16000)

    loop = asyncio.get_running_loop()
    worst = 0.0
    for _ in range(20):
        before = loop.time()
        await asyncio.sleep(0.005)
        worst = max(worst, loop.time() - before - 0.005)
    contour = handle.stop()

    # a blocking estimate would stall the loop for the full 100 ms
    assert worst < 0.05
    assert detector.calls <= 2
    assert handle.skipped_ticks > 0
    assert len(contour) <= detector.calls
