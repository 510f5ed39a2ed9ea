"""
Pitch contour utilities: resampling, correlation and reference-free prosody scoring.

All functions are pure and deterministic; contours are sequences of PitchPoint
ordered by time.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from prononce.contracts import PitchPoint

MIN_CONTOUR_POINTS = 3
RESAMPLE_POINTS = 50
NOT_ENOUGH_DATA_SCORE = 50

# Typical speaking range (Hz) and natural variation band (std, Hz).
SPEAKING_RANGE_HZ = (100.0, 350.0)
VARIATION_BAND_HZ = (15.0, 40.0)

PROSODY_WEIGHTS = {"range": 0.25, "variation": 0.50, "trend": 0.25}


@dataclass(frozen=True)
class ContourStats:
    mean: float
    std: float
    first_quarter_mean: float
    last_quarter_mean: float

    @property
    def final_delta(self) -> float:
        return self.last_quarter_mean - self.first_quarter_mean


def _pitches(contour: Sequence[PitchPoint]) -> np.ndarray:
    return np.asarray([float(p.pitch) for p in contour], dtype=np.float64)


def resample_contour(contour: Sequence[PitchPoint], target_len: int = RESAMPLE_POINTS) -> np.ndarray:
    """Linear interpolation of pitch over time onto target_len evenly spaced instants."""
    if not contour:
        return np.zeros(0, dtype=np.float64)
    pitches = _pitches(contour)
    if len(pitches) == 1:
        return np.full(target_len, pitches[0])

    times = np.asarray([float(p.time) for p in contour], dtype=np.float64)
    if times[-1] <= times[0] or np.any(np.diff(times) < 0):
        # Degenerate timing: fall back to uniform index spacing.
        times = np.arange(len(pitches), dtype=np.float64)
    grid = np.linspace(times[0], times[-1], target_len)
    return np.interp(grid, times, pitches)


def pearson_correlation(a: np.ndarray, b: np.ndarray) -> float:
    if len(a) == 0 or len(a) != len(b):
        return 0.0
    da = a - a.mean()
    db = b - b.mean()
    den = float(np.sqrt(np.sum(da * da) * np.sum(db * db)))
    if den == 0.0:
        return 0.0
    return float(np.sum(da * db) / den)


def correlation_to_score(r: float) -> int:
    """r <= 0 maps into 0..20, r in (0, 1] maps linearly onto (20, 100]."""
    if r <= 0:
        return round(max(0.0, (r + 1.0) * 20.0))
    return round(20.0 + min(1.0, r) * 80.0)


def compare_pitch_contours(
    reference: Sequence[PitchPoint],
    actual: Sequence[PitchPoint],
    *,
    points: int = RESAMPLE_POINTS,
) -> int:
    if len(reference) < MIN_CONTOUR_POINTS or len(actual) < MIN_CONTOUR_POINTS:
        return NOT_ENOUGH_DATA_SCORE
    r = pearson_correlation(resample_contour(reference, points), resample_contour(actual, points))
    return correlation_to_score(r)


def contour_stats(contour: Sequence[PitchPoint]) -> ContourStats:
    pitches = _pitches(contour)
    n = len(pitches)
    first = pitches[: int(np.ceil(n * 0.25))]
    last = pitches[int(np.floor(n * 0.75)):]
    return ContourStats(
        mean=float(pitches.mean()),
        std=float(pitches.std()),
        first_quarter_mean=float(first.mean()),
        last_quarter_mean=float(last.mean()),
    )


def _range_score(mean: float) -> float:
    lo, hi = SPEAKING_RANGE_HZ
    if lo <= mean <= hi:
        return 100.0
    if 50.0 <= mean < lo:
        return 50.0 + (mean - 50.0)
    if hi < mean <= 500.0:
        return 100.0 - (mean - hi) / 1.5
    return 20.0


def _variation_score(std: float) -> float:
    lo, hi = VARIATION_BAND_HZ
    if lo <= std <= hi:
        return 90.0 + min(10.0, (std - lo) / 2.5)
    if 10.0 <= std < lo:
        return 60.0 + (std - 10.0) * 6.0
    if hi < std <= 60.0:
        return 90.0 - (std - hi) * 2.0
    if std < 10.0:
        return max(20.0, std * 6.0)  # monotone
    return max(10.0, 50.0 - (std - 60.0))  # erratic


def _trend_score(delta: float, is_question: bool) -> float:
    if is_question:
        if delta > 10.0:
            return 100.0
        return 70.0 if delta > 0 else 40.0
    if delta < 5.0:
        return 90.0
    return 70.0 if delta < 20.0 else 50.0


def score_pitch_prosody(contour: Sequence[PitchPoint], text: str) -> int:
    """Reference-free intonation score from range, variation and final trend."""
    if len(contour) < MIN_CONTOUR_POINTS:
        return 60
    stats = contour_stats(contour)
    is_question = (text or "").strip().endswith("?")
    return round(
        _range_score(stats.mean) * PROSODY_WEIGHTS["range"]
        + _variation_score(stats.std) * PROSODY_WEIGHTS["variation"]
        + _trend_score(stats.final_delta, is_question) * PROSODY_WEIGHTS["trend"]
    )
