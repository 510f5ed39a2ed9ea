from __future__ import annotations

import numpy as np

from prononce.contracts import PitchPoint
from prononce.pitch.contour import (
    compare_pitch_contours,
    contour_stats,
    correlation_to_score,
    pearson_correlation,
    resample_contour,
    score_pitch_prosody,
)


def _contour(pitches, step: float = 0.016) -> list[PitchPoint]:
    return [PitchPoint(time=i * step, pitch=float(p), clarity=0.9) for i, p in enumerate(pitches)]


def test_identical_contours_score_100() -> None:
    ref = _contour([180, 200, 230, 210, 190, 170])
    assert compare_pitch_contours(ref, ref) == 100


def test_negated_contours_score_at_most_20() -> None:
    pitches = np.array([180, 200, 230, 210, 190, 170], dtype=float)
    ref = _contour(pitches)
    mirrored = _contour(2 * pitches.mean() - pitches)
    assert compare_pitch_contours(ref, mirrored) <= 20


def test_short_contours_are_not_enough_data() -> None:
    ref = _contour([180, 200, 230])
    assert compare_pitch_contours(ref, _contour([200, 210])) == 50
    assert compare_pitch_contours(_contour([200]), ref) == 50


def test_correlation_to_score_mapping() -> None:
    assert correlation_to_score(-1.0) == 0
    assert correlation_to_score(0.0) == 20
    assert correlation_to_score(0.5) == 60
    assert correlation_to_score(1.0) == 100


def test_pearson_of_flat_signal_is_zero() -> None:
    assert pearson_correlation(np.ones(5), np.arange(5, dtype=float)) == 0.0


def test_resample_interpolates_over_time() -> None:
    contour = [PitchPoint(0.0, 100.0, 0.9), PitchPoint(1.0, 200.0, 0.9)]
    out = resample_contour(contour, 5)
    assert np.allclose(out, [100.0, 125.0, 150.0, 175.0, 200.0])


def test_resample_uses_time_not_index() -> None:
    # the middle sample sits at 0.9s, so 0.5s lies on the first segment
    contour = [PitchPoint(0.0, 100.0, 0.9), PitchPoint(0.9, 190.0, 0.9), PitchPoint(1.0, 200.0, 0.9)]
    out = resample_contour(contour, 3)
    assert np.isclose(out[1], 150.0)


def test_contour_stats_quarters() -> None:
    stats = contour_stats(_contour([100, 100, 150, 150, 200, 200, 250, 250]))
    assert stats.first_quarter_mean == 100.0
    assert stats.last_quarter_mean == 250.0
    assert stats.final_delta == 150.0


def test_prosody_question_prefers_rising_end() -> None:
    rising = _contour([180, 185, 190, 200, 215, 240, 260, 280])
    falling = _contour([280, 260, 240, 215, 200, 190, 185, 180])
    assert score_pitch_prosody(rising, "Tu viens ?") > score_pitch_prosody(falling, "Tu viens ?")
    assert score_pitch_prosody(falling, "Je viens.") > score_pitch_prosody(rising, "Je viens.")


def test_prosody_without_enough_points_is_default() -> None:
    assert score_pitch_prosody(_contour([200, 210]), "Bonjour.") == 60
