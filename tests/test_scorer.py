from __future__ import annotations

import logging

import pytest

from prononce.contracts import (
    PitchPoint,
    RecognizedWord,
    ScoreBand,
    SpeechDataAnalysis,
    TextOnlyAnalysis,
    analysis_to_dict,
)
from prononce.scoring.scorer import ScoringConfig, ScoringEngine, confidence_score


def _words(*items: tuple[str, float, float, float]) -> list[RecognizedWord]:
    return [RecognizedWord(word=w, confidence=c, start=s, end=e) for w, c, s, e in items]


def test_perfect_transcript_without_speech_data() -> None:
    analysis = ScoringEngine().score("Je m'appelle Marie.", "je m'appelle marie")
    assert isinstance(analysis, TextOnlyAnalysis)
    assert analysis.kind == "text_only"
    assert analysis.accuracy_score == 100
    assert analysis.confidence_score == 100
    assert analysis.intonation_score == 60
    assert analysis.fluency_score == 90
    # 0.4*100 + 0.3*100 + 0.2*60 + 0.1*90
    assert analysis.overall_score == 91
    assert analysis.overall_band == ScoreBand.HIGH
    assert [w.score for w in analysis.word_results] == [100, 100, 100]


def test_mispronounced_word_scores_lower() -> None:
    analysis = ScoringEngine().score("je m'appelle marie", "je mapel marie")
    assert [w.word for w in analysis.word_results] == ["je", "m'appelle", "marie"]
    scores = [w.score for w in analysis.word_results]
    assert scores[1] < scores[0]
    assert scores[1] < scores[2]
    assert scores[1] == 62
    assert analysis.word_results[1].band == ScoreBand.LOW
    assert analysis.word_results[1].confidence == pytest.approx(0.62)


def test_word_results_use_recognizer_confidence() -> None:
    words = _words(("je", 0.9, 0.0, 0.2), ("mapel", 0.4, 0.2, 0.6), ("marie", 0.95, 0.6, 1.0))
    analysis = ScoringEngine().score("je m'appelle marie", "je mapel marie", recognized_words=words)
    assert isinstance(analysis, SpeechDataAnalysis)
    assert analysis.kind == "speech_data"
    assert [w.confidence for w in analysis.word_results] == [0.9, 0.4, 0.95]
    assert analysis.confidence_score == 75
    assert analysis.fluency_score == 100
    assert analysis.recognized_words == tuple(words)


def test_word_results_length_matches_expected_words() -> None:
    analysis = ScoringEngine().score("Bonjour, comment allez-vous ?", "bonjour")
    assert len(analysis.word_results) == 3
    assert analysis.word_results[1].score == 0
    assert analysis.word_results[1].confidence == 0.0


def test_contour_makes_speech_data_analysis_and_reference_is_compared() -> None:
    contour = [PitchPoint(time=i * 0.05, pitch=180.0 + 10 * i, clarity=0.9) for i in range(8)]
    engine = ScoringEngine()
    analysis = engine.score("bonjour", "bonjour", pitch_contour=contour, reference_pitch=contour)
    assert isinstance(analysis, SpeechDataAnalysis)
    assert analysis.pitch_points == 8
    assert analysis.intonation_score == 100


def test_short_contour_is_not_speech_data() -> None:
    contour = [PitchPoint(0.0, 200.0, 0.9), PitchPoint(0.1, 205.0, 0.9)]
    analysis = ScoringEngine().score("bonjour", "bonjour", pitch_contour=contour)
    assert isinstance(analysis, TextOnlyAnalysis)
    assert analysis.intonation_score == 60


def test_overall_is_deterministic_and_clamped() -> None:
    engine = ScoringEngine()
    args = ("une baguette s'il vous plaît", "un bagel si vous plait", None, None, None)
    first = engine.score(*args)
    second = engine.score(*args)
    assert first == second
    for transcript in ("", "zzz qqq", "une baguette s'il vous plaît"):
        overall = engine.score("une baguette s'il vous plaît", transcript).overall_score
        assert 0 <= overall <= 100


def test_empty_transcript_scores_low() -> None:
    analysis = ScoringEngine().score("bonjour madame", "")
    assert analysis.accuracy_score == 0
    assert analysis.overall_band == ScoreBand.LOW
    assert all(w.score == 0 for w in analysis.word_results)


def test_scoring_config_validation_and_normalization() -> None:
    with pytest.raises(ValueError):
        ScoringConfig(weight_accuracy=-0.1)
    with pytest.raises(ValueError):
        ScoringConfig(weight_accuracy=0, weight_confidence=0, weight_intonation=0, weight_fluency=0)
    with pytest.raises(ValueError):
        ScoringConfig(band_high=60, band_medium=70)
    cfg = ScoringConfig(weight_accuracy=2, weight_confidence=1, weight_intonation=1, weight_fluency=0)
    assert cfg.normalized_weights() == (0.5, 0.25, 0.25, 0.0)
    assert cfg.band(85) == ScoreBand.HIGH
    assert cfg.band(70) == ScoreBand.MEDIUM
    assert cfg.band(69) == ScoreBand.LOW


def test_confidence_score_helper() -> None:
    assert confidence_score([]) == 0
    assert confidence_score(_words(("a", 0.5, 0, 1), ("b", 1.0, 1, 2))) == 75


def test_analysis_to_dict_and_logging(caplog) -> None:
    logger = logging.getLogger("scorer_test")
    with caplog.at_level(logging.INFO, logger="scorer_test"):
        analysis = ScoringEngine(logger=logger).score("oui", "oui")
    payload = analysis_to_dict(analysis)
    assert payload["kind"] == "text_only"
    assert payload["overall_band"] == "high"
    assert payload["word_results"] == [{"word": "oui", "score": 100, "confidence": 1.0, "band": "high"}]
    assert any(r.getMessage() == "analysis_done" for r in caplog.records)
