"""
Pronunciation scorer: accuracy, confidence, intonation and fluency.

The overall score is a weighted sum of the four sub-scores. The weights and the
band thresholds are empirical tuning values, kept as ScoringConfig fields so
they can be overridden from the JSON config.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from prononce.contracts import (
    PitchPoint,
    PronunciationAnalysis,
    RecognizedWord,
    ScoreBand,
    SpeechDataAnalysis,
    TextOnlyAnalysis,
    WordResult,
)
from prononce.pitch.contour import MIN_CONTOUR_POINTS, compare_pitch_contours, score_pitch_prosody
from prononce.scoring.aligner import align
from prononce.scoring.fluency import fluency_score
from prononce.scoring.text import compact, normalize_for_comparison, normalize_for_display, similarity, tokenize

NO_CONTOUR_INTONATION = 60  # slightly below neutral


@dataclass(frozen=True)
class ScoringConfig:
    weight_accuracy: float = 0.40
    weight_confidence: float = 0.30
    weight_intonation: float = 0.20
    weight_fluency: float = 0.10
    band_high: int = 85
    band_medium: int = 70

    def __post_init__(self) -> None:
        weights = (self.weight_accuracy, self.weight_confidence, self.weight_intonation, self.weight_fluency)
        if any(w < 0 for w in weights):
            raise ValueError("scoring weights must be >= 0")
        if sum(weights) <= 0:
            raise ValueError("at least one scoring weight must be > 0")
        if not 0 <= self.band_medium <= self.band_high <= 100:
            raise ValueError("band thresholds must satisfy 0 <= band_medium <= band_high <= 100")

    def normalized_weights(self) -> tuple[float, float, float, float]:
        weights = (self.weight_accuracy, self.weight_confidence, self.weight_intonation, self.weight_fluency)
        total = sum(weights)
        return tuple(w / total for w in weights)  # type: ignore[return-value]

    def band(self, score: float) -> ScoreBand:
        if score >= self.band_high:
            return ScoreBand.HIGH
        if score >= self.band_medium:
            return ScoreBand.MEDIUM
        return ScoreBand.LOW


def _clamp_score(value: float) -> int:
    return max(0, min(100, round(value)))


def confidence_score(words: Sequence[RecognizedWord]) -> int:
    if not words:
        return 0
    avg = sum(float(w.confidence) for w in words) / len(words)
    return _clamp_score(avg * 100.0)


class ScoringEngine:
    def __init__(self, config: ScoringConfig | None = None, logger: logging.Logger | None = None) -> None:
        self.config = config or ScoringConfig()
        self.logger = logger

    def intonation_score(
        self,
        expected_text: str,
        pitch_contour: Sequence[PitchPoint],
        reference_pitch: Sequence[PitchPoint],
    ) -> int:
        if pitch_contour and reference_pitch:
            return compare_pitch_contours(reference_pitch, pitch_contour)
        if len(pitch_contour) >= MIN_CONTOUR_POINTS:
            return score_pitch_prosody(pitch_contour, expected_text)
        return NO_CONTOUR_INTONATION

    def word_results(
        self,
        display_words: Sequence[str],
        recognized_transcript: str,
        recognized_words: Sequence[RecognizedWord],
    ) -> List[WordResult]:
        # Prefer the recognizer's word list so indices line up with confidences.
        if recognized_words:
            actual = [w.word for w in recognized_words]
        else:
            actual = tokenize(normalize_for_comparison(recognized_transcript))

        out: List[WordResult] = []
        for pair in align(display_words, actual):
            score = similarity(compact(pair.expected_word), compact(pair.matched_word))
            if recognized_words and pair.matched_word_index is not None:
                conf = float(recognized_words[pair.matched_word_index].confidence)
            else:
                conf = score / 100.0
            out.append(WordResult(word=pair.expected_word, score=score, confidence=conf, band=self.config.band(score)))
        return out

    def score(
        self,
        expected_text: str,
        recognized_transcript: str,
        recognized_words: Optional[Sequence[RecognizedWord]] = None,
        pitch_contour: Optional[Sequence[PitchPoint]] = None,
        reference_pitch: Optional[Sequence[PitchPoint]] = None,
    ) -> PronunciationAnalysis:
        words = tuple(recognized_words or ())
        contour = tuple(pitch_contour or ())
        reference = tuple(reference_pitch or ())

        display_words = [w for w in tokenize(normalize_for_display(expected_text)) if compact(w)]
        word_results = self.word_results(display_words, recognized_transcript, words)

        accuracy = similarity(
            normalize_for_comparison(expected_text),
            normalize_for_comparison(recognized_transcript),
        )
        confidence = confidence_score(words) if words else accuracy
        fluency = fluency_score(words)
        intonation = self.intonation_score(expected_text, contour, reference)

        w_acc, w_conf, w_int, w_flu = self.config.normalized_weights()
        overall = _clamp_score(
            accuracy * w_acc + confidence * w_conf + intonation * w_int + fluency * w_flu
        )

        common = dict(
            overall_score=overall,
            overall_band=self.config.band(overall),
            word_results=tuple(word_results),
            accuracy_score=accuracy,
            confidence_score=confidence,
            intonation_score=intonation,
            fluency_score=fluency,
        )
        analysis: PronunciationAnalysis
        if words or len(contour) >= MIN_CONTOUR_POINTS:
            analysis = SpeechDataAnalysis(recognized_words=words, pitch_points=len(contour), **common)
        else:
            analysis = TextOnlyAnalysis(**common)

        if self.logger is not None:
            self.logger.info(
                "analysis_done",
                extra={
                    "kind": analysis.kind,
                    "overall": overall,
                    "accuracy": accuracy,
                    "confidence": confidence,
                    "intonation": intonation,
                    "fluency": fluency,
                    "expected_words": len(word_results),
                },
            )
        return analysis
