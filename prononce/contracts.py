from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np


class EngineUnavailable(RuntimeError):
    """A recognition or pitch model failed to load or run. Non-fatal for a recording."""


@dataclass(frozen=True)
class AudioFrame:
    """
    Raw PCM16 audio frame captured from a live source (e.g., microphone).
    pcm16: little-endian signed 16-bit PCM bytes (interleaved if channels > 1).
    """
    pcm16: bytes
    sample_rate: int
    channels: int
    start_time: float  # seconds since capture start
    duration: float    # seconds

    def samples(self) -> np.ndarray:
        """Mono float32 samples in [-1, 1] (first channel only)."""
        data = np.frombuffer(self.pcm16, dtype="<i2")
        if self.channels > 1:
            data = data[:: self.channels]
        return data.astype(np.float32) / 32768.0


@dataclass(frozen=True)
class PitchPoint:
    time: float     # seconds since capture start
    pitch: float    # Hz
    clarity: float  # 0..1


@dataclass(frozen=True)
class RecognizedWord:
    word: str
    confidence: float
    start: float
    end: float


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    words: tuple[RecognizedWord, ...] = ()


class TranscriptSource(str, Enum):
    FINAL = "final"
    PARTIAL_FALLBACK = "partial_fallback"
    ENGINE_FAILED = "engine_failed"
    NONE = "none"


@dataclass(frozen=True)
class RecordingResult:
    transcript: str
    words: tuple[RecognizedWord, ...]
    blob: Optional[bytes]
    pitch_contour: tuple[PitchPoint, ...]
    transcript_source: TranscriptSource = TranscriptSource.NONE

    @classmethod
    def empty(cls) -> "RecordingResult":
        return cls(transcript="", words=(), blob=None, pitch_contour=())

    @property
    def has_speech(self) -> bool:
        return bool(self.transcript.strip())


@dataclass(frozen=True)
class AlignedWordPair:
    expected_word: str               # display form
    matched_word: str = ""           # "" when the expected word was not recognized
    matched_word_index: Optional[int] = None


class ScoreBand(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class WordResult:
    word: str
    score: int
    confidence: float
    band: ScoreBand


@dataclass(frozen=True)
class PronunciationAnalysis:
    overall_score: int
    overall_band: ScoreBand
    word_results: tuple[WordResult, ...]
    accuracy_score: int
    confidence_score: int
    intonation_score: int
    fluency_score: int

    kind = "base"

    @property
    def has_speech_data(self) -> bool:
        return False


@dataclass(frozen=True)
class TextOnlyAnalysis(PronunciationAnalysis):
    """Scored from the transcript alone; intonation and fluency are neutral defaults."""

    kind = "text_only"


@dataclass(frozen=True)
class SpeechDataAnalysis(PronunciationAnalysis):
    """Scored with recognizer word timing/confidence and/or a usable pitch contour."""

    recognized_words: tuple[RecognizedWord, ...] = ()
    pitch_points: int = 0

    kind = "speech_data"

    @property
    def has_speech_data(self) -> bool:
        return True


def analysis_to_dict(analysis: PronunciationAnalysis) -> dict[str, object]:
    out: dict[str, object] = {
        "kind": analysis.kind,
        "overall_score": analysis.overall_score,
        "overall_band": analysis.overall_band.value,
        "accuracy_score": analysis.accuracy_score,
        "confidence_score": analysis.confidence_score,
        "intonation_score": analysis.intonation_score,
        "fluency_score": analysis.fluency_score,
        "word_results": [
            {
                "word": w.word,
                "score": w.score,
                "confidence": round(float(w.confidence), 3),
                "band": w.band.value,
            }
            for w in analysis.word_results
        ],
    }
    if isinstance(analysis, SpeechDataAnalysis):
        out["pitch_points"] = analysis.pitch_points
        out["recognized_words"] = [
            {"word": w.word, "confidence": w.confidence, "start": w.start, "end": w.end}
            for w in analysis.recognized_words
        ]
    return out
