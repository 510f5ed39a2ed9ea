from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from prononce.contracts import RecognizedWord

SINGLE_WORD_FLUENCY = 90  # fewer than two words: not measurable
NO_SPAN_FLUENCY = 80

# pause_ratio * PAUSE_RATIO_SLOPE >= 1 scores 0, i.e. ratio ceiling of 2/3
PAUSE_RATIO_SLOPE = 1.5

# (max pause above seconds, penalty), longest first
LONG_PAUSE_PENALTIES: tuple[tuple[float, int], ...] = (
    (1.5, 15),
    (1.0, 8),
    (0.5, 3),
)


@dataclass(frozen=True)
class PauseStats:
    total_pause: float
    max_pause: float
    span: float

    @property
    def pause_ratio(self) -> float:
        return self.total_pause / self.span if self.span > 0 else 0.0


def pause_stats(words: Sequence[RecognizedWord]) -> PauseStats:
    total = 0.0
    longest = 0.0
    for prev, cur in zip(words, words[1:]):
        gap = float(cur.start) - float(prev.end)
        if gap > 0:
            total += gap
            longest = max(longest, gap)
    span = float(words[-1].end) - float(words[0].start) if words else 0.0
    return PauseStats(total_pause=total, max_pause=longest, span=span)


def long_pause_penalty(max_pause: float) -> int:
    for threshold, penalty in LONG_PAUSE_PENALTIES:
        if max_pause > threshold:
            return penalty
    return 0


def fluency_score(words: Sequence[RecognizedWord]) -> int:
    if len(words) < 2:
        return SINGLE_WORD_FLUENCY

    stats = pause_stats(words)
    if stats.span <= 0:
        return NO_SPAN_FLUENCY

    base = max(0, min(100, round((1.0 - stats.pause_ratio * PAUSE_RATIO_SLOPE) * 100)))
    return max(0, min(100, base - long_pause_penalty(stats.max_pause)))
