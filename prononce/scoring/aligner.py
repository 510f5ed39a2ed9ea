"""Word-level alignment of expected text against recognizer output."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from prononce.contracts import AlignedWordPair
from prononce.scoring.text import comparison_tokens, similarity

MATCH_SIMILARITY = 80
PARTIAL_SIMILARITY = 50


@dataclass(frozen=True)
class _Token:
    text: str
    owner: int  # index of the word the token came from


def substitution_cost(a: str, b: str) -> float:
    sim = similarity(a, b)
    if sim >= MATCH_SIMILARITY:
        return 0.0
    if sim >= PARTIAL_SIMILARITY:
        return 0.5
    return 1.0


def _explode(words: Sequence[str]) -> List[_Token]:
    out: List[_Token] = []
    for idx, word in enumerate(words):
        for tok in comparison_tokens(word):
            out.append(_Token(text=tok, owner=idx))
    return out


def align_tokens(
    ref: Sequence[str], hyp: Sequence[str]
) -> List[Tuple[str, Optional[int], Optional[int]]]:
    """Edit-distance alignment with similarity-weighted substitution cost.

    Returns the minimum-cost path as (op, ref_index, hyp_index) tuples,
    op in {"sub", "del", "ins"}. "sub" covers exact matches as well.
    On equal cost, substitution wins over deletion, deletion over insertion.
    """
    n, m = len(ref), len(hyp)
    dp = [[0.0] * (m + 1) for _ in range(n + 1)]
    back: List[List[str]] = [[""] * (m + 1) for _ in range(n + 1)]

    for i in range(1, n + 1):
        dp[i][0] = float(i)
        back[i][0] = "del"
    for j in range(1, m + 1):
        dp[0][j] = float(j)
        back[0][j] = "ins"

    for i in range(1, n + 1):
        for j in range(1, m + 1):
            candidates = (
                (dp[i - 1][j - 1] + substitution_cost(ref[i - 1], hyp[j - 1]), "sub"),
                (dp[i - 1][j] + 1.0, "del"),
                (dp[i][j - 1] + 1.0, "ins"),
            )
            best_cost, best_op = min(candidates, key=lambda c: c[0])
            dp[i][j] = best_cost
            back[i][j] = best_op

    ops: List[Tuple[str, Optional[int], Optional[int]]] = []
    i, j = n, m
    while i > 0 or j > 0:
        op = back[i][j]
        if op == "sub":
            ops.append(("sub", i - 1, j - 1))
            i -= 1
            j -= 1
        elif op == "del":
            ops.append(("del", i - 1, None))
            i -= 1
        else:
            ops.append(("ins", None, j - 1))
            j -= 1
    ops.reverse()
    return ops


def align(expected_words: Sequence[str], recognized_words: Sequence[str]) -> List[AlignedWordPair]:
    """
    Map every expected (display-form) word to zero-or-one stretch of recognized text.

    Apostrophes split words into comparison tokens on both sides; the token path is
    folded back so the output has exactly one entry per expected word, in expected order.
    Extra recognized words are dropped.
    """
    ref = _explode(expected_words)
    hyp = _explode(recognized_words)

    matched: List[List[_Token]] = [[] for _ in expected_words]
    for op, ri, hj in align_tokens([t.text for t in ref], [t.text for t in hyp]):
        if op == "sub" and ri is not None and hj is not None:
            matched[ref[ri].owner].append(hyp[hj])

    out: List[AlignedWordPair] = []
    for idx, word in enumerate(expected_words):
        toks = matched[idx]
        if not toks:
            out.append(AlignedWordPair(expected_word=word))
            continue
        out.append(
            AlignedWordPair(
                expected_word=word,
                matched_word=" ".join(t.text for t in toks),
                matched_word_index=toks[0].owner,
            )
        )
    return out
