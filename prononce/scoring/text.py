from __future__ import annotations

import re
import unicodedata
from typing import List

import Levenshtein

_APOSTROPHES = re.compile(r"['’ʼ]")
_PUNCT = re.compile(r"[.,!?;:\"«»\-—–()\[\]…]")
_SPACES = re.compile(r"\s+")


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_for_comparison(text: str) -> str:
    """Lowercase, apostrophes -> spaces, punctuation and accents stripped, spaces collapsed."""
    out = (text or "").lower()
    out = _APOSTROPHES.sub(" ", out)
    out = _PUNCT.sub("", out)
    out = _strip_accents(out)
    return _SPACES.sub(" ", out).strip()


def normalize_for_display(text: str) -> str:
    """Same as the comparison form but keeps accents and apostrophes (l'école stays one word)."""
    out = (text or "").lower()
    out = _APOSTROPHES.sub("'", out)
    out = _PUNCT.sub("", out)
    out = _SPACES.sub(" ", out).strip()
    # Drop apostrophes left dangling at word edges by stripped quotes.
    return " ".join(w.strip("'") for w in out.split(" ") if w.strip("'"))


def tokenize(text: str) -> List[str]:
    return [t for t in (text or "").split(" ") if t]


def comparison_tokens(word: str) -> List[str]:
    return tokenize(normalize_for_comparison(word))


def compact(text: str) -> str:
    """Comparison form without any separators, used for whole-word scoring."""
    return normalize_for_comparison(text).replace(" ", "")


def similarity(a: str, b: str) -> int:
    """Character-level similarity in percent: 1 - lev(a, b) / max(len(a), len(b))."""
    if a == b:
        return 100
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100
    return round((max_len - Levenshtein.distance(a, b)) / max_len * 100)
