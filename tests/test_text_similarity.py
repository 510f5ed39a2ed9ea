from __future__ import annotations

from prononce.scoring.text import (
    compact,
    comparison_tokens,
    normalize_for_comparison,
    normalize_for_display,
    similarity,
    tokenize,
)


def test_similarity_identity_and_empty() -> None:
    assert similarity("bonjour", "bonjour") == 100
    assert similarity("", "") == 100
    assert similarity("abc", "") == 0


def test_similarity_is_character_level_percentage() -> None:
    # one substitution out of four characters
    assert similarity("chat", "chut") == 75
    assert similarity("mappelle", "mapel") == 62


def test_normalize_for_comparison_strips_accents_punct_and_apostrophes() -> None:
    assert normalize_for_comparison("  L’École, c'est génial !  ") == "l ecole c est genial"


def test_normalize_for_display_keeps_accents_and_apostrophes() -> None:
    assert normalize_for_display("Je m’appelle   Hélène.") == "je m'appelle hélène"
    assert normalize_for_display("« 'bonjour' »") == "bonjour"


def test_tokens_and_compact_forms() -> None:
    assert tokenize("a  b c") == ["a", "b", "c"]
    assert comparison_tokens("m'appelle") == ["m", "appelle"]
    assert compact("m'appelle") == "mappelle"
    assert compact("Où ?") == "ou"
