from __future__ import annotations

import pytest

from equipsearch.tasks.fuzzy_matcher import (
    FuzzyConfig,
    FuzzyMatcher,
    find_best_fuzzy_match,
    similarity_ratio,
)


@pytest.fixture
def matcher():
    return FuzzyMatcher.from_corpus(["vassoura de piacava", "mop plano microfibra", "aspirador industrial"])


def test_vocabulary_keeps_tokens_of_three_chars_or_more(matcher):
    assert "de" not in matcher
    assert "mop" in matcher
    assert matcher.vocabulary == sorted(matcher.vocabulary)


def test_similarity_ratio():
    assert similarity_ratio("vassoura", "vassoura") == 1.0
    assert similarity_ratio("vasoura", "vassoura") == pytest.approx(1 - 1 / 8)
    assert similarity_ratio("", "") == 1.0


def test_correct_fixes_close_typos(matcher):
    assert matcher.correct("vasoura") == "vassoura"
    assert matcher.correct("Aspiradr") == "aspirador"


def test_correct_leaves_known_short_and_distant_tokens(matcher):
    assert matcher.correct("plano") == "plano"
    assert matcher.correct("mpo") == "mpo"
    assert matcher.correct("xyzwq") == "xyzwq"


def test_find_best_respects_thresholds():
    cfg = FuzzyConfig(max_distance=1, min_similarity=0.9)
    assert find_best_fuzzy_match("vasoura", ["vassoura"], cfg) is None
    match = find_best_fuzzy_match("vasoura", ["vassoura"])
    assert match == ("vassoura", pytest.approx(0.875))


def test_correct_query_reports_corrections(matcher):
    corrected, corrections = matcher.correct_query("vasoura plano")
    assert corrected == "vassoura plano"
    assert corrections == {"vasoura": "vassoura"}


def test_phonetic_neighbors_share_consonant_key(matcher):
    assert matcher.phonetic_neighbors("vassoara") == ["vassoura"]
    assert matcher.phonetic_neighbors("vassoura") == []
    assert matcher.phonetic_neighbors("mup") == []


def test_dict_roundtrip(matcher):
    restored = FuzzyMatcher.from_dict(matcher.to_dict())
    assert restored.vocabulary == matcher.vocabulary
    assert restored.signatures == matcher.signatures
    assert restored.correct("vasoura") == "vassoura"


def test_correct_query_keeps_protected_and_digit_tokens(matcher):
    assert matcher.correct_query("vasoura plano", protected={"vasoura"}) == ("vasoura plano", {})
    corrected, corrections = matcher.correct_query("vassoura2 aspiradr")
    assert corrected == "vassoura2 aspirador"
    assert corrections == {"aspiradr": "aspirador"}
