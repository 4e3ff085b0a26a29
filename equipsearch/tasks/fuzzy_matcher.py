"""Typo tolerance for the lexical channel.

:class:`FuzzyMatcher` keeps the corpus vocabulary (tokens with 3+ chars) and
two ways of reaching it from a misspelled query token:

    * Levenshtein correction with distance and similarity thresholds.
    * Consonant-signature buckets (``consonant_key``) for phonetic-ish variants.
"""
from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from equipsearch.tasks.normalization import consonant_key, tokenize

MIN_VOCAB_TOKEN_LENGTH = 3


@dataclass(frozen=True)
class FuzzyConfig:
    """Thresholds for fuzzy correction.

    Attributes:
        max_distance: Maximum Levenshtein distance accepted.
        min_similarity: Minimum ``1 - distance / max_len``.
        min_query_length: Shorter tokens are never corrected.
    """
    max_distance: int = 2
    min_similarity: float = 0.75
    min_query_length: int = 4


def similarity_ratio(a: str, b: str) -> float:
    """``1 - levenshtein(a, b) / max(len(a), len(b))`` (1.0 for two empty strings)."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / max_len


def find_best_fuzzy_match(
    token: str,
    candidates: Iterable[str],
    config: FuzzyConfig | None = None,
) -> Optional[Tuple[str, float]]:
    """Best candidate passing both thresholds.

    Args:
        token: Lowercased token to correct.
        candidates: Vocabulary to search, in a stable order.
        config: Thresholds.

    Returns:
        ``(match, similarity)`` or ``None``. The first of equally good
        candidates wins.
    """
    cfg = config or FuzzyConfig()
    if len(token) < cfg.min_query_length:
        return None
    best: Optional[str] = None
    best_score = 0.0
    for cand in candidates:
        dist = Levenshtein.distance(token, cand, score_cutoff=cfg.max_distance)
        if dist > cfg.max_distance:
            continue
        ratio = 1.0 - dist / max(len(token), len(cand))
        if ratio >= cfg.min_similarity and ratio > best_score:
            best, best_score = cand, ratio
    return (best, best_score) if best is not None else None


@dataclass
class FuzzyMatcher:
    """Vocabulary-backed corrector.

    Attributes:
        vocabulary: Sorted unique tokens.
        signatures: Consonant key -> tokens sharing it.
        config: Correction thresholds.
    """
    vocabulary: List[str] = field(default_factory=list)
    signatures: Dict[str, List[str]] = field(default_factory=dict)
    config: FuzzyConfig = field(default_factory=FuzzyConfig)

    def __post_init__(self) -> None:
        self._vocab_set = set(self.vocabulary)

    @classmethod
    def from_vocabulary(cls, words: Iterable[str], config: FuzzyConfig | None = None) -> "FuzzyMatcher":
        vocab = sorted({w.lower() for w in words if w})
        signatures: Dict[str, List[str]] = {}
        for w in vocab:
            key = consonant_key(w)
            if key:
                signatures.setdefault(key, []).append(w)
        return cls(vocabulary=vocab, signatures=signatures, config=config or FuzzyConfig())

    @classmethod
    def from_corpus(cls, texts: Iterable[str], config: FuzzyConfig | None = None) -> "FuzzyMatcher":
        """Build from normalized document texts, keeping tokens of 3+ chars."""
        words = (t for text in texts for t in tokenize(text) if len(t) >= MIN_VOCAB_TOKEN_LENGTH)
        return cls.from_vocabulary(words, config)

    @property
    def vocabulary_size(self) -> int:
        return len(self.vocabulary)

    def __contains__(self, token: str) -> bool:
        return token in self._vocab_set

    def correct(self, token: str) -> str:
        """Return the corrected token, or the token itself when no good match exists."""
        lower = token.lower()
        if lower in self._vocab_set or len(lower) < self.config.min_query_length:
            return lower
        match = find_best_fuzzy_match(lower, self.vocabulary, self.config)
        return match[0] if match else lower

    def correct_query(self, query: str, protected: Iterable[str] = ()) -> Tuple[str, Dict[str, str]]:
        """Correct every token of a normalized query.

        Tokens listed in ``protected`` and tokens containing digits (model
        numbers, measures) are kept as they are.

        Returns:
            ``(corrected_query, {original_token: corrected_token})``.
        """
        keep = set(protected)
        corrections: Dict[str, str] = {}
        out: List[str] = []
        for tok in tokenize(query.lower()):
            if tok in keep or any(ch.isdigit() for ch in tok):
                out.append(tok)
                continue
            fixed = self.correct(tok)
            out.append(fixed)
            if fixed != tok:
                corrections[tok] = fixed
        return " ".join(out), corrections

    def phonetic_neighbors(self, token: str) -> List[str]:
        """Vocabulary tokens sharing the consonant signature of ``token``."""
        lower = token.lower()
        if len(lower) < self.config.min_query_length:
            return []
        return [w for w in self.signatures.get(consonant_key(lower), []) if w != lower]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vocabulary": list(self.vocabulary),
            "signatures": {k: list(v) for k, v in self.signatures.items()},
            "config": asdict(self.config),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FuzzyMatcher":
        vocab = [str(w) for w in data["vocabulary"]]
        signatures = data.get("signatures")
        if signatures is None:
            return cls.from_vocabulary(vocab, FuzzyConfig(**data.get("config", {})))
        return cls(
            vocabulary=vocab,
            signatures={str(k): [str(w) for w in v] for k, v in signatures.items()},
            config=FuzzyConfig(**data.get("config", {})),
        )
