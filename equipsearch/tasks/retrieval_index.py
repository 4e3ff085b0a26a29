"""BM25 retrieval index.

An inverted index over normalized document text. The structure is a plain
dataclass with a JSON-friendly dict form so that snapshots can be inspected
or reloaded without re-reading the corpus.

Main concepts:
    * :class:`BM25Config` scoring constants (``k1``, ``b``, minimum token length).
    * :class:`BM25Index` postings and statistics; :meth:`BM25Index.build` and
      :meth:`BM25Index.search`.
    * :func:`idf` Robertson-Zaragoza IDF with +1 smoothing.
    * :class:`LexicalIndex` BM25 plus the fuzzy fallback channel, queried with a
      :class:`~equipsearch.tasks.query_rewrite.QueryPlan`.
"""
from __future__ import annotations
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Tuple
import logging
import math

from equipsearch import config
from equipsearch.tasks.fuzzy_matcher import FuzzyMatcher
from equipsearch.tasks.normalization import normalize_text, tokenize
from equipsearch.tasks.query_rewrite import QueryPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BM25Config:
    """BM25 constants.

    Attributes:
        k1: Term frequency saturation.
        b: Document length normalization.
        min_token_length: Shorter tokens are not indexed nor queried.
    """
    k1: float = 1.5
    b: float = 0.75
    min_token_length: int = 2


def idf(n_docs: int, df: int) -> float:
    """``ln((N - df + 0.5) / (df + 0.5) + 1)``; zero for unseen terms."""
    if df <= 0:
        return 0.0
    return math.log((n_docs - df + 0.5) / (df + 0.5) + 1.0)


@dataclass
class BM25Index:
    """Container for BM25 corpus statistics.

    Attributes:
        doc_ids: External document id per internal index.
        doc_lengths: Token count per document.
        avg_doc_length: Mean document length.
        term_doc_freq: Term -> number of documents containing it.
        postings: Term -> {doc_index: term frequency}.
        config: Scoring constants.
    """
    doc_ids: List[str] = field(default_factory=list)
    doc_lengths: List[int] = field(default_factory=list)
    avg_doc_length: float = 0.0
    term_doc_freq: Dict[str, int] = field(default_factory=dict)
    postings: Dict[str, Dict[int, int]] = field(default_factory=dict)
    config: BM25Config = field(default_factory=BM25Config)

    @property
    def n_docs(self) -> int:
        return len(self.doc_ids)

    @classmethod
    def build(cls, documents: Iterable[Tuple[str, str]], config: BM25Config | None = None) -> "BM25Index":
        """Construct an index from ``(doc_id, normalized_text)`` pairs.

        Args:
            documents: Pairs of external id and already-normalized text.
            config: Optional scoring constants.

        Returns:
            A populated :class:`BM25Index`.
        """
        index = cls(config=config or BM25Config())
        total = 0
        for doc_idx, (doc_id, text) in enumerate(documents):
            tokens = tokenize(text)
            index.doc_ids.append(doc_id)
            index.doc_lengths.append(len(tokens))
            total += len(tokens)
            tf = Counter(t for t in tokens if len(t) >= index.config.min_token_length)
            for term, freq in tf.items():
                index.term_doc_freq[term] = index.term_doc_freq.get(term, 0) + 1
                index.postings.setdefault(term, {})[doc_idx] = freq
        index.avg_doc_length = total / index.n_docs if index.n_docs else 0.0
        return index

    def query_terms(self, query: str) -> List[str]:
        return [t for t in tokenize(query) if len(t) >= self.config.min_token_length]

    def term_score(self, term: str, doc_idx: int) -> float:
        """BM25 contribution of one term to one document."""
        freq = self.postings.get(term, {}).get(doc_idx, 0)
        if not freq:
            return 0.0
        k1, b = self.config.k1, self.config.b
        avg = self.avg_doc_length or 1.0
        denom = freq + k1 * (1 - b + b * (self.doc_lengths[doc_idx] / avg))
        return idf(self.n_docs, self.term_doc_freq.get(term, 0)) * (freq * (k1 + 1)) / denom

    def search(self, query: str, top_k: int = 10, min_score: float = 0.0) -> List[Tuple[str, float]]:
        """Score a normalized query against the index.

        Args:
            query: Normalized query text.
            top_k: Maximum results.
            min_score: Inclusive score floor.

        Returns:
            List of ``(doc_id, score)`` sorted by descending score, ties by index order.
        """
        terms = self.query_terms(query)
        if not terms or top_k <= 0:
            return []
        scores: Dict[int, float] = {}
        for term in terms:
            for doc_idx in self.postings.get(term, {}):
                scores[doc_idx] = scores.get(doc_idx, 0.0) + self.term_score(term, doc_idx)
        ranked = sorted(
            ((i, s) for i, s in scores.items() if s >= min_score),
            key=lambda x: (-x[1], x[0]),
        )
        return [(self.doc_ids[i], s) for i, s in ranked[:top_k]]

    def stats(self) -> Dict[str, Any]:
        return {
            "num_documents": self.n_docs,
            "num_terms": len(self.term_doc_freq),
            "avg_doc_length": self.avg_doc_length,
            "config": asdict(self.config),
        }

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form (postings as ``[[doc_idx, tf], ...]``)."""
        return {
            "doc_ids": list(self.doc_ids),
            "doc_lengths": list(self.doc_lengths),
            "avg_doc_length": self.avg_doc_length,
            "term_doc_freq": dict(self.term_doc_freq),
            "postings": {
                term: [[i, f] for i, f in sorted(docs.items())]
                for term, docs in self.postings.items()
            },
            "config": asdict(self.config),
            "n_docs": self.n_docs,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BM25Index":
        """Rebuild from :meth:`to_dict` output without re-tokenizing anything.

        Raises:
            ValueError: When the structure is inconsistent.
        """
        index = cls(
            doc_ids=[str(d) for d in data["doc_ids"]],
            doc_lengths=[int(n) for n in data["doc_lengths"]],
            avg_doc_length=float(data["avg_doc_length"]),
            term_doc_freq={str(t): int(df) for t, df in data["term_doc_freq"].items()},
            postings={
                str(term): {int(i): int(f) for i, f in entries}
                for term, entries in data["postings"].items()
            },
            config=BM25Config(**data.get("config", {})),
        )
        if len(index.doc_ids) != len(index.doc_lengths) or index.n_docs != int(data.get("n_docs", index.n_docs)):
            raise ValueError("BM25 snapshot is inconsistent: document counts differ")
        return index


# -----------------------------------------------------------
# Lexical channel: BM25 over every query variant + fuzzy fallback
# -----------------------------------------------------------

BM25_CHANNEL = "bm25"
FUZZY_CHANNEL = "fuzzy"


@dataclass(frozen=True)
class LexicalHit:
    id: str
    score: float
    channel: str


class LexicalIndex:
    """BM25 index paired with the fuzzy matcher built from the same corpus.

    Construct with :meth:`build` (from documents) or :meth:`restore` (from a
    snapshot); both parts are required.
    """

    def __init__(
        self,
        bm25: BM25Index,
        fuzzy: FuzzyMatcher,
        fuzzy_min_hits: int = config.FUZZY_MIN_HITS,
        fuzzy_weight: float = config.FUZZY_WEIGHT,
        enable_fuzzy: bool = config.ENABLE_FUZZY,
    ):
        if not isinstance(bm25, BM25Index) or not isinstance(fuzzy, FuzzyMatcher):
            raise ValueError("LexicalIndex needs both a BM25Index and a FuzzyMatcher")
        self.bm25 = bm25
        self.fuzzy = fuzzy
        self.fuzzy_min_hits = fuzzy_min_hits
        self.fuzzy_weight = fuzzy_weight
        self.enable_fuzzy = enable_fuzzy

    @classmethod
    def build(cls, documents: Iterable[Any], **kwargs: Any) -> "LexicalIndex":
        """Index documents exposing ``id``, ``text`` and ``title``.

        The indexed text is ``normalize_text(text or title)``.
        """
        pairs = [(str(d.id), normalize_text(d.text or d.title)) for d in documents]
        bm25 = BM25Index.build(pairs)
        fuzzy = FuzzyMatcher.from_corpus(text for _, text in pairs)
        logger.info(
            "[lexical] built | docs=%d | terms=%d | vocabulary=%d",
            bm25.n_docs, len(bm25.term_doc_freq), fuzzy.vocabulary_size,
        )
        return cls(bm25, fuzzy, **kwargs)

    @classmethod
    def restore(cls, bm25: BM25Index, fuzzy: FuzzyMatcher, **kwargs: Any) -> "LexicalIndex":
        return cls(bm25, fuzzy, **kwargs)

    def _fuzzy_terms(self, primary: str) -> List[str]:
        terms: List[str] = []
        for tok in tokenize(primary):
            if tok in self.fuzzy:
                continue
            for cand in [self.fuzzy.correct(tok), *self.fuzzy.phonetic_neighbors(tok)]:
                if cand != tok and cand not in terms:
                    terms.append(cand)
        return terms

    def search(self, plan: QueryPlan, candidate_k: int = config.CANDIDATE_K) -> List[LexicalHit]:
        """Retrieve candidates for every variant of ``plan``.

        Variant scores are scaled by the variant weight and summed per document.
        When fewer than ``fuzzy_min_hits`` documents surface, out-of-vocabulary
        primary tokens are corrected and searched at ``fuzzy_weight``.

        Returns:
            Hits sorted by descending score (discovery order on ties), at most
            ``candidate_k`` long.
        """
        scores: Dict[str, float] = {}
        channels: Dict[str, str] = {}

        for variant in plan.variants:
            for doc_id, score in self.bm25.search(variant.query, top_k=candidate_k):
                scores[doc_id] = scores.get(doc_id, 0.0) + score * variant.weight
                channels.setdefault(doc_id, BM25_CHANNEL)

        if self.enable_fuzzy and len(scores) < self.fuzzy_min_hits:
            terms = self._fuzzy_terms(plan.primary)
            for term in terms:
                for doc_id, score in self.bm25.search(term, top_k=candidate_k):
                    scores[doc_id] = scores.get(doc_id, 0.0) + score * self.fuzzy_weight
                    channels.setdefault(doc_id, FUZZY_CHANNEL)
            if terms:
                logger.debug("[lexical] fuzzy fallback | primary=%r | terms=%s", plan.primary, terms)

        order = {doc_id: i for i, doc_id in enumerate(scores)}
        ranked = sorted(scores.items(), key=lambda x: (-x[1], order[x[0]]))
        return [LexicalHit(doc_id, score, channels[doc_id]) for doc_id, score in ranked[:candidate_k]]
