"""Semantic reranking of lexical candidates.

Each candidate gets four sub-scores in ``[0, 1]``:

    lexical   BM25 score / best BM25 score in the candidate set
    semantic  cosine(query embedding, document embedding), clamped
    reranker  min-max normalized cross-encoder score (lazy, top-N only)
    domain    category match, else domain compatibility

and a weighted ``combined`` score used as the sort key.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import time

import numpy as np

from equipsearch import config
from equipsearch.providers.base import CrossEncoderProvider, EmbeddingProvider
from equipsearch.tasks.corpus import CorpusDocument
from equipsearch.tasks.domain_classification import DomainClassification, compute_domain_score
from equipsearch.tasks.taxonomy import ACESSORIO, EQUIPAMENTO, UNKNOWN

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RerankerConfig:
    """Weights and lazy-rerank thresholds.

    Raises:
        ValueError: If any weight is negative.
    """
    w_lexical: float = config.W_LEXICAL
    w_semantic: float = config.W_SEMANTIC
    w_reranker: float = config.W_RERANKER
    w_domain: float = config.W_DOMAIN
    w_accessory_penalty: float = config.W_ACCESSORY_PENALTY
    confidence_threshold: float = config.SEMANTIC_CONFIDENCE_THRESHOLD
    rerank_top_n: int = config.RERANK_TOP_N

    def __post_init__(self):
        for name in ("w_lexical", "w_semantic", "w_reranker", "w_domain", "w_accessory_penalty"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")


@dataclass(frozen=True)
class ScoreBreakdown:
    lexical: float
    semantic: float
    reranker: float
    domain: float
    combined: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "lexical": round(self.lexical, 6),
            "semantic": round(self.semantic, 6),
            "reranker": round(self.reranker, 6),
            "domain": round(self.domain, 6),
            "combined": round(self.combined, 6),
        }


@dataclass(frozen=True)
class Candidate:
    """Lexical candidate handed to the reranker."""
    document: CorpusDocument
    lexical_score: float
    channel: str = "bm25"


@dataclass
class RankedCandidate:
    document: CorpusDocument
    breakdown: ScoreBreakdown
    channel: str = "bm25"
    debug: Dict[str, float] = field(default_factory=dict)

    @property
    def combined(self) -> float:
        return self.breakdown.combined


def combine_scores(lexical: float, semantic: float, reranker: float, domain: float,
                   cfg: RerankerConfig | None = None) -> float:
    """Weighted sum of the four sub-scores."""
    cfg = cfg or RerankerConfig()
    return (
        cfg.w_lexical * lexical
        + cfg.w_semantic * semantic
        + cfg.w_reranker * reranker
        + cfg.w_domain * domain
    )


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0 for zero vectors.

    Raises:
        ValueError: On dimension mismatch.
    """
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")
    if va.shape != vb.shape:
        raise ValueError(f"vector dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")
    na, nb = np.linalg.norm(va), np.linalg.norm(vb)
    if na == 0 or nb == 0:
        return 0.0
    return float(va.dot(vb) / (na * nb))


def minmax(x: Sequence[float]) -> np.ndarray:
    """Min-max scale to ``[0, 1]``; a constant input maps to 0.5."""
    arr = np.asarray(x, dtype="float64")
    if arr.size == 0:
        return arr
    lo, hi = float(arr.min()), float(arr.max())
    if hi - lo < 1e-9:
        return np.full_like(arr, 0.5)
    return (arr - lo) / (hi - lo)


def normalize_lexical(scores: Sequence[float]) -> np.ndarray:
    arr = np.asarray(scores, dtype="float64")
    if arr.size == 0:
        return arr
    top = float(arr.max())
    return arr / top if top > 0 else np.zeros_like(arr)


def domain_score(doc: CorpusDocument, query_category: Optional[str],
                 query_domain: DomainClassification) -> float:
    if query_category and query_category != UNKNOWN and doc.doc_category == query_category:
        return 1.0
    return compute_domain_score(query_domain, doc.domain)


def accessory_penalty(doc: CorpusDocument, query_intent: Optional[str]) -> float:
    """1.0 for an accessory document when the query asks for the equipment itself."""
    return 1.0 if query_intent == EQUIPAMENTO and doc.doc_type == ACESSORIO else 0.0


def penalized(combined: float, doc: CorpusDocument, query_intent: Optional[str],
              cfg: RerankerConfig | None = None) -> float:
    cfg = cfg or RerankerConfig()
    return max(0.0, combined - cfg.w_accessory_penalty * accessory_penalty(doc, query_intent))


def apply_top1_guard(ranked: List[RankedCandidate], query_intent: Optional[str]) -> Tuple[List[RankedCandidate], bool]:
    """Promote the first equipment document when an accessory leads an equipment query.

    Returns:
        ``(ranked, applied)``; the input list is not modified.
    """
    if query_intent != EQUIPAMENTO or not ranked or ranked[0].document.doc_type != ACESSORIO:
        return ranked, False
    idx = next((i for i, r in enumerate(ranked) if r.document.doc_type == EQUIPAMENTO), -1)
    if idx == -1:
        return ranked, False
    return [ranked[idx]] + ranked[:idx] + ranked[idx + 1:], True


def semantic_text(doc: CorpusDocument) -> str:
    return doc.semantic_text or doc.text or doc.title


def lexical_only(
    candidates: Sequence[Candidate],
    query_category: Optional[str],
    query_domain: DomainClassification,
    query_intent: Optional[str] = None,
    cfg: RerankerConfig | None = None,
) -> List[RankedCandidate]:
    """Fallback ranking: ``combined = lexical`` (less the accessory penalty), semantic and reranker at 0."""
    lex = normalize_lexical([c.lexical_score for c in candidates])
    out = []
    for c, lx in zip(candidates, lex):
        lx = float(lx)
        out.append(RankedCandidate(
            document=c.document,
            breakdown=ScoreBreakdown(
                lx, 0.0, 0.0, domain_score(c.document, query_category, query_domain),
                penalized(lx, c.document, query_intent, cfg),
            ),
            channel=c.channel,
        ))
    order = sorted(range(len(out)), key=lambda i: -out[i].combined)
    return [out[i] for i in order]


class SemanticReranker:
    """Combines lexical, embedding, cross-encoder and domain signals.

    Provider failures propagate; the engine decides on the fallback.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        cross_encoder_provider: CrossEncoderProvider,
        cfg: RerankerConfig | None = None,
    ):
        self.embedding_provider = embedding_provider
        self.cross_encoder_provider = cross_encoder_provider
        self.cfg = cfg or RerankerConfig()

    async def _semantic_scores(self, query: str, docs: List[CorpusDocument]) -> np.ndarray:
        qvec = await self.embedding_provider.embed_query(query)
        dim = len(qvec)
        vectors: List[Optional[List[float]]] = [
            d.embedding if d.embedding is not None and len(d.embedding) == dim else None
            for d in docs
        ]
        missing = [i for i, v in enumerate(vectors) if v is None]
        if missing:
            computed = await self.embedding_provider.embed_documents([semantic_text(docs[i]) for i in missing])
            for i, vec in zip(missing, computed):
                vectors[i] = vec
        sims = [cosine_similarity(qvec, v) for v in vectors]
        return np.clip(np.asarray(sims, dtype="float64"), 0.0, 1.0)

    async def _reranker_scores(self, query: str, docs: List[CorpusDocument],
                               semantic: np.ndarray) -> np.ndarray:
        scores = np.zeros(len(docs), dtype="float64")
        if semantic.size == 0 or float(semantic.max()) >= self.cfg.confidence_threshold:
            return scores
        top_n = max(0, min(self.cfg.rerank_top_n, len(docs)))
        order = sorted(range(len(docs)), key=lambda i: -semantic[i])[:top_n]
        if not order:
            return scores
        raw = await self.cross_encoder_provider.score(query, [semantic_text(docs[i]) for i in order])
        if len(raw) != len(order):
            raise ValueError(f"cross-encoder returned {len(raw)} scores for {len(order)} documents")
        scores[order] = minmax(raw)
        return scores

    async def rerank(
        self,
        query: str,
        candidates: Sequence[Candidate],
        query_category: Optional[str] = None,
        query_domain: Optional[DomainClassification] = None,
        query_intent: Optional[str] = None,
    ) -> List[RankedCandidate]:
        """Score and sort ``candidates`` (given in lexical order).

        Args:
            query: Normalized query text.
            candidates: Lexical candidates, best first.
            query_category: Taxonomy category of the query.
            query_domain: Domain classification of the query.
            query_intent: ``EQUIPAMENTO`` penalizes accessory documents.

        Returns:
            Candidates sorted by combined score, descending; ties keep lexical order.
        """
        if not candidates:
            return []
        query_domain = query_domain or DomainClassification()
        docs = [c.document for c in candidates]
        timings: Dict[str, float] = {}

        t = time.perf_counter()
        lexical = normalize_lexical([c.lexical_score for c in candidates])
        semantic = await self._semantic_scores(query, docs)
        timings["semantic_ms"] = (time.perf_counter() - t) * 1000.0

        t = time.perf_counter()
        reranker = await self._reranker_scores(query, docs, semantic)
        timings["reranker_ms"] = (time.perf_counter() - t) * 1000.0

        ranked: List[RankedCandidate] = []
        for i, c in enumerate(candidates):
            lx, sm, rr = float(lexical[i]), float(semantic[i]), float(reranker[i])
            dm = domain_score(c.document, query_category, query_domain)
            ranked.append(RankedCandidate(
                document=c.document,
                breakdown=ScoreBreakdown(
                    lx, sm, rr, dm,
                    penalized(combine_scores(lx, sm, rr, dm, self.cfg), c.document, query_intent, self.cfg),
                ),
                channel=c.channel,
            ))

        logger.debug(
            "[rerank] n=%d | top_semantic=%.3f | semantic=%.1fms | reranker=%.1fms",
            len(ranked), float(semantic.max()), timings["semantic_ms"], timings["reranker_ms"],
        )
        order = sorted(range(len(ranked)), key=lambda i: -ranked[i].combined)
        return [ranked[i] for i in order]
