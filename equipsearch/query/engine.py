"""Integrated search engine.

Pipeline per query::

    normalize -> cache -> fuzzy correction -> rewrite (variants)
      -> intent / navigation window -> lexical retrieval (BM25 + fuzzy channel)
      -> semantic rerank -> top-1 equipment guard -> subtype diversification
      -> cache -> slice / filter -> telemetry

Semantic failures (timeout, provider error) fall back to the lexical ranking
and are flagged on the response; they never discard lexical candidates.
"""
from __future__ import annotations
from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import asyncio
import logging
import time

from equipsearch import config
from equipsearch.metrics import JsonlLogger, StageTimer, safe_log_query
from equipsearch.providers.base import CrossEncoderProvider, EmbeddingProvider
from equipsearch.providers.factory import create_cross_encoder_provider, create_embedding_provider
from equipsearch.query.cache import SearchCache
from equipsearch.query.reranker import (
    Candidate,
    RankedCandidate,
    RerankerConfig,
    ScoreBreakdown,
    SemanticReranker,
    apply_top1_guard,
    lexical_only,
)
from equipsearch.tasks.abbreviations import AbbrevCompiled
from equipsearch.tasks.corpus import CorpusDocument
from equipsearch.tasks.diversify import DiversifyDocInput, diversify
from equipsearch.tasks.domain_classification import classify_text
from equipsearch.tasks.fuzzy_matcher import FuzzyMatcher
from equipsearch.tasks.normalization import normalize_text
from equipsearch.tasks.query_rewrite import QueryPlan, RewriteOptions, rewrite_query
from equipsearch.tasks.retrieval_index import BM25Index, LexicalHit, LexicalIndex
from equipsearch.tasks.taxonomy import (
    UNKNOWN,
    build_navigation_intent_context,
    detect_category,
    detect_query_intent,
    is_navigation_intent,
)

logger = logging.getLogger(__name__)

FALLBACK_TIMEOUT = "timeout"
FALLBACK_ERROR = "error"


# -----------------------------------------------------------
# Index sources
# -----------------------------------------------------------

@dataclass(frozen=True)
class BuildFromDocuments:
    """Index ``documents`` from scratch."""
    documents: Sequence[CorpusDocument]


@dataclass(frozen=True)
class RestoreFromSnapshot:
    """Reuse a restored index; ``documents`` is only a payload catalog."""
    bm25: BM25Index
    fuzzy: FuzzyMatcher
    documents: Sequence[CorpusDocument] = ()


IndexSource = Union[BuildFromDocuments, RestoreFromSnapshot]


# -----------------------------------------------------------
# Configuration and contract
# -----------------------------------------------------------

@dataclass(frozen=True)
class EngineConfig:
    candidate_k: int = config.CANDIDATE_K
    rerank_candidates: int = config.RERANK_CANDIDATES
    max_top_k: int = config.MAX_TOP_K
    max_batch_size: int = config.MAX_BATCH_SIZE
    max_suggestions: int = config.MAX_SUGGESTIONS
    timeout_ms: float = config.SEARCH_TIMEOUT_MS
    max_per_subtype: int = config.MAX_PER_SUBTYPE
    min_category_coverage: int = config.MIN_CATEGORY_COVERAGE
    debug_return: bool = config.DEBUG_RETURN
    nav_intent: bool = config.ENABLE_NAV_INTENT
    top1_equipment_guard: bool = config.ENABLE_TOP1_EQUIPMENT_GUARD
    reranker: RerankerConfig = field(default_factory=RerankerConfig)
    rewrite: RewriteOptions = field(default_factory=RewriteOptions)


@dataclass(frozen=True)
class SearchOptions:
    top_k: int = 10
    min_score: float = 0.0
    use_cache: bool = True
    timeout_ms: Optional[float] = None


@dataclass(frozen=True)
class SearchResultItem:
    document: Mapping[str, Any]
    combined_score: float
    score_breakdown: ScoreBreakdown
    normalized_score: float
    suggested_related: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document": dict(self.document),
            "combined_score": round(self.combined_score, 6),
            "score_breakdown": self.score_breakdown.to_dict(),
            "normalized_score": round(self.normalized_score, 6),
            "suggested_related": [dict(s) for s in self.suggested_related],
        }


@dataclass
class SearchResponse:
    query: str
    normalized_query: str
    results: List[SearchResultItem] = field(default_factory=list)
    total: int = 0
    fallback: bool = False
    fallback_reason: Optional[str] = None
    debug: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "query": self.query,
            "normalized_query": self.normalized_query,
            "results": [r.to_dict() for r in self.results],
            "total": self.total,
            "fallback": self.fallback,
            "fallback_reason": self.fallback_reason,
        }
        if self.debug is not None:
            out["_debug"] = self.debug
        return out


def _clamp(value, lo, hi):
    return max(lo, min(hi, value))


# -----------------------------------------------------------
# Engine
# -----------------------------------------------------------

class IntegratedSearchEngine:
    """Read-mostly search orchestrator.

    Args:
        source: :class:`BuildFromDocuments` or :class:`RestoreFromSnapshot`.
        config: Engine tuning; defaults come from the environment.
        embedding_provider: Defaults to the factory's configured mode.
        cross_encoder_provider: Defaults to the factory's configured mode.
        abbreviations: Compiled abbreviation maps, ``None`` for passthrough.
        cache: Result cache; a fresh :class:`SearchCache` when omitted.
        query_logger: Optional JSONL telemetry sink.

    Raises:
        TypeError: If ``source`` is not one of the two source types.
    """

    def __init__(
        self,
        source: IndexSource,
        *,
        config: Optional[EngineConfig] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        cross_encoder_provider: Optional[CrossEncoderProvider] = None,
        abbreviations: Optional[AbbrevCompiled] = None,
        cache: Optional[SearchCache] = None,
        query_logger: Optional[JsonlLogger] = None,
    ):
        self.config = config or EngineConfig()
        if isinstance(source, BuildFromDocuments):
            documents = list(source.documents)
            self.index = LexicalIndex.build(documents)
            self.source_kind = "build"
        elif isinstance(source, RestoreFromSnapshot):
            documents = list(source.documents)
            self.index = LexicalIndex.restore(source.bm25, source.fuzzy)
            self.source_kind = "restore"
        else:
            raise TypeError(
                f"source must be BuildFromDocuments or RestoreFromSnapshot, got {type(source).__name__}"
            )

        self.documents: Dict[str, CorpusDocument] = {d.id: d for d in documents}
        self.groups: Dict[str, List[CorpusDocument]] = {}
        for d in documents:
            self.groups.setdefault(d.group_id, []).append(d)

        self.embedding_provider = embedding_provider or create_embedding_provider()
        self.cross_encoder_provider = cross_encoder_provider or create_cross_encoder_provider()
        self.reranker = SemanticReranker(
            self.embedding_provider, self.cross_encoder_provider, self.config.reranker
        )
        self.abbreviations = abbreviations
        self.cache = cache if cache is not None else SearchCache()
        self.query_logger = query_logger

        logger.info(
            "Search engine ready | source=%s | indexed=%d | catalog=%d | abbrev=%s",
            self.source_kind, self.index.bm25.n_docs, len(self.documents),
            "yes" if abbreviations is not None else "no",
        )

    # ----- accessors

    def get_indexes(self) -> Tuple[BM25Index, FuzzyMatcher]:
        return self.index.bm25, self.index.fuzzy

    def stats(self) -> Dict[str, Any]:
        return {
            "source": self.source_kind,
            "documents": len(self.documents),
            "bm25": self.index.bm25.stats(),
            "vocabulary_size": self.index.fuzzy.vocabulary_size,
            "cache": self.cache.stats(),
            "abbreviations_loaded": self.abbreviations is not None,
        }

    # ----- pipeline pieces

    def _plan(self, query: str, normalized: str) -> Tuple[QueryPlan, Dict[str, str]]:
        """Correct typos against the vocabulary, then rewrite."""
        corrections: Dict[str, str] = {}
        if self.index.enable_fuzzy:
            protected = set()
            if self.abbreviations is not None:
                if normalized in self.abbreviations.exact_map:
                    return rewrite_query(query, self.abbreviations, self.config.rewrite), corrections
                protected = set(self.abbreviations.token_map) | set(self.abbreviations.expand_map)
            corrected, corrections = self.index.fuzzy.correct_query(normalized, protected=protected)
            if corrections:
                return rewrite_query(corrected, self.abbreviations, self.config.rewrite), corrections
        return rewrite_query(query, self.abbreviations, self.config.rewrite), corrections

    def _candidate_window(self, navigation: bool) -> Tuple[int, int]:
        """(candidate_k, rerank_candidates), widened for navigation queries."""
        candidate_k, rerank_n = self.config.candidate_k, self.config.rerank_candidates
        if navigation and self.config.nav_intent:
            widened = _clamp(
                self.config.max_top_k * config.NAV_CANDIDATE_MULT,
                config.NAV_CANDIDATE_MIN,
                config.NAV_CANDIDATE_MAX,
            )
            candidate_k, rerank_n = max(candidate_k, widened), max(rerank_n, widened)
        return candidate_k, rerank_n

    def _document_for(self, doc_id: str) -> CorpusDocument:
        doc = self.documents.get(doc_id)
        if doc is not None:
            return doc
        # restored index without a catalog entry: id-only payload
        return CorpusDocument(id=doc_id, group_id=doc_id, title=doc_id)

    def _candidates(self, hits: Sequence[LexicalHit]) -> List[Candidate]:
        return [Candidate(self._document_for(h.id), h.score, h.channel) for h in hits]

    def _suggestions(self, doc: CorpusDocument) -> List[Dict[str, Any]]:
        out = []
        for sib in self.groups.get(doc.group_id, []):
            if sib.id == doc.id:
                continue
            out.append({"id": sib.id, "title": sib.display_title, "price": sib.price})
            if len(out) >= self.config.max_suggestions:
                break
        return out

    def _diversify(self, ranked: List[RankedCandidate], query_category: str) -> List[RankedCandidate]:
        by_id = {r.document.id: r for r in ranked}
        inputs = [
            DiversifyDocInput(
                id=r.document.id,
                title=r.document.title,
                group_id=r.document.group_id,
                equipment_id=r.document.equipment_id,
                doc_category=r.document.doc_category,
                rank_score=r.combined,
            )
            for r in ranked
        ]
        result = diversify(
            inputs,
            query_category=query_category,
            top_k=self.config.max_top_k,
            max_per_subtype=self.config.max_per_subtype,
            min_category_coverage=self.config.min_category_coverage,
        )
        return [by_id[d.id] for d in result.selected]

    def _items(self, ranked: List[RankedCandidate]) -> List[SearchResultItem]:
        top = max((r.combined for r in ranked), default=0.0)
        return [
            SearchResultItem(
                document=MappingProxyType(r.document.to_payload()),
                combined_score=r.combined,
                score_breakdown=r.breakdown,
                normalized_score=(r.combined / top) if top > 0 else 0.0,
                suggested_related=self._suggestions(r.document),
            )
            for r in ranked
        ]

    # ----- public API

    async def search(self, query: str, options: Optional[SearchOptions] = None) -> SearchResponse:
        """Run the full pipeline for one query.

        Args:
            query: Free-text query.
            options: ``top_k`` (clamped to ``[1, max_top_k]``), ``min_score``
                (clamped to ``[0, 1]``), cache bypass and timeout override.

        Returns:
            :class:`SearchResponse`; an empty normalized query yields no results.
        """
        opts = options or SearchOptions()
        top_k = _clamp(int(opts.top_k), 1, self.config.max_top_k)
        min_score = _clamp(float(opts.min_score), 0.0, 1.0)
        timeout_ms = opts.timeout_ms if opts.timeout_ms is not None else self.config.timeout_ms

        t0 = time.perf_counter()
        timings: Dict[str, float] = {}
        normalized = normalize_text(query)
        if not normalized:
            return SearchResponse(query=query, normalized_query="")

        items: Optional[List[SearchResultItem]] = None
        cache_hit = False
        if opts.use_cache:
            items = self.cache.get(normalized)
            cache_hit = items is not None

        fallback, reason = False, None
        plan: Optional[QueryPlan] = None
        intent: Optional[str] = None
        navigation: Optional[bool] = None
        corrections: Dict[str, str] = {}
        candidate_k: Optional[int] = None
        guard_applied = False
        if items is None:
            with StageTimer("rewrite", timings=timings):
                plan, corrections = self._plan(query, normalized)

            intent = detect_query_intent(normalized)[0]
            navigation = is_navigation_intent(build_navigation_intent_context(query))
            candidate_k, rerank_n = self._candidate_window(navigation)

            with StageTimer("lexical", timings=timings):
                hits = self.index.search(plan, candidate_k)
                candidates = self._candidates(hits[:rerank_n])

            query_category = detect_category(normalized)
            if query_category == UNKNOWN:
                query_category = detect_category(plan.primary)
            query_domain = classify_text(normalized)
            rcfg = self.config.reranker

            with StageTimer("rerank", timings=timings):
                if not candidates:
                    ranked: List[RankedCandidate] = []
                elif not self.documents:
                    ranked = lexical_only(candidates, query_category, query_domain, intent, rcfg)
                else:
                    try:
                        ranked = await asyncio.wait_for(
                            self.reranker.rerank(plan.primary, candidates, query_category, query_domain, intent),
                            timeout=timeout_ms / 1000.0,
                        )
                    except asyncio.TimeoutError:
                        logger.warning("Semantic rerank timed out after %.0f ms | q=%r", timeout_ms, query)
                        fallback, reason = True, FALLBACK_TIMEOUT
                    except Exception as e:
                        logger.warning("Semantic rerank failed (%s: %s) | q=%r", type(e).__name__, e, query)
                        fallback, reason = True, FALLBACK_ERROR
                    if fallback:
                        ranked = lexical_only(candidates, query_category, query_domain, intent, rcfg)

            if self.config.top1_equipment_guard:
                ranked, guard_applied = apply_top1_guard(ranked, intent)

            with StageTimer("diversify", timings=timings):
                ranked = self._diversify(ranked, query_category)
                items = self._items(ranked)

            if opts.use_cache and not fallback:
                self.cache.set(normalized, items)

        results = [it for it in items[:top_k] if it.combined_score >= min_score]
        timings["total_ms"] = round((time.perf_counter() - t0) * 1000.0, 3)

        debug = None
        if self.config.debug_return:
            debug = {
                "cache_hit": cache_hit,
                "timings": timings,
                "variants": [asdict(v) for v in plan.variants] if plan else None,
                "corrections": corrections,
                "candidate_k": candidate_k,
                "top1_guard_applied": guard_applied,
            }

        safe_log_query(self.query_logger, {
            "q": query,
            "normalized": normalized,
            "top_k": top_k,
            "n_results": len(results),
            "fallback": fallback,
            "fallback_reason": reason,
            "cache_hit": cache_hit,
            "variants": len(plan.variants) if plan else None,
            "used_expand_map": plan.used_expand_map if plan else None,
            "corrections": corrections,
            "intent": intent,
            "navigation_intent": navigation,
            "candidate_k": candidate_k,
            "top1_guard_applied": guard_applied,
            "timings": timings,
        })

        return SearchResponse(
            query=query,
            normalized_query=normalized,
            results=results,
            total=len(results),
            fallback=fallback,
            fallback_reason=reason,
            debug=debug,
        )

    async def search_batch(self, queries: Sequence[str], options: Optional[SearchOptions] = None) -> List[SearchResponse]:
        """Run :meth:`search` for each query, sequentially.

        Raises:
            ValueError: For an empty batch or one above ``max_batch_size``.
        """
        if not queries:
            raise ValueError("queries must not be empty")
        if len(queries) > self.config.max_batch_size:
            raise ValueError(f"at most {self.config.max_batch_size} queries per batch, got {len(queries)}")
        return [await self.search(q, options) for q in queries]

    async def aclose(self) -> None:
        await self.embedding_provider.aclose()
        await self.cross_encoder_provider.aclose()
