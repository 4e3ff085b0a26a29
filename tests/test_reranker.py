from __future__ import annotations

import numpy as np
import pytest

from equipsearch.providers.base import CrossEncoderProvider
from equipsearch.providers.stubs import StubEmbeddingProvider
from equipsearch.query.reranker import (
    Candidate,
    RerankerConfig,
    SemanticReranker,
    apply_top1_guard,
    combine_scores,
    cosine_similarity,
    lexical_only,
    minmax,
    normalize_lexical,
)
from equipsearch.tasks.corpus import CorpusDocument
from equipsearch.tasks.domain_classification import DomainClassification
from equipsearch.tasks.taxonomy import ACESSORIO, EQUIPAMENTO, INDEFINIDO, MOP


class CountingCrossEncoder(CrossEncoderProvider):
    def __init__(self, scores=None):
        self.calls = []
        self.scores = scores

    async def score(self, query, documents):
        self.calls.append(list(documents))
        if self.scores is not None:
            return self.scores[:len(documents)]
        return [float(i) for i in range(len(documents))]


def _doc(doc_id, text, embedding=None, category="UNKNOWN", doc_type=INDEFINIDO):
    return CorpusDocument(id=doc_id, group_id=doc_id, title=text, text=text,
                          embedding=embedding, doc_category=category, doc_type=doc_type)


def test_combine_is_monotonic_in_each_signal():
    base = combine_scores(0.5, 0.5, 0.5, 0.5)
    assert combine_scores(0.6, 0.5, 0.5, 0.5) > base
    assert combine_scores(0.5, 0.6, 0.5, 0.5) > base
    assert combine_scores(0.5, 0.5, 0.6, 0.5) > base
    assert combine_scores(0.5, 0.5, 0.5, 0.6) > base
    assert combine_scores(1, 1, 1, 1) == pytest.approx(1.0)


def test_negative_weight_rejected():
    with pytest.raises(ValueError):
        RerankerConfig(w_semantic=-0.1)
    with pytest.raises(ValueError):
        RerankerConfig(w_accessory_penalty=-1)


def test_vector_helpers():
    assert cosine_similarity([1, 0], [0, 1]) == 0.0
    assert cosine_similarity([0, 0], [1, 1]) == 0.0
    assert cosine_similarity([2, 0], [1, 0]) == pytest.approx(1.0)
    with pytest.raises(ValueError):
        cosine_similarity([1, 0], [1, 0, 0])
    assert minmax([3, 3, 3]).tolist() == [0.5, 0.5, 0.5]
    assert minmax([1, 2, 3]).tolist() == [0.0, 0.5, 1.0]
    assert normalize_lexical([2, 4]).tolist() == [0.5, 1.0]
    assert normalize_lexical([0, 0]).tolist() == [0.0, 0.0]


@pytest.mark.asyncio
async def test_confident_semantic_match_skips_cross_encoder():
    cross = CountingCrossEncoder()
    reranker = SemanticReranker(StubEmbeddingProvider(fixtures={"mop": [1.0, 0.0]}), cross)
    ranked = await reranker.rerank("mop", [
        Candidate(_doc("a", "balde", [0.0, 1.0]), 4.0),
        Candidate(_doc("b", "mop", [1.0, 0.0]), 2.0),
    ])
    assert cross.calls == []
    assert [r.document.id for r in ranked] == ["b", "a"]
    assert ranked[0].breakdown.semantic == pytest.approx(1.0)
    assert ranked[0].breakdown.reranker == 0.0
    assert ranked[1].breakdown.lexical == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_uncertain_semantic_match_runs_cross_encoder_on_top_n():
    cross = CountingCrossEncoder(scores=[0.9, 0.1])
    cfg = RerankerConfig(rerank_top_n=2)
    reranker = SemanticReranker(StubEmbeddingProvider(fixtures={"mop": [1.0, 0.0]}), cross, cfg)
    ranked = await reranker.rerank("mop", [
        Candidate(_doc("low", "rodo", [0.0, 1.0]), 1.0),
        Candidate(_doc("mid", "mop balde", [0.6, 0.8]), 1.0),
        Candidate(_doc("high", "pano", [0.5, 0.5]), 1.0),
    ])
    assert len(cross.calls) == 1
    # two best semantic docs, best first
    assert cross.calls[0] == ["pano", "mop balde"]
    by_id = {r.document.id: r.breakdown for r in ranked}
    assert by_id["high"].reranker == pytest.approx(1.0)
    assert by_id["mid"].reranker == pytest.approx(0.0)
    assert by_id["low"].reranker == 0.0
    assert ranked[0].document.id == "high"


@pytest.mark.asyncio
async def test_missing_or_mismatched_embeddings_are_computed():
    embedder = StubEmbeddingProvider(fixtures={"mop": [1.0, 0.0], "mop plano": [1.0, 0.0]})
    reranker = SemanticReranker(embedder, CountingCrossEncoder())
    ranked = await reranker.rerank("mop", [
        Candidate(_doc("a", "mop plano", None), 1.0),
        Candidate(_doc("b", "mop plano", [1.0, 0.0, 0.0]), 1.0),
    ])
    assert all(r.breakdown.semantic == pytest.approx(1.0) for r in ranked)


@pytest.mark.asyncio
async def test_category_match_gives_full_domain_score():
    reranker = SemanticReranker(StubEmbeddingProvider(fixtures={"mop": [1.0, 0.0]}), CountingCrossEncoder())
    ranked = await reranker.rerank("mop", [Candidate(_doc("m", "mop", [1.0, 0.0], MOP), 1.0)], MOP)
    assert ranked[0].breakdown.domain == 1.0
    assert ranked[0].combined == pytest.approx(1.0 * 0.25 + 1.0 * 0.40 + 0.0 + 1.0 * 0.15)


@pytest.mark.asyncio
async def test_empty_candidates():
    reranker = SemanticReranker(StubEmbeddingProvider(), CountingCrossEncoder())
    assert await reranker.rerank("mop", []) == []


def test_lexical_only_uses_lexical_as_combined():
    ranked = lexical_only(
        [Candidate(_doc("a", "x"), 1.0), Candidate(_doc("b", "y"), 4.0)],
        None, DomainClassification(),
    )
    assert [r.document.id for r in ranked] == ["b", "a"]
    assert ranked[0].combined == 1.0
    assert ranked[1].combined == pytest.approx(0.25)
    assert np.isclose(ranked[1].breakdown.semantic, 0.0)


def test_accessory_penalty_only_for_equipment_queries():
    candidates = [
        Candidate(_doc("acc", "refil mop", doc_type=ACESSORIO), 4.0),
        Candidate(_doc("eq", "mop plano", doc_type=EQUIPAMENTO), 3.0),
    ]
    cfg = RerankerConfig(w_accessory_penalty=0.5)
    neutral = lexical_only(candidates, MOP, DomainClassification(), INDEFINIDO, cfg)
    assert [r.document.id for r in neutral] == ["acc", "eq"]
    penalized = lexical_only(candidates, MOP, DomainClassification(), EQUIPAMENTO, cfg)
    assert [r.document.id for r in penalized] == ["eq", "acc"]
    assert penalized[1].combined == pytest.approx(0.5)
    assert penalized[1].breakdown.lexical == 1.0


@pytest.mark.asyncio
async def test_rerank_penalizes_accessories_for_equipment_intent():
    reranker = SemanticReranker(StubEmbeddingProvider(fixtures={"mop": [1.0, 0.0]}), CountingCrossEncoder())
    docs = [Candidate(_doc("acc", "refil mop", [1.0, 0.0], MOP, ACESSORIO), 1.0)]
    plain = await reranker.rerank("mop", docs, MOP)
    equipment = await reranker.rerank("mop", docs, MOP, query_intent=EQUIPAMENTO)
    assert equipment[0].combined == pytest.approx(plain[0].combined - reranker.cfg.w_accessory_penalty)


def test_top1_guard_promotes_first_equipment():
    ranked = lexical_only(
        [
            Candidate(_doc("acc", "refil mop", doc_type=ACESSORIO), 5.0),
            Candidate(_doc("other", "balde", doc_type=INDEFINIDO), 4.0),
            Candidate(_doc("eq", "mop plano", doc_type=EQUIPAMENTO), 3.0),
        ],
        None, DomainClassification(),
    )
    guarded, applied = apply_top1_guard(ranked, EQUIPAMENTO)
    assert applied
    assert [r.document.id for r in guarded] == ["eq", "acc", "other"]
    assert [r.document.id for r in ranked] == ["acc", "other", "eq"]

    for intent in (ACESSORIO, INDEFINIDO, None):
        assert apply_top1_guard(ranked, intent) == (ranked, False)


def test_top1_guard_needs_an_equipment_candidate():
    ranked = lexical_only(
        [Candidate(_doc("acc", "refil mop", doc_type=ACESSORIO), 2.0),
         Candidate(_doc("acc2", "cabo mop", doc_type=ACESSORIO), 1.0)],
        None, DomainClassification(),
    )
    assert apply_top1_guard(ranked, EQUIPAMENTO) == (ranked, False)
    assert apply_top1_guard([], EQUIPAMENTO) == ([], False)
