from __future__ import annotations

import asyncio
import json

import pytest

from equipsearch.tasks import corpus as corpus_mod
from equipsearch.tasks.corpus import (
    PERCENT,
    CorpusLoadError,
    CorpusStore,
    parse_corpus,
    parse_document,
    read_corpus_file,
    write_corpus_file,
)
from equipsearch.tasks.taxonomy import MOP, UNKNOWN, VASSOURA


def test_metrics_object_takes_precedence(documents):
    mop1 = documents[0]
    assert mop1.price == pytest.approx(89.9)
    assert mop1.metrics.valor_unitario.sample_count == 3


def test_legacy_fields_fill_metrics():
    doc = parse_document({
        "id": "x", "text": "mop plano",
        "price": "1.234,56", "lifespanMonths": 12, "maintenancePercent": 5,
    })
    assert doc.price == pytest.approx(1234.56)
    assert doc.lifespan_months == 12.0
    assert doc.metrics.manutencao.unit == PERCENT
    assert doc.maintenance_percent == 5.0


def test_maintenance_fraction_is_reported_as_percent():
    doc = parse_document({
        "id": "x", "text": "mop", "metrics": {"manutencao": {"display": 0.05}},
    })
    assert doc.maintenance_percent == pytest.approx(5.0)


def test_category_is_detected_or_kept(documents):
    by_id = {d.id: d for d in documents}
    assert by_id["mop-1"].doc_category == MOP
    assert by_id["vas-1"].doc_category == VASSOURA
    assert by_id["bal-1"].doc_category == UNKNOWN
    kept = parse_document({"id": "y", "text": "balde", "docCategory": MOP})
    assert kept.doc_category == MOP


def test_group_defaults_to_id():
    doc = parse_document({"id": "solo", "title": "Rodo"})
    assert doc.group_id == "solo"
    assert doc.display_title == "Rodo"


def test_invalid_embedding_is_dropped():
    doc = parse_document({"id": "e", "text": "mop", "embedding": [0.1, "x"]})
    assert doc.embedding is None
    ok = parse_document({"id": "e", "text": "mop", "embedding": [1, 0.5]})
    assert ok.embedding == [1.0, 0.5]


@pytest.mark.parametrize("raw", [
    [],
    {"corpus": "nope"},
    {"corpus": [{"id": "a", "text": "x"}, {"id": "a", "text": "y"}]},
    {"corpus": [{"id": "b"}]},
    {"corpus": [{"text": "orphan"}]},
])
def test_bad_corpus_raises(raw):
    with pytest.raises(CorpusLoadError):
        parse_corpus(raw)


def test_missing_file_raises(tmp_path):
    with pytest.raises(CorpusLoadError, match="not found"):
        read_corpus_file(tmp_path / "missing.json")


def test_payload_uses_public_field_names(documents):
    payload = documents[0].to_payload()
    assert payload["groupId"] == "g-mop-plano"
    assert payload["docCategory"] == MOP
    assert payload["price"] == pytest.approx(89.9)
    assert "embedding" not in payload


def test_write_then_read_keeps_documents(tmp_path, documents):
    path = write_corpus_file(tmp_path / "out" / "corpus.json", documents, {"v": 1})
    again = read_corpus_file(path)
    assert [d.id for d in again] == [d.id for d in documents]
    assert again[0].price == documents[0].price
    assert json.loads(path.read_text(encoding="utf-8"))["metadata"] == {"v": 1}


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_read(corpus_file, monkeypatch):
    calls = []
    real = corpus_mod.read_corpus_file

    def counting(path):
        calls.append(path)
        return real(path)

    monkeypatch.setattr(corpus_mod, "read_corpus_file", counting)
    store = CorpusStore(corpus_file)
    results = await asyncio.gather(*(store.load() for _ in range(5)))
    assert len(calls) == 1
    assert all(r is results[0] for r in results)
    assert store.by_id("mop-2").title == "Mop Plano 60cm"
    assert [d.id for d in store.by_group("g-mop-plano")] == ["mop-1", "mop-2"]
    assert store.stats()["document_count"] == 10


@pytest.mark.asyncio
async def test_failed_load_can_be_retried(tmp_path, corpus_raw):
    path = tmp_path / "corpus.json"
    store = CorpusStore(path)
    with pytest.raises(CorpusLoadError):
        await store.load()
    assert not store.loaded
    path.write_text(json.dumps(corpus_raw), encoding="utf-8")
    docs = await store.load()
    assert len(docs) == 10


def test_documents_before_load_raises(corpus_file):
    with pytest.raises(RuntimeError):
        CorpusStore(corpus_file).documents


@pytest.mark.parametrize("n, expected", [("tres", 1), ("2,5", 2), ("1e400", 1), (0, 1), ("7", 7)])
def test_sample_count_tolerates_odd_values(n, expected):
    docs = parse_corpus({"corpus": [
        {"id": "a", "text": "mop", "metrics": {"valorUnitario": {"display": 1, "n": n}}},
    ]})
    assert docs[0].metrics.valor_unitario.sample_count == expected
