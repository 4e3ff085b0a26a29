"""Shared fixtures: a small cleaning-equipment corpus and deterministic providers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from equipsearch.providers.stubs import StubCrossEncoderProvider, StubEmbeddingProvider
from equipsearch.query.cache import SearchCache
from equipsearch.query.engine import BuildFromDocuments, EngineConfig, IntegratedSearchEngine
from equipsearch.tasks.abbreviations import AbbrevCompiled, reset_abbreviation_store
from equipsearch.tasks.corpus import parse_corpus, reset_corpus_store

CORPUS = {
    "metadata": {"version": "test"},
    "corpus": [
        {"id": "mop-1", "groupId": "g-mop-plano", "title": "Mop Plano 40cm",
         "text": "mop plano 40cm microfibra", "metrics": {"valorUnitario": {"display": 89.9, "n": 3}}},
        {"id": "mop-2", "groupId": "g-mop-plano", "title": "Mop Plano 60cm",
         "text": "mop plano 60cm microfibra", "price": 119.0},
        {"id": "mop-3", "groupId": "g-mop-giratorio", "title": "Mop Giratorio com Balde",
         "text": "mop giratorio com balde centrifuga"},
        {"id": "mop-4", "groupId": "g-refil", "title": "Refil Mop Umido",
         "text": "refil para mop umido algodao"},
        {"id": "vas-1", "groupId": "g-vassoura-piacava", "title": "Vassoura de Piacava",
         "text": "vassoura de piacava cabo madeira"},
        {"id": "vas-2", "groupId": "g-vassoura-nylon", "title": "Vassoura Nylon",
         "text": "vassoura nylon cerdas macias"},
        {"id": "asp-1", "groupId": "g-aspirador", "title": "Aspirador de Po e Agua 1400W",
         "text": "aspirador de po e agua 1400w industrial"},
        {"id": "lav-1", "groupId": "g-lavadora", "title": "Lavadora de Alta Pressao",
         "text": "lavadora de alta pressao 1800 libras"},
        {"id": "bal-1", "groupId": "g-balde", "title": "Balde Espremedor 20 Litros",
         "text": "balde espremedor 20 litros"},
        {"id": "cel-1", "groupId": "g-celular", "title": "Celular Android",
         "text": "celular android para supervisao"},
    ],
}


@pytest.fixture(autouse=True)
def _reset_stores():
    reset_corpus_store()
    reset_abbreviation_store()
    yield
    reset_corpus_store()
    reset_abbreviation_store()


@pytest.fixture
def corpus_raw():
    return json.loads(json.dumps(CORPUS))


@pytest.fixture
def documents(corpus_raw):
    return parse_corpus(corpus_raw)


@pytest.fixture
def corpus_file(tmp_path: Path, corpus_raw) -> Path:
    path = tmp_path / "corpus.json"
    path.write_text(json.dumps(corpus_raw), encoding="utf-8")
    return path


@pytest.fixture
def abbreviations():
    return AbbrevCompiled.from_dict({
        "exactMap": {"lav alta pressao": "lavadora de alta pressao", "mop": "mop plano"},
        "tokenMap": {"asp": "aspirador"},
        "expandMap": {"mop": ["mop plano", "mop giratorio", "refil mop"]},
    })


@pytest.fixture
def engine_config():
    return EngineConfig(timeout_ms=2000, debug_return=False)


@pytest.fixture
def engine(documents, abbreviations, engine_config):
    return IntegratedSearchEngine(
        BuildFromDocuments(documents),
        config=engine_config,
        embedding_provider=StubEmbeddingProvider(),
        cross_encoder_provider=StubCrossEncoderProvider(),
        abbreviations=abbreviations,
        cache=SearchCache(),
    )
