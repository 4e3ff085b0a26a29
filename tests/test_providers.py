from __future__ import annotations

import json
import math

import httpx
import pytest

from equipsearch.providers.base import ProviderConfigError, ProviderResponseError
from equipsearch.providers.factory import create_cross_encoder_provider, create_embedding_provider
from equipsearch.providers.remote import (
    RemoteCrossEncoderProvider,
    RemoteEmbeddingProvider,
    normalize_embedding_response,
    parse_cross_encoder_scores,
)
from equipsearch.providers.stubs import (
    NoopCrossEncoderProvider,
    StubCrossEncoderProvider,
    StubEmbeddingProvider,
)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# -----------------------------------------------------------
# Response normalization
# -----------------------------------------------------------

def test_token_embeddings_are_mean_pooled():
    data = [[[1.0, 3.0], [3.0, 5.0]], [[0.0, 0.0], [2.0, 2.0]]]
    assert normalize_embedding_response(data, 2) == [[2.0, 4.0], [1.0, 1.0]]


def test_sentence_and_flat_embeddings():
    assert normalize_embedding_response([[0.1, 0.2], [0.3, 0.4]], 2) == [[0.1, 0.2], [0.3, 0.4]]
    assert normalize_embedding_response([0.5, 1], 1) == [[0.5, 1.0]]


@pytest.mark.parametrize("data,expected", [
    ([], 1),
    ({"error": "loading"}, 1),
    ([[0.1, "x"]], 1),
    ([[0.1], [0.2]], 3),
    (["a"], 1),
])
def test_unusable_embedding_payloads_raise(data, expected):
    with pytest.raises(ProviderResponseError):
        normalize_embedding_response(data, expected)


def test_cross_encoder_label_parsing():
    labelled = [
        [{"label": "LABEL_0", "score": 0.1}, {"label": "LABEL_1", "score": 0.9}],
        [{"label": "other", "score": 0.3}, {"label": "x", "score": 0.6}],
    ]
    assert parse_cross_encoder_scores(labelled, 2) == [0.9, 0.6]
    assert parse_cross_encoder_scores([{"label": "LABEL_1", "score": 0.7}], 1) == [0.7]
    assert parse_cross_encoder_scores([0.2, 0.4], 2) == [0.2, 0.4]
    assert parse_cross_encoder_scores(0.8, 1) == [0.8]


def test_cross_encoder_count_mismatch_raises():
    with pytest.raises(ProviderResponseError):
        parse_cross_encoder_scores([0.1, 0.2], 3)
    with pytest.raises(ProviderResponseError):
        parse_cross_encoder_scores({"error": "x"}, 1)


# -----------------------------------------------------------
# Remote providers over a mocked transport
# -----------------------------------------------------------

def test_missing_credentials_raise_config_error():
    with pytest.raises(ProviderConfigError):
        RemoteEmbeddingProvider(api_key="", api_url="https://hf.example")
    with pytest.raises(ProviderConfigError):
        RemoteCrossEncoderProvider(api_key="k", api_url="")


@pytest.mark.asyncio
async def test_remote_embedding_request_and_batching():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append((request.url.path, request.headers["Authorization"], body["inputs"]))
        return httpx.Response(200, json=[[float(len(t)), 1.0] for t in body["inputs"]])

    provider = RemoteEmbeddingProvider(
        api_key="k", api_url="https://hf.example/", model="org/model",
        batch_size=2, client=_client(handler),
    )
    vectors = await provider.embed_documents(["a", "bb", "ccc"])
    assert vectors == [[1.0, 1.0], [2.0, 1.0], [3.0, 1.0]]
    assert [s[2] for s in seen] == [["a", "bb"], ["ccc"]]
    assert seen[0][0] == "/pipeline/feature-extraction/org/model"
    assert seen[0][1] == "Bearer k"
    assert provider.dimension == 2


@pytest.mark.asyncio
async def test_remote_embedding_http_error_propagates():
    provider = RemoteEmbeddingProvider(
        api_key="k", api_url="https://hf.example",
        client=_client(lambda request: httpx.Response(503, json={"error": "loading"})),
    )
    with pytest.raises(httpx.HTTPStatusError):
        await provider.embed_query("mop")


@pytest.mark.asyncio
async def test_remote_cross_encoder_sends_pairs_in_batches():
    sizes = []

    def handler(request: httpx.Request) -> httpx.Response:
        pairs = json.loads(request.content)["inputs"]
        sizes.append(len(pairs))
        assert all(p["text"] == "mop" for p in pairs)
        return httpx.Response(200, json=[[{"label": "LABEL_1", "score": 0.5}] for _ in pairs])

    provider = RemoteCrossEncoderProvider(api_key="k", api_url="https://hf.example", client=_client(handler))
    scores = await provider.score("mop", [f"doc {i}" for i in range(20)])
    assert sizes == [16, 4]
    assert scores == [0.5] * 20


# -----------------------------------------------------------
# Stubs and factory
# -----------------------------------------------------------

@pytest.mark.asyncio
async def test_stub_embeddings_are_deterministic_unit_vectors():
    provider = StubEmbeddingProvider(dimension=16)
    a = await provider.embed_query("Mop Plano")
    b = await provider.embed_query("mop plano")
    c = await provider.embed_query("vassoura")
    assert a == b
    assert a != c
    assert math.isclose(sum(x * x for x in a), 1.0, rel_tol=1e-9)


@pytest.mark.asyncio
async def test_stub_fixtures_and_chunking_keep_order():
    provider = StubEmbeddingProvider(fixtures={"mop": [1.0, 0.0], "balde": [0.0, 1.0]})
    provider.batch_size = 1
    vectors = await provider.embed_documents(["balde", "mop", "rodo"])
    assert vectors == [[0.0, 1.0], [1.0, 0.0], [0.0, 0.0]]
    assert provider.dimension == 2


@pytest.mark.asyncio
async def test_stub_cross_encoders():
    stub = StubCrossEncoderProvider()
    scores = await stub.score("mop plano", ["mop plano", "mop giratorio", "balde"])
    assert scores[0] == pytest.approx(1.0)
    assert scores[1] == pytest.approx(0.5)
    assert scores[2] == 0.0
    fixed = StubCrossEncoderProvider(fixtures={("Mop", "Balde"): 0.9})
    assert await fixed.score("mop", ["balde", "rodo"]) == [0.9, 0.0]
    assert await NoopCrossEncoderProvider().score("q", ["a", "b"]) == [0.5, 0.5]


def test_factory_modes():
    assert isinstance(create_embedding_provider("mock", dimension=8), StubEmbeddingProvider)
    assert isinstance(create_cross_encoder_provider("none"), NoopCrossEncoderProvider)
    assert isinstance(create_cross_encoder_provider(" MOCK "), StubCrossEncoderProvider)
    with pytest.raises(ProviderConfigError):
        create_embedding_provider("none")
    with pytest.raises(ProviderConfigError):
        create_cross_encoder_provider("bogus")
