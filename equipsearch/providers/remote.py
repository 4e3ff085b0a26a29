"""Hugging Face Inference API providers over ``httpx.AsyncClient``.

Both providers raise :class:`ProviderConfigError` at construction when the
API key or URL is missing, and :class:`ProviderResponseError` when a payload
cannot be turned into one value per input.
"""
from __future__ import annotations
from typing import Any, List, Optional, Sequence
import logging
import time

import httpx
import numpy as np

from equipsearch import config
from equipsearch.providers.base import (
    CrossEncoderProvider,
    EmbeddingProvider,
    ProviderConfigError,
    ProviderResponseError,
)

logger = logging.getLogger(__name__)

CROSS_ENCODER_BATCH_SIZE = 16
RELEVANT_LABELS = ("LABEL_1", "relevant", "1")


class _HuggingFaceClient:
    """Shared HTTP plumbing for the two remote providers."""

    def __init__(
        self,
        api_key: str,
        api_url: str,
        timeout_s: float,
        client: Optional[httpx.AsyncClient],
    ):
        if not api_key:
            raise ProviderConfigError("HF_API_KEY is required for the hf provider")
        if not api_url:
            raise ProviderConfigError("HF_API_URL is required for the hf provider")
        self.api_url = api_url.rstrip("/")
        self.headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_s)

    async def post(self, endpoint: str, payload: dict) -> Any:
        t0 = time.perf_counter()
        response = await self.client.post(endpoint, json=payload, headers=self.headers)
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(f"non-JSON response from {endpoint}") from e
        logger.debug("[hf] %s | %.1f ms", endpoint, (time.perf_counter() - t0) * 1000.0)
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def normalize_embedding_response(data: Any, expected: int) -> List[List[float]]:
    """Turn a feature-extraction payload into ``expected`` sentence vectors.

    * 3-D (per-token vectors per input): mean-pooled over tokens
    * 2-D: one vector per input
    * 1-D: a single vector
    """
    if not isinstance(data, list) or not data:
        raise ProviderResponseError("empty or non-list embedding response")

    first = data[0]
    if isinstance(first, list) and first and isinstance(first[0], list):
        try:
            vectors = [np.asarray(tokens, dtype="float64").mean(axis=0).tolist() for tokens in data]
        except (ValueError, TypeError) as e:
            raise ProviderResponseError(f"malformed token embeddings: {e}") from e
    elif isinstance(first, list):
        vectors = data
    elif _is_number(first):
        vectors = [data]
    else:
        raise ProviderResponseError(f"unexpected embedding response element: {type(first).__name__}")

    out: List[List[float]] = []
    for vec in vectors:
        if not isinstance(vec, list) or not vec or not all(_is_number(v) for v in vec):
            raise ProviderResponseError("embedding vector is empty or non-numeric")
        out.append([float(v) for v in vec])
    if len(out) != expected:
        raise ProviderResponseError(f"expected {expected} embeddings, got {len(out)}")
    return out


def _label_score(item: Any) -> float:
    if isinstance(item, list):
        labelled = [x for x in item if isinstance(x, dict) and _is_number(x.get("score"))]
        if not labelled:
            raise ProviderResponseError("classification result without scores")
        for x in labelled:
            if str(x.get("label")) in RELEVANT_LABELS:
                return float(x["score"])
        return float(max(x["score"] for x in labelled))
    if isinstance(item, dict) and _is_number(item.get("score")):
        return float(item["score"])
    if _is_number(item):
        return float(item)
    raise ProviderResponseError(f"unexpected cross-encoder result: {item!r}")


def parse_cross_encoder_scores(data: Any, expected: int) -> List[float]:
    """Extract one relevance score per pair from a text-classification payload."""
    if _is_number(data):
        scores = [float(data)]
    elif isinstance(data, list) and data:
        if expected == 1 and all(isinstance(x, dict) for x in data):
            # single pair answered with its label list
            scores = [_label_score(data)]
        else:
            scores = [_label_score(item) for item in data]
    else:
        raise ProviderResponseError("empty or unexpected cross-encoder response")
    if len(scores) != expected:
        raise ProviderResponseError(f"expected {expected} scores, got {len(scores)}")
    return scores


class RemoteEmbeddingProvider(EmbeddingProvider):
    name = "hf"

    def __init__(
        self,
        api_key: str = config.HF_API_KEY,
        api_url: str = config.HF_API_URL,
        model: str = config.HF_EMBEDDINGS_MODEL,
        dimension: int = config.STUB_EMBED_DIM,
        timeout_s: float = config.HF_TIMEOUT_S,
        batch_size: int = config.EMBED_BATCH_SIZE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._http = _HuggingFaceClient(api_key, api_url, timeout_s, client)
        self.model = model
        self.batch_size = batch_size
        self._dimension = dimension
        self.endpoint = f"{self._http.api_url}/pipeline/feature-extraction/{model}"

    @property
    def dimension(self) -> int:
        return self._dimension

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        data = await self._http.post(
            self.endpoint, {"inputs": texts, "options": {"wait_for_model": True}}
        )
        vectors = normalize_embedding_response(data, len(texts))
        self._dimension = len(vectors[0])
        return vectors

    async def aclose(self) -> None:
        await self._http.aclose()


class RemoteCrossEncoderProvider(CrossEncoderProvider):
    name = "hf"

    def __init__(
        self,
        api_key: str = config.HF_API_KEY,
        api_url: str = config.HF_API_URL,
        model: str = config.HF_CROSS_ENCODER_MODEL,
        timeout_s: float = config.HF_TIMEOUT_S,
        batch_size: int = CROSS_ENCODER_BATCH_SIZE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._http = _HuggingFaceClient(api_key, api_url, timeout_s, client)
        self.model = model
        self.batch_size = batch_size
        self.endpoint = f"{self._http.api_url}/models/{model}"

    async def score(self, query: str, documents: Sequence[str]) -> List[float]:
        documents = list(documents)
        scores: List[float] = []
        for start in range(0, len(documents), self.batch_size):
            batch = documents[start:start + self.batch_size]
            payload = {
                "inputs": [{"text": query, "text_pair": doc} for doc in batch],
                "options": {"wait_for_model": True},
            }
            data = await self._http.post(self.endpoint, payload)
            scores.extend(parse_cross_encoder_scores(data, len(batch)))
        return scores

    async def aclose(self) -> None:
        await self._http.aclose()
