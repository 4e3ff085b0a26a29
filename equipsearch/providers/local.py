# equipsearch/providers/local.py
from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional, Sequence

import numpy as np
import torch
from sentence_transformers import CrossEncoder, SentenceTransformer

from equipsearch import config
from equipsearch.providers.base import CrossEncoderProvider, EmbeddingProvider

logger = logging.getLogger(__name__)


def _device() -> str:
    return "cuda" if torch.cuda.is_available() else "cpu"


def sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


class LocalEmbeddingProvider(EmbeddingProvider):
    """SentenceTransformer on the local GPU when available, CPU otherwise.

    Encoding runs in a worker thread so the event loop stays responsive.
    """

    name = "local"

    def __init__(self, model_name: str = config.EMBED_MODEL, device: Optional[str] = None,
                 batch_size: int = config.EMBED_BATCH_SIZE):
        self.model_name = model_name
        self.device = device or _device()
        self.batch_size = batch_size
        t0 = time.perf_counter()
        self.model = SentenceTransformer(model_name, device=self.device)
        logger.info(
            "Embedding model loaded | %.3fs | device=%s | model=%s",
            time.perf_counter() - t0, self.device, model_name,
        )

    @property
    def dimension(self) -> int:
        return int(self.model.get_sentence_embedding_dimension())

    def _encode(self, texts: List[str]) -> List[List[float]]:
        vecs = self.model.encode(
            texts, normalize_embeddings=True, convert_to_numpy=True, batch_size=self.batch_size
        )
        return vecs.astype("float32").tolist()

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        return await asyncio.to_thread(self._encode, texts)


class LocalCrossEncoderProvider(CrossEncoderProvider):
    """sentence-transformers CrossEncoder; logits are squashed to [0, 1]."""

    name = "local"

    def __init__(self, model_name: str = config.RERANKER_MODEL, device: Optional[str] = None):
        self.model_name = model_name
        self.device = device or _device()
        t0 = time.perf_counter()
        self.model = CrossEncoder(model_name, device=self.device)
        logger.info(
            "Cross-encoder loaded | %.3fs | device=%s | model=%s",
            time.perf_counter() - t0, self.device, model_name,
        )

    def _predict(self, query: str, documents: List[str]) -> List[float]:
        pairs = [(query, doc) for doc in documents]
        logits = np.asarray(self.model.predict(pairs), dtype="float32").reshape(-1)
        return sigmoid(logits).tolist()

    async def score(self, query: str, documents: Sequence[str]) -> List[float]:
        documents = list(documents)
        if not documents:
            return []
        return await asyncio.to_thread(self._predict, query, documents)
