"""Deterministic providers for tests, demos and offline runs."""
from __future__ import annotations
from typing import Dict, List, Mapping, Optional, Sequence
import hashlib

import numpy as np

from equipsearch import config
from equipsearch.providers.base import CrossEncoderProvider, EmbeddingProvider
from equipsearch.tasks.normalization import normalize_text, tokenize


class StubEmbeddingProvider(EmbeddingProvider):
    """Hash-seeded unit vectors, or a fixture map keyed by normalized text.

    With a fixture map, unknown texts embed to the zero vector.
    """

    name = "mock"

    def __init__(
        self,
        dimension: int = config.STUB_EMBED_DIM,
        fixtures: Optional[Mapping[str, Sequence[float]]] = None,
    ):
        self._dimension = dimension
        self.fixtures: Optional[Dict[str, List[float]]] = None
        if fixtures is not None:
            self.fixtures = {normalize_text(k): [float(x) for x in v] for k, v in fixtures.items()}
            if self.fixtures:
                self._dimension = len(next(iter(self.fixtures.values())))

    @property
    def dimension(self) -> int:
        return self._dimension

    def vector_for(self, text: str) -> List[float]:
        key = normalize_text(text)
        if self.fixtures is not None:
            return list(self.fixtures.get(key, [0.0] * self._dimension))
        seed = int.from_bytes(hashlib.sha256(key.encode("utf-8")).digest()[:8], "big")
        vec = np.random.default_rng(seed).standard_normal(self._dimension)
        norm = float(np.linalg.norm(vec)) or 1.0
        return (vec / norm).tolist()

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [self.vector_for(t) for t in texts]


class StubCrossEncoderProvider(CrossEncoderProvider):
    """Token-overlap F1 between query and document, or fixture scores.

    Fixtures are keyed by ``(normalized query, normalized document)``.
    """

    name = "mock"

    def __init__(self, fixtures: Optional[Mapping[tuple, float]] = None):
        self.fixtures = (
            {(normalize_text(q), normalize_text(d)): float(s) for (q, d), s in fixtures.items()}
            if fixtures is not None else None
        )

    @staticmethod
    def overlap_f1(query: str, document: str) -> float:
        q = set(tokenize(normalize_text(query)))
        d = set(tokenize(normalize_text(document)))
        common = len(q & d)
        if not common:
            return 0.0
        precision = common / len(d)
        recall = common / len(q)
        return 2 * precision * recall / (precision + recall)

    async def score(self, query: str, documents: Sequence[str]) -> List[float]:
        if self.fixtures is not None:
            nq = normalize_text(query)
            return [self.fixtures.get((nq, normalize_text(d)), 0.0) for d in documents]
        return [self.overlap_f1(query, d) for d in documents]


class NoopCrossEncoderProvider(CrossEncoderProvider):
    """Neutral scorer used when cross-encoding is disabled."""

    name = "none"

    async def score(self, query: str, documents: Sequence[str]) -> List[float]:
        return [0.5] * len(documents)
