"""Provider capabilities used by the semantic reranker.

Concrete providers are chosen once, at construction time, by
:mod:`equipsearch.providers.factory`; call sites only see these interfaces.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Sequence

from equipsearch import config


class ProviderError(Exception):
    """Base class for embedding / cross-encoder provider failures."""


class ProviderConfigError(ProviderError):
    """Missing or invalid provider configuration (raised at construction)."""


class ProviderResponseError(ProviderError):
    """Remote provider returned something that cannot be used."""


class EmbeddingProvider(ABC):
    """Text -> dense vector.

    Implementations either return one full vector per input, in order, or
    raise :class:`ProviderError`.
    """

    name: str = "embedding"
    batch_size: int = config.EMBED_BATCH_SIZE

    @property
    @abstractmethod
    def dimension(self) -> int:
        ...

    @abstractmethod
    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        ...

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self._embed_batch([text])
        return vectors[0]

    async def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed ``texts`` in sequential chunks of ``batch_size``."""
        texts = list(texts)
        size = max(1, self.batch_size)
        out: List[List[float]] = []
        for start in range(0, len(texts), size):
            chunk = texts[start:start + size]
            vectors = await self._embed_batch(chunk)
            if len(vectors) != len(chunk):
                raise ProviderResponseError(
                    f"{self.name}: expected {len(chunk)} vectors, got {len(vectors)}"
                )
            out.extend(vectors)
        return out

    async def aclose(self) -> None:
        """Release network clients or models (no-op by default)."""


class CrossEncoderProvider(ABC):
    """(query, document) -> relevance score, one per document, in input order."""

    name: str = "cross_encoder"

    @abstractmethod
    async def score(self, query: str, documents: Sequence[str]) -> List[float]:
        ...

    async def aclose(self) -> None:
        """Release network clients or models (no-op by default)."""
