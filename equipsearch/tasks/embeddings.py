"""Offline embedding precompute for corpus documents.

Documents that already carry a vector of the provider's dimension are kept
as is; the rest are embedded in batches and returned as new (immutable)
document instances.
"""
from __future__ import annotations
from dataclasses import replace
from typing import List, Sequence
import asyncio
import logging

from tqdm import tqdm

from equipsearch.providers.base import EmbeddingProvider
from equipsearch.tasks.corpus import CorpusDocument

logger = logging.getLogger(__name__)


def embedding_text(doc: CorpusDocument) -> str:
    return doc.semantic_text or doc.text or doc.title


async def precompute_embeddings(
    documents: Sequence[CorpusDocument],
    provider: EmbeddingProvider,
    force: bool = False,
    show_progress: bool = True,
) -> List[CorpusDocument]:
    """Fill ``embedding`` for every document.

    Args:
        documents: Parsed corpus.
        provider: Embedding backend.
        force: Re-embed documents that already have a vector.
        show_progress: Display a tqdm bar over batches.

    Returns:
        Documents in input order, each with an embedding.
    """
    dim = provider.dimension
    todo = [
        i for i, d in enumerate(documents)
        if force or d.embedding is None or len(d.embedding) != dim
    ]
    out = list(documents)
    if not todo:
        logger.info("[embed] all %d documents already embedded (dim=%d)", len(out), dim)
        return out

    batch = max(1, provider.batch_size)
    for start in tqdm(range(0, len(todo), batch), desc="embedding", unit="batch", disable=not show_progress):
        idxs = todo[start:start + batch]
        vectors = await provider.embed_documents([embedding_text(out[i]) for i in idxs])
        for i, vec in zip(idxs, vectors):
            out[i] = replace(out[i], embedding=[float(v) for v in vec])

    logger.info("[embed] embedded %d / %d documents with %s", len(todo), len(out), provider.name)
    return out


def precompute_embeddings_sync(
    documents: Sequence[CorpusDocument],
    provider: EmbeddingProvider,
    force: bool = False,
) -> List[CorpusDocument]:
    """Blocking wrapper for flows and CLIs."""
    return asyncio.run(precompute_embeddings(documents, provider, force=force))
