"""Construction-time provider selection.

Modes come from ``EMBEDDINGS_PROVIDER_MODE`` / ``CROSS_ENCODER_PROVIDER_MODE``
unless passed explicitly. Misconfiguration raises
:class:`~equipsearch.providers.base.ProviderConfigError` here, never per query.
"""
from __future__ import annotations
from typing import Any, Optional
import logging

from equipsearch import config
from equipsearch.providers.base import CrossEncoderProvider, EmbeddingProvider, ProviderConfigError

logger = logging.getLogger(__name__)

EMBEDDING_MODES = ("local", "hf", "mock")
CROSS_ENCODER_MODES = ("local", "hf", "mock", "none")


def create_embedding_provider(mode: Optional[str] = None, **kwargs: Any) -> EmbeddingProvider:
    mode = (mode or config.EMBEDDINGS_PROVIDER_MODE).strip().lower()
    if mode == "local":
        from equipsearch.providers.local import LocalEmbeddingProvider
        provider: EmbeddingProvider = LocalEmbeddingProvider(**kwargs)
    elif mode == "hf":
        from equipsearch.providers.remote import RemoteEmbeddingProvider
        provider = RemoteEmbeddingProvider(**kwargs)
    elif mode == "mock":
        from equipsearch.providers.stubs import StubEmbeddingProvider
        provider = StubEmbeddingProvider(**kwargs)
    else:
        raise ProviderConfigError(
            f"unknown embeddings provider mode {mode!r}; expected one of {', '.join(EMBEDDING_MODES)}"
        )
    logger.info("Embedding provider: %s (dim=%d)", mode, provider.dimension)
    return provider


def create_cross_encoder_provider(mode: Optional[str] = None, **kwargs: Any) -> CrossEncoderProvider:
    mode = (mode or config.CROSS_ENCODER_PROVIDER_MODE).strip().lower()
    if mode == "local":
        from equipsearch.providers.local import LocalCrossEncoderProvider
        provider: CrossEncoderProvider = LocalCrossEncoderProvider(**kwargs)
    elif mode == "hf":
        from equipsearch.providers.remote import RemoteCrossEncoderProvider
        provider = RemoteCrossEncoderProvider(**kwargs)
    elif mode == "mock":
        from equipsearch.providers.stubs import StubCrossEncoderProvider
        provider = StubCrossEncoderProvider(**kwargs)
    elif mode == "none":
        from equipsearch.providers.stubs import NoopCrossEncoderProvider
        provider = NoopCrossEncoderProvider()
    else:
        raise ProviderConfigError(
            f"unknown cross-encoder provider mode {mode!r}; expected one of {', '.join(CROSS_ENCODER_MODES)}"
        )
    logger.info("Cross-encoder provider: %s", mode)
    return provider
