from equipsearch.providers.base import (
    CrossEncoderProvider,
    EmbeddingProvider,
    ProviderConfigError,
    ProviderError,
    ProviderResponseError,
)
from equipsearch.providers.factory import create_cross_encoder_provider, create_embedding_provider

__all__ = [
    "CrossEncoderProvider",
    "EmbeddingProvider",
    "ProviderConfigError",
    "ProviderError",
    "ProviderResponseError",
    "create_cross_encoder_provider",
    "create_embedding_provider",
]
