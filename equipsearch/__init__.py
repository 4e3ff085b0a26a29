"""
equipsearch

Hybrid search over a cleaning-equipment catalog:

- tasks/      pure building blocks (normalization, taxonomy, rewriting, BM25,
              fuzzy matching, diversification, corpus and snapshot IO)
- providers/  embedding and cross-encoder backends (local, Hugging Face, stubs)
- query/      reranker, result cache and the integrated search engine
- flows/      Prefect orchestration of the index build
"""
