"""Prefect flow building the search index snapshot.
No business logic inline; wraps pure functions from tasks modules.
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional
import time

from prefect import flow, task

from equipsearch import config
from equipsearch.metrics import log_env, make_run_logger
from equipsearch.providers.factory import create_embedding_provider
from equipsearch.tasks.corpus import CorpusDocument, read_corpus_file, write_corpus_file
from equipsearch.tasks.embeddings import precompute_embeddings_sync
from equipsearch.tasks.persistence import build_and_save_index, save_json


@task
def t_load_corpus(corpus_path: str) -> List[CorpusDocument]:
    """Parse the corpus file (raises CorpusLoadError on bad input)."""
    return read_corpus_file(corpus_path)


@task
def t_embed(documents: List[CorpusDocument], enriched_corpus_path: Optional[str]) -> List[CorpusDocument]:
    """Precompute document embeddings and optionally write the enriched corpus."""
    embedded = precompute_embeddings_sync(documents, create_embedding_provider())
    if enriched_corpus_path:
        write_corpus_file(enriched_corpus_path, embedded, {"embeddings": config.EMBEDDINGS_PROVIDER_MODE})
    return embedded


@task
def t_index(documents: List[CorpusDocument], snapshot_path: str) -> Dict[str, Any]:
    """Build BM25 + fuzzy structures and save the snapshot."""
    return build_and_save_index(documents, snapshot_path)


@flow(name="index_build")
def index_build_flow(
    corpus_path: str,
    snapshot_path: str,
    embed: bool = False,
    enriched_corpus_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Corpus to index snapshot.

    Task graph (DAG):
        t_load_corpus -> [t_embed] -> t_index

    Args:
        corpus_path: Corpus JSON file.
        snapshot_path: Destination of the index snapshot.
        embed: Run the embedding precompute step.
        enriched_corpus_path: Where to write the corpus with embeddings.

    Returns:
        Mapping with document count, index summary and timings.
    """
    artifacts = Path(snapshot_path).parent
    run_logger = make_run_logger(artifacts)
    log_env(run_logger, artifacts, Path(corpus_path))

    timings: Dict[str, float] = {}
    t0_flow = time.perf_counter()

    t0 = time.perf_counter()
    documents = t_load_corpus(corpus_path)
    timings["t_load_corpus"] = time.perf_counter() - t0

    if embed:
        t0 = time.perf_counter()
        documents = t_embed(documents, enriched_corpus_path)
        timings["t_embed"] = time.perf_counter() - t0

    t0 = time.perf_counter()
    index = t_index(documents, snapshot_path)
    timings["t_index"] = time.perf_counter() - t0

    timings["flow_total"] = time.perf_counter() - t0_flow
    run_logger.write({"type": "build", "documents": len(documents), "timings": timings})
    save_json(artifacts / "timings.json", timings)

    return {"documents": len(documents), "index": index, "timings": timings}
