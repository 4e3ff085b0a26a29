from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

load_dotenv()

from equipsearch import config  # noqa: E402
from equipsearch.metrics import make_queries_logger  # noqa: E402
from equipsearch.providers.factory import create_cross_encoder_provider, create_embedding_provider  # noqa: E402
from equipsearch.query.engine import (  # noqa: E402
    BuildFromDocuments,
    IntegratedSearchEngine,
    RestoreFromSnapshot,
    SearchOptions,
)
from equipsearch.tasks.abbreviations import get_abbreviation_store  # noqa: E402
from equipsearch.tasks.corpus import get_corpus_store  # noqa: E402
from equipsearch.tasks.persistence import IndexSerializer  # noqa: E402

logger = logging.getLogger("api")

state = {"engine": None}


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    top_k: int = Field(10, ge=1, le=config.MAX_TOP_K)
    min_score: float = Field(0.0, ge=0.0, le=1.0)
    use_cache: bool = True


class BatchSearchRequest(BaseModel):
    queries: List[str] = Field(..., min_length=1, max_length=config.MAX_BATCH_SIZE)
    top_k: int = Field(10, ge=1, le=config.MAX_TOP_K)


async def load_engine() -> IntegratedSearchEngine:
    """Corpus + abbreviations + (snapshot or fresh build) + providers."""
    documents = await get_corpus_store(config.CORPUS_PATH).load()
    abbreviations = await get_abbreviation_store(config.ABBREV_PATH).load()

    restored = IndexSerializer().load(config.INDEX_SNAPSHOT_PATH)
    if restored is not None:
        bm25, fuzzy = restored
        source = RestoreFromSnapshot(bm25, fuzzy, documents)
    else:
        source = BuildFromDocuments(documents)

    return IntegratedSearchEngine(
        source,
        embedding_provider=create_embedding_provider(),
        cross_encoder_provider=create_cross_encoder_provider(),
        abbreviations=abbreviations,
        query_logger=make_queries_logger(config.ARTIFACTS_DIR),
    )


@asynccontextmanager
async def lifespan(app):
    state["engine"] = await load_engine()  # warm everything
    yield
    engine = state["engine"]
    state["engine"] = None
    if engine is not None:
        await engine.aclose()


app = FastAPI(title="Equipment Search", lifespan=lifespan)


def _engine() -> IntegratedSearchEngine:
    engine = state["engine"]
    if engine is None:
        raise HTTPException(status_code=503, detail="search engine not ready")
    return engine


@app.get("/health")
def health():
    engine = state["engine"]
    if engine is None:
        return {"status": "starting"}
    return {"status": "ok", **engine.stats()}


@app.post("/search")
async def search(req: SearchRequest):
    opts = SearchOptions(top_k=req.top_k, min_score=req.min_score, use_cache=req.use_cache)
    res = await _engine().search(req.query, opts)
    return res.to_dict()


@app.post("/search/batch")
async def search_batch(req: BatchSearchRequest):
    try:
        responses = await _engine().search_batch(req.queries, SearchOptions(top_k=req.top_k))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"responses": [r.to_dict() for r in responses], "total": len(responses)}
