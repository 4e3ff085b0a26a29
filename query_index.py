"""CLI for querying the equipment index."""
from __future__ import annotations

import argparse
import asyncio
import logging

from dotenv import load_dotenv


async def run(query: str, top_k: int, use_cache: bool) -> None:
    from equipsearch import config
    from equipsearch.query.engine import BuildFromDocuments, IntegratedSearchEngine, RestoreFromSnapshot, SearchOptions
    from equipsearch.tasks.abbreviations import get_abbreviation_store
    from equipsearch.tasks.corpus import get_corpus_store
    from equipsearch.tasks.persistence import IndexSerializer

    documents = await get_corpus_store(config.CORPUS_PATH).load()
    abbreviations = await get_abbreviation_store(config.ABBREV_PATH).load()
    restored = IndexSerializer().load(config.INDEX_SNAPSHOT_PATH)
    source = RestoreFromSnapshot(*restored, documents) if restored else BuildFromDocuments(documents)

    engine = IntegratedSearchEngine(source, abbreviations=abbreviations)
    try:
        res = await engine.search(query, SearchOptions(top_k=top_k, use_cache=use_cache))
    finally:
        await engine.aclose()

    print(f"query={res.query!r} normalized={res.normalized_query!r} total={res.total}")
    if res.fallback:
        print(f"(lexical fallback: {res.fallback_reason})")
    for rank, item in enumerate(res.results, 1):
        b = item.score_breakdown
        doc = item.document
        print(f"{rank:>2}. [{doc['id']}] {doc['title']} (score={item.combined_score:.3f}, norm={item.normalized_score:.2f})")
        print(
            f"    lexical={b.lexical:.3f} semantic={b.semantic:.3f} "
            f"reranker={b.reranker:.3f} domain={b.domain:.3f} | category={doc['docCategory']}"
        )
        for sib in item.suggested_related:
            print(f"    ~ {sib['id']}: {sib['title']}")


def main():
    """CLI entry point; prints ranked results with their score breakdown."""
    load_dotenv()
    from equipsearch.config import LOG_FORMAT
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    parser = argparse.ArgumentParser(description="Query the equipment search index")
    parser.add_argument("query", help="Query string")
    parser.add_argument("--top-k", type=int, default=10)
    parser.add_argument("--no-cache", action="store_true")
    args = parser.parse_args()
    asyncio.run(run(args.query, args.top_k, not args.no_cache))


if __name__ == "__main__":
    main()
