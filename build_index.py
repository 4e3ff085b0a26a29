# build_index.py
"""
Build the search index snapshot for the equipment corpus.

Pipeline
--------
1) Load and validate the corpus JSON.
2) (optional) Precompute document embeddings with the configured provider
   and write an enriched corpus.
3) Build BM25 postings and the fuzzy vocabulary.
4) Save a versioned, checksummed snapshot and per-run timings.

Usage
-----
python build_index.py --corpus ./data/corpus.json --snapshot ./artifacts/index.snapshot.json [--embed]

Environment
-----------
CORPUS_PATH                 # default corpus, "./data/corpus.json"
INDEX_SNAPSHOT_PATH         # default snapshot, "<ARTIFACTS_DIR>/index.snapshot.json"
EMBEDDINGS_PROVIDER_MODE    # local | hf | mock, used with --embed
"""

from __future__ import annotations

import argparse
import json
import logging

from dotenv import load_dotenv


def set_up_logger() -> logging.Logger:
    """Configure a root logger for console output."""
    from equipsearch.config import LOG_FORMAT
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    return logging.getLogger("build_index")


def main() -> None:
    load_dotenv()
    from equipsearch import config
    from equipsearch.flows.index_flow import index_build_flow

    parser = argparse.ArgumentParser(description="Build the equipment search index snapshot.")
    parser.add_argument("--corpus", type=str, default=str(config.CORPUS_PATH), help="Corpus JSON file.")
    parser.add_argument(
        "--snapshot", type=str, default=str(config.INDEX_SNAPSHOT_PATH), help="Snapshot output path."
    )
    parser.add_argument("--embed", action="store_true", help="Precompute document embeddings.")
    parser.add_argument(
        "--enriched-corpus", type=str, default=None,
        help="Write the corpus with embeddings here (requires --embed).",
    )
    args = parser.parse_args()

    log = set_up_logger()
    log.info("Building index | corpus=%s | snapshot=%s | embed=%s", args.corpus, args.snapshot, args.embed)
    result = index_build_flow(args.corpus, args.snapshot, embed=args.embed, enriched_corpus_path=args.enriched_corpus)
    log.info("Done | documents=%d | total=%.2fs", result["documents"], result["timings"]["flow_total"])
    print(json.dumps(result["index"], indent=2))


if __name__ == "__main__":
    main()
