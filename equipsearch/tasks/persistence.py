"""Index snapshot persistence.

Responsibilities:
    * Save a versioned, checksummed snapshot of the lexical index
    * Load it back into a ``(BM25Index, FuzzyMatcher)`` pair, or ``None``
    * Helper for saving arbitrary JSON dictionaries
"""
from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple
import hashlib
import json
import logging

from equipsearch.tasks.fuzzy_matcher import FuzzyMatcher
from equipsearch.tasks.retrieval_index import BM25Index, LexicalIndex

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "2.0.0"


def canonical_checksum(data: Dict[str, Any]) -> str:
    """sha256 hex digest of the canonical (sorted, compact) JSON of ``data``."""
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class IndexSerializer:
    """Reads and writes index snapshots.

    Snapshot layout::

        {"version": "2.0.0", "timestamp": "<ISO-8601 UTC>",
         "checksum": "<sha256>", "data": {"bm25": {...}, "fuzzy": {...}}}
    """

    version = SNAPSHOT_VERSION

    def save(self, path: str | Path, bm25: BM25Index, fuzzy: FuzzyMatcher) -> Dict[str, Any]:
        """Write a snapshot, creating parent directories.

        Returns:
            The snapshot envelope that was written.
        """
        path = Path(path)
        data = {"bm25": bm25.to_dict(), "fuzzy": fuzzy.to_dict()}
        snapshot = {
            "version": self.version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checksum": canonical_checksum(data),
            "data": data,
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(snapshot, ensure_ascii=False), encoding="utf-8")
        logger.info(
            "[snapshot] saved %s | version=%s | checksum=%s... | docs=%d",
            path, self.version, snapshot["checksum"][:12], bm25.n_docs,
        )
        return snapshot

    def load(self, path: str | Path) -> Optional[Tuple[BM25Index, FuzzyMatcher]]:
        """Restore a snapshot.

        Every failure (missing file, bad JSON, wrong version, checksum
        mismatch, inconsistent structures) is logged and yields ``None`` so
        the caller can rebuild from the corpus.
        """
        path = Path(path)
        if not path.exists():
            logger.info("[snapshot] %s not found", path)
            return None
        try:
            snapshot = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("[snapshot] could not read %s: %s", path, e)
            return None

        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("data"), dict):
            logger.warning("[snapshot] %s has an invalid envelope", path)
            return None
        if snapshot.get("version") != self.version:
            logger.warning(
                "[snapshot] %s version mismatch: got %r, expected %r",
                path, snapshot.get("version"), self.version,
            )
            return None
        data = snapshot["data"]
        if snapshot.get("checksum") != canonical_checksum(data):
            logger.warning("[snapshot] %s checksum mismatch", path)
            return None

        try:
            bm25 = BM25Index.from_dict(data["bm25"])
            fuzzy = FuzzyMatcher.from_dict(data["fuzzy"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("[snapshot] %s could not be reconstructed: %s", path, e)
            return None

        logger.info(
            "[snapshot] loaded %s | version=%s | docs=%d | vocabulary=%d",
            path, self.version, bm25.n_docs, fuzzy.vocabulary_size,
        )
        return bm25, fuzzy


def save_json(path: str | Path, data: Dict[str, Any]):
    """Write a JSON dictionary to disk with UTF-8 encoding, creating parent dirs."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


def build_and_save_index(documents: Iterable[Any], snapshot_path: str | Path) -> Dict[str, Any]:
    """Build the lexical index for ``documents`` and snapshot it.

    Returns:
        Mapping with the snapshot path, checksum and BM25 statistics.
    """
    index = LexicalIndex.build(documents)
    snapshot = IndexSerializer().save(snapshot_path, index.bm25, index.fuzzy)
    return {
        "snapshot_path": str(snapshot_path),
        "checksum": snapshot["checksum"],
        "bm25": index.bm25.stats(),
        "vocabulary_size": index.fuzzy.vocabulary_size,
    }
