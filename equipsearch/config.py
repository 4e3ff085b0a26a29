# equipsearch/config.py
from __future__ import annotations

import os
from pathlib import Path


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# -----------------------------------------------------------
# Paths
# -----------------------------------------------------------

ARTIFACTS_DIR = Path(os.getenv("ARTIFACTS_DIR", "./artifacts"))
CORPUS_PATH = Path(os.getenv("CORPUS_PATH", "./data/corpus.json"))
ABBREV_PATH = Path(os.getenv("ABBREV_PATH", "./data/abbrev.compiled.json"))
INDEX_SNAPSHOT_PATH = Path(
    os.getenv("INDEX_SNAPSHOT_PATH", str(ARTIFACTS_DIR / "index.snapshot.json"))
)

DEBUG_RETURN = _env_bool("SEARCH_DEBUG_RETURN")

# -----------------------------------------------------------
# Providers
# -----------------------------------------------------------

EMBEDDINGS_PROVIDER_MODE = os.getenv("EMBEDDINGS_PROVIDER_MODE", "mock").lower()
CROSS_ENCODER_PROVIDER_MODE = os.getenv("CROSS_ENCODER_PROVIDER_MODE", "mock").lower()

EMBED_MODEL = os.getenv("EMBED_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
RERANKER_MODEL = os.getenv("RERANKER_MODEL", "cross-encoder/ms-marco-MiniLM-L-6-v2")

HF_API_KEY = os.getenv("HF_API_KEY", "")
HF_API_URL = os.getenv("HF_API_URL", "https://api-inference.huggingface.co")
HF_EMBEDDINGS_MODEL = os.getenv("HF_EMBEDDINGS_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
HF_CROSS_ENCODER_MODEL = os.getenv("HF_CROSS_ENCODER_MODEL", "cross-encoder/ms-marco-MiniLM-L-6-v2")
HF_TIMEOUT_S = float(os.getenv("HF_TIMEOUT_S", "10"))

EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "32"))
STUB_EMBED_DIM = int(os.getenv("STUB_EMBED_DIM", "384"))

# -----------------------------------------------------------
# Ranking
# -----------------------------------------------------------

# Combination weights; only non-negativity is enforced.
W_LEXICAL = float(os.getenv("W_LEXICAL", "0.25"))
W_SEMANTIC = float(os.getenv("W_SEMANTIC", "0.40"))
W_RERANKER = float(os.getenv("W_RERANKER", "0.20"))
W_DOMAIN = float(os.getenv("W_DOMAIN", "0.15"))
# Subtracted from combined when the query asks for equipment and the doc is an accessory.
W_ACCESSORY_PENALTY = float(os.getenv("W_ACCESSORY_PENALTY", "0.25"))
ENABLE_TOP1_EQUIPMENT_GUARD = _env_bool("ENABLE_TOP1_EQUIPMENT_GUARD", "1")

SEMANTIC_CONFIDENCE_THRESHOLD = float(os.getenv("SEMANTIC_CONFIDENCE_THRESHOLD", "0.75"))
RERANK_TOP_N = int(os.getenv("RERANK_TOP_N", "20"))

CANDIDATE_K = int(os.getenv("CANDIDATE_K", "100"))
RERANK_CANDIDATES = int(os.getenv("RERANK_CANDIDATES", "60"))
FUZZY_MIN_HITS = int(os.getenv("FUZZY_MIN_HITS", "3"))
FUZZY_WEIGHT = float(os.getenv("FUZZY_WEIGHT", "0.5"))

MAX_PER_SUBTYPE = int(os.getenv("MAX_PER_SUBTYPE", "2"))
MIN_CATEGORY_COVERAGE = int(os.getenv("MIN_CATEGORY_COVERAGE", "3"))

MAX_VARIANTS_TOTAL = int(os.getenv("MAX_VARIANTS_TOTAL", "10"))
MAX_EXPAND_ITEMS = int(os.getenv("MAX_EXPAND_ITEMS", "8"))
ENABLE_EXPAND_MAP = _env_bool("ENABLE_EXPAND_MAP", "1")
ENABLE_FUZZY = _env_bool("ENABLE_FUZZY", "1")

# Navigation-intent queries ("mop") widen retrieval to clamp(max_top_k * mult, min, max).
ENABLE_NAV_INTENT = _env_bool("ENABLE_NAV_INTENT", "1")
NAV_CANDIDATE_MULT = int(os.getenv("NAV_CANDIDATE_MULT", "8"))
NAV_CANDIDATE_MIN = int(os.getenv("NAV_CANDIDATE_MIN", "60"))
NAV_CANDIDATE_MAX = int(os.getenv("NAV_CANDIDATE_MAX", "220"))

# -----------------------------------------------------------
# Request bounds, timeout, cache
# -----------------------------------------------------------

MAX_TOP_K = int(os.getenv("MAX_TOP_K", "50"))
MAX_BATCH_SIZE = int(os.getenv("MAX_BATCH_SIZE", "50"))
MAX_SUGGESTIONS = int(os.getenv("MAX_SUGGESTIONS", "3"))
SEARCH_TIMEOUT_MS = float(os.getenv("SEARCH_TIMEOUT_MS", "2000"))

CACHE_MAX_SIZE = int(os.getenv("CACHE_MAX_SIZE", "1000"))
CACHE_TTL_S = float(os.getenv("CACHE_TTL_S", "3600"))

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
