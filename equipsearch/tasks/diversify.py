"""Subtype diversification of the final ranked list.

Candidates are grouped by an apparent product subtype (normalized title minus
stopwords and the category name) so that the top of the list does not fill
up with near-identical SKUs.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from equipsearch import config
from equipsearch.tasks.normalization import normalize_text, tokenize
from equipsearch.tasks.taxonomy import UNKNOWN, category_token_for

SUBTYPE_STOPWORDS = frozenset({"de", "da", "do", "das", "dos", "para", "pra", "com", "sem", "e"})


@dataclass(frozen=True)
class DiversifyDocInput:
    id: str
    title: str
    group_id: str
    equipment_id: Optional[str] = None
    doc_category: Optional[str] = None
    rank_score: float = 0.0


@dataclass
class DiversifyResult:
    """Output of :func:`diversify`.

    Attributes:
        selected: Chosen documents, in selection order.
        subtype_key_by_id: Subtype key computed for every input document.
        primary_pool_count: Number of in-category inputs.
        unique_subtype_count_primary: Distinct subtype keys in the in-category pool.
    """
    selected: List[DiversifyDocInput] = field(default_factory=list)
    subtype_key_by_id: Dict[str, str] = field(default_factory=dict)
    primary_pool_count: int = 0
    unique_subtype_count_primary: int = 0

    def selected_ids(self) -> List[str]:
        return [d.id for d in self.selected]


def build_subtype_key(doc: DiversifyDocInput, category: Optional[str]) -> str:
    """Subtype key for a document.

    Normalized title (or group id) tokens without stopwords and without the
    category's own token; falls back to the normalized equipment/group id.
    """
    cat_token = category_token_for(category)
    tokens = [
        t for t in tokenize(normalize_text(doc.title or doc.group_id))
        if t not in SUBTYPE_STOPWORDS and t != cat_token
    ]
    if tokens:
        return " ".join(tokens)
    return normalize_text(doc.equipment_id or doc.group_id) or doc.group_id


def diversify(
    docs_sorted: Sequence[DiversifyDocInput],
    query_category: Optional[str] = None,
    top_k: int = config.MAX_TOP_K,
    max_per_subtype: int = config.MAX_PER_SUBTYPE,
    min_category_coverage: int = config.MIN_CATEGORY_COVERAGE,
) -> DiversifyResult:
    """Select up to ``top_k`` documents with category coverage and subtype variety.

    Args:
        docs_sorted: Candidates sorted by combined score, descending.
        query_category: Detected query category (``None``/``UNKNOWN`` disables coverage).
        top_k: Output size bound (clamped to >= 1).
        max_per_subtype: Per-subtype cap for the first two passes (>= 1).
        min_category_coverage: In-category entries required at the head of
            the list, clamped to ``[0, top_k]``.

    Returns:
        :class:`DiversifyResult`. Three passes run in order: in-category
        coverage, capped walk over every candidate, uncapped relaxation.
    """
    top_k = max(1, top_k)
    max_per_subtype = max(1, max_per_subtype)
    min_coverage = max(0, min(min_category_coverage, top_k))
    category = query_category if query_category and query_category != UNKNOWN else None

    subtype_keys = {d.id: build_subtype_key(d, category) for d in docs_sorted}
    pool = [d for d in docs_sorted if category and d.doc_category == category]
    unique_primary = {subtype_keys[d.id] for d in pool if subtype_keys[d.id]}

    # the floor only holds when the category pool can actually satisfy it
    floor = min_coverage if category and len(pool) >= min_coverage else 0

    selected: List[DiversifyDocInput] = []
    selected_ids: set = set()
    subtype_counts: Dict[str, int] = {}

    def try_select(d: DiversifyDocInput, enforce_cap: bool) -> bool:
        if d.id in selected_ids:
            return False
        key = subtype_keys.get(d.id) or d.id
        if enforce_cap and subtype_counts.get(key, 0) >= max_per_subtype:
            return False
        selected.append(d)
        selected_ids.add(d.id)
        subtype_counts[key] = subtype_counts.get(key, 0) + 1
        return True

    def blocked_by_floor(d: DiversifyDocInput) -> bool:
        return d.doc_category != category and len(selected) < floor

    if floor > 0:
        for d in pool:
            if len(selected) >= floor:
                break
            try_select(d, enforce_cap=True)

    for d in _walk(docs_sorted, selected, top_k):
        if not blocked_by_floor(d):
            try_select(d, enforce_cap=True)

    # relaxation: same walk, subtype cap lifted
    for d in _walk(docs_sorted, selected, top_k):
        if d.id not in selected_ids and not blocked_by_floor(d):
            try_select(d, enforce_cap=False)

    # the relaxation may reach the floor midway; out-of-category docs skipped
    # before that point get one more chance
    for d in _walk(docs_sorted, selected, top_k):
        if d.id not in selected_ids:
            try_select(d, enforce_cap=False)

    return DiversifyResult(
        selected=selected,
        subtype_key_by_id=subtype_keys,
        primary_pool_count=len(pool),
        unique_subtype_count_primary=len(unique_primary),
    )


def _walk(docs: Iterable[DiversifyDocInput], selected: List[DiversifyDocInput], top_k: int):
    for d in docs:
        if len(selected) >= top_k:
            return
        yield d
