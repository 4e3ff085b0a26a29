"""Deterministic query rewriting driven by the compiled abbreviation maps.

:func:`rewrite_query` turns a raw query into a :class:`QueryPlan`: the
normalized primary query (always first, weight 1.0) followed by alternate
variants discovered through ``exactMap``, ``tokenMap`` and ``expandMap``.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import time

from equipsearch import config
from equipsearch.tasks.abbreviations import AbbrevCompiled, expand_items
from equipsearch.tasks.normalization import normalize_text, tokenize
from equipsearch.tasks.taxonomy import UNKNOWN, detect_category

PRIMARY = "primary"
EXACT_MAP = "exactMap"
TOKEN_MAP = "tokenMap"
EXPAND_MAP = "expandMap"

ALTERNATE_WEIGHT = 0.6


@dataclass(frozen=True)
class QueryVariant:
    query: str
    weight: float
    reason: str


@dataclass(frozen=True)
class RewriteOptions:
    """Bounds for variant generation.

    Attributes:
        max_variants_total: Cap on returned variants, primary included.
        max_expand_items: Cap on ``expandMap`` alternatives considered.
        enable_expand_map: Toggle for ``expandMap`` usage.
    """
    max_variants_total: int = config.MAX_VARIANTS_TOTAL
    max_expand_items: int = config.MAX_EXPAND_ITEMS
    enable_expand_map: bool = config.ENABLE_EXPAND_MAP


@dataclass
class QueryPlan:
    """Result of :func:`rewrite_query`.

    Attributes:
        original: Query as received.
        normalized: ``normalize_text(original)``.
        primary: Query after full-weight substitutions.
        variants: Ordered, de-duplicated variants; ``variants[0]`` is the primary.
        used_expand_map: Whether ``expandMap`` contributed.
        elapsed_ms: Wall-clock rewrite duration.
    """
    original: str
    normalized: str
    primary: str
    variants: List[QueryVariant] = field(default_factory=list)
    used_expand_map: bool = False
    elapsed_ms: float = 0.0

    def queries(self) -> List[str]:
        return [v.query for v in self.variants]


def _is_generic_single_token(query: str) -> bool:
    tokens = tokenize(query)
    if len(tokens) != 1:
        return False
    tok = tokens[0]
    return len(tok) >= 2 and not any(ch.isdigit() for ch in tok)


def _is_category_single_token(query: str) -> bool:
    tokens = tokenize(query)
    return len(tokens) == 1 and detect_category(tokens[0]) != UNKNOWN


def _apply_token_map(query: str, compiled: AbbrevCompiled) -> Tuple[str, bool]:
    changed = False
    out: List[str] = []
    for tok in tokenize(query):
        mapped = compiled.token_map.get(tok)
        if mapped and mapped != tok:
            changed = True
            out.append(mapped)
        else:
            out.append(tok)
    return " ".join(out), changed


def _substitute(
    primary: str,
    mapped: str,
    reason: str,
    variants: List[QueryVariant],
) -> str:
    """Category-aware substitution.

    A bare category name keeps its place as primary and the mapping becomes
    an alternate; anything else is replaced outright.
    """
    mapped_norm = normalize_text(mapped)
    if not mapped_norm:
        return primary
    if _is_category_single_token(primary):
        if mapped_norm and mapped_norm != primary:
            variants.append(QueryVariant(mapped_norm, ALTERNATE_WEIGHT, reason))
        return primary
    variants.append(QueryVariant(mapped_norm, 1.0, reason))
    return mapped_norm


def rewrite_query(
    original: str,
    compiled: Optional[AbbrevCompiled],
    options: Optional[RewriteOptions] = None,
) -> QueryPlan:
    """Build the variant plan for a query.

    Args:
        original: Raw user query.
        compiled: Abbreviation maps, or ``None`` for passthrough.
        options: Variant bounds; defaults come from the environment.

    Returns:
        A :class:`QueryPlan` whose first variant is ``(primary, 1.0, "primary")``.
    """
    opts = options or RewriteOptions()
    t0 = time.perf_counter()

    normalized = normalize_text(original)
    primary = normalized
    found: List[QueryVariant] = []
    used_expand = False

    if compiled is not None:
        exact = compiled.exact_map.get(primary)
        if exact and exact != primary:
            primary = _substitute(primary, exact, EXACT_MAP, found)

        rewritten, changed = _apply_token_map(primary, compiled)
        if changed:
            primary = _substitute(primary, rewritten, TOKEN_MAP, found)

        if opts.enable_expand_map and _is_generic_single_token(primary):
            items = expand_items(compiled, primary)
            if items:
                used_expand = True
                for item in items[: opts.max_expand_items]:
                    q = normalize_text(item)
                    if not q or q == primary:
                        continue
                    found.append(QueryVariant(q, ALTERNATE_WEIGHT, EXPAND_MAP))
                    if len(found) >= opts.max_variants_total - 1:
                        break

    variants = [QueryVariant(primary, 1.0, PRIMARY)]
    seen = {primary}
    for v in found:
        if len(variants) >= opts.max_variants_total:
            break
        if v.query in seen:
            continue
        seen.add(v.query)
        variants.append(v)

    return QueryPlan(
        original=original,
        normalized=normalized,
        primary=primary,
        variants=variants,
        used_expand_map=used_expand,
        elapsed_ms=(time.perf_counter() - t0) * 1000.0,
    )
