"""Category taxonomy and navigation-intent helpers.

Categories form a closed set. Rules are evaluated in priority order so that
overlapping vocabulary always resolves the same way: broom synonyms are
checked before mop synonyms.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Pattern, Tuple
import re

from equipsearch.tasks.normalization import normalize_text, tokenize

MOP = "MOP"
VASSOURA = "VASSOURA"
UNKNOWN = "UNKNOWN"

CATEGORIES = (MOP, VASSOURA)

EQUIPAMENTO = "EQUIPAMENTO"
ACESSORIO = "ACESSORIO"
INDEFINIDO = "INDEFINIDO"

ACCESSORY_TERMS = frozenset({
    "disco", "discos", "escova", "escovas", "refil", "refis", "bocal", "saco",
    "filtro", "mangueira", "pano", "flanela", "esponja", "cabo", "adaptador",
    "kit", "suporte", "pinca",
})

STOPWORDS = frozenset({
    "de", "da", "do", "das", "dos", "para", "pra", "com", "sem", "e",
    "a", "o", "as", "os", "em", "no", "na", "nos", "nas",
})

CATEGORY_PATTERNS: Tuple[Tuple[str, Tuple[Pattern[str], ...]], ...] = (
    (VASSOURA, (
        re.compile(r"\bvassoura\b"),
        re.compile(r"\bvassourao\b"),
        re.compile(r"\bpiacava\b"),
        re.compile(r"\bpiassava\b"),
    )),
    (MOP, (
        re.compile(r"\bmop\b"),
        re.compile(r"\besfregao\b"),
    )),
)

_CATEGORY_TOKENS = {MOP: "mop", VASSOURA: "vassoura"}

_NUMBER_RE = re.compile(r"^\d+(?:[.,]\d+)?$")
_UNITS = r"(?:mm|cm|m|l|lt|litros|v|volts|w|watts|kg|g|hp|rpm)"
_MEASURE_TOKEN_RE = re.compile(r"^\d+(?:[.,]\d+)?" + _UNITS + r"$")
_MODEL_TOKEN_RE = re.compile(r"^(?:\d{2,}[a-z]+|[a-z]+\d{2,})$")
_MODEL_NUMBER_RE = re.compile(r"^\d{3,}$")
_SPACED_MEASURE_RE = re.compile(r"\b\d+(?:[.,]\d+)?\s*" + _UNITS + r"\b")


def detect_category(text: Optional[str]) -> str:
    """Classify text into ``MOP``, ``VASSOURA`` or ``UNKNOWN``.

    Input is normalized first, so raw user text and persisted titles are
    treated identically.
    """
    normalized = normalize_text(text)
    if not normalized:
        return UNKNOWN
    for category, patterns in CATEGORY_PATTERNS:
        for rx in patterns:
            if rx.search(normalized):
                return category
    return UNKNOWN


def category_token_for(category: Optional[str]) -> Optional[str]:
    """Return the token that names a category inside titles (``mop``, ``vassoura``)."""
    if not category:
        return None
    return _CATEGORY_TOKENS.get(category)


def _accessory_terms_in(normalized: str) -> List[str]:
    tokens = set(tokenize(normalized))
    return sorted(t for t in ACCESSORY_TERMS if t in tokens)


def detect_doc_type(text: Optional[str]) -> str:
    """Accessory wording wins over category wording; otherwise undecided."""
    normalized = normalize_text(text)
    if not normalized:
        return INDEFINIDO
    if _accessory_terms_in(normalized):
        return ACESSORIO
    if detect_category(normalized) != UNKNOWN:
        return EQUIPAMENTO
    return INDEFINIDO


def detect_query_intent(query: str) -> Tuple[str, str, List[str]]:
    """Decide whether a query asks for the equipment itself or an accessory.

    Args:
        query: Raw query.

    Returns:
        Tuple ``(intent, category, accessory_terms)``.
    """
    normalized = normalize_text(query)
    tokens = tokenize(normalized)
    category = detect_category(normalized)
    accessory_terms = _accessory_terms_in(normalized)

    first_accessory = next((i for i, t in enumerate(tokens) if t in ACCESSORY_TERMS), -1)
    cat_token = category_token_for(category)
    category_index = tokens.index(cat_token) if cat_token in tokens else -1

    if category != UNKNOWN and first_accessory != -1:
        if category_index != -1 and category_index <= first_accessory:
            intent = EQUIPAMENTO
        else:
            intent = ACESSORIO
    elif category != UNKNOWN:
        intent = EQUIPAMENTO
    elif first_accessory != -1:
        intent = ACESSORIO
    else:
        intent = INDEFINIDO
    return intent, category, accessory_terms


@dataclass
class NavigationIntentContext:
    """Signals extracted from a query to decide category-level navigation."""
    query_raw: str
    query_normalized: str
    tokens: List[str] = field(default_factory=list)
    numbers: List[str] = field(default_factory=list)
    attributes: List[str] = field(default_factory=list)
    accessory_terms: List[str] = field(default_factory=list)
    query_category: Optional[str] = None
    model_or_measure_terms: List[str] = field(default_factory=list)


def _model_or_measure_terms(normalized: str, tokens: List[str]) -> List[str]:
    terms: List[str] = []
    for t in tokens:
        has_digit = any(ch.isdigit() for ch in t)
        has_alpha = any(ch.isalpha() for ch in t)
        if has_digit and has_alpha and (_MEASURE_TOKEN_RE.match(t) or _MODEL_TOKEN_RE.match(t)):
            terms.append(t)
        elif _MODEL_NUMBER_RE.match(t):
            terms.append(t)
    if _SPACED_MEASURE_RE.search(normalized):
        # flag only; individual spaced measures are not extracted
        terms.append("measure")
    return list(dict.fromkeys(terms))


def build_navigation_intent_context(query: str) -> NavigationIntentContext:
    """Extract tokens, numbers, attributes and category from a raw query."""
    normalized = normalize_text(query)
    tokens = tokenize(normalized)
    category = detect_category(normalized)
    query_category = None if category == UNKNOWN else category
    numbers = [t for t in tokens if _NUMBER_RE.match(t)]
    measures = _model_or_measure_terms(normalized, tokens)
    cat_token = category_token_for(query_category)

    attributes = [
        t for t in tokens
        if t not in STOPWORDS
        and t != cat_token
        and t not in ACCESSORY_TERMS
        and not _NUMBER_RE.match(t)
        and t not in measures
    ]
    return NavigationIntentContext(
        query_raw=query,
        query_normalized=normalized,
        tokens=tokens,
        numbers=numbers,
        attributes=attributes,
        accessory_terms=_accessory_terms_in(normalized),
        query_category=query_category,
        model_or_measure_terms=measures,
    )


def is_navigation_intent(ctx: NavigationIntentContext) -> bool:
    """True for bare category browsing such as ``"mop"`` or ``"vassouras"``-like queries."""
    if not ctx.query_category:
        return False
    if len(ctx.tokens) > 2:
        return False
    return not (ctx.numbers or ctx.attributes or ctx.accessory_terms or ctx.model_or_measure_terms)
