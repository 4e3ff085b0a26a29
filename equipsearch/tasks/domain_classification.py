"""Rule-based domain classification for cleaning equipment.

Domains:
    * ``cleaning_core``: main machines (scrubbers, vacuums, extractors, washers)
    * ``cleaning_support``: workflow items (mops, buckets, carts, pads, brooms)
    * ``peripheral``: non-cleaning items (electronics, standalone motors)
    * ``unknown``: nothing matched

:func:`compute_domain_score` turns a (query, document) pair of classifications
into a compatibility score in ``[0, 1]``.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional, Sequence
import re

from equipsearch.tasks.normalization import normalize_text


CLEANING_CORE = "cleaning_core"
CLEANING_SUPPORT = "cleaning_support"
PERIPHERAL = "peripheral"
UNKNOWN_DOMAIN = "unknown"

CLEANING_CORE_KEYWORDS = (
    # floor scrubbers
    "lavadora de piso", "lavadora piso", "auto lavadora", "autolavadora",
    "scrubber", "autoscrubber", "lavadora de pisos", "maquina lavar piso",
    # vacuums
    "aspirador", "aspiradora", "aspiradores", "aspira po", "aspira agua",
    "aspirador agua e po", "aspirador industrial", "aspirador de po", "vacuum",
    # extractors
    "extratora", "extrator", "extratoras", "carpet extractor", "extratora de carpete",
    # pressure washers
    "hidrojato", "hidrojateadora", "hidro jato", "lavadora alta pressao",
    "lavadora de alta pressao", "lavadora pressao", "pressure washer",
    # polishers
    "enceradeira", "enceradeiras", "politriz", "polisher", "single disc",
    "monodisco", "mono disco", "disco unico",
    # sweepers
    "varredeira", "varredeiras", "vassoura mecanica", "sweeper",
)

CLEANING_SUPPORT_KEYWORDS = (
    "mop", "refil mop", "cabo mop", "mop plano", "mop po", "esfregao", "esfregona",
    "balde", "baldes", "balde espremedor", "espremedor", "balde duplo", "bucket",
    "carrinho funcional", "carrinho limpeza", "carrinho de limpeza", "carro funcional",
    "trolley", "cart",
    "disco para", "pad para", "disco enceradeira", "pad enceradeira", "disco limpeza",
    "fibra abrasiva", "lixa para piso", "disco de", "pad de",
    "vassoura", "rodo", "rodinho", "pa de lixo", "pa coletora", "pano", "flanela",
    "squeegee", "broom",
    "espremedor de mop", "prensa", "suporte", "placa",
)

PERIPHERAL_KEYWORDS = (
    "celular", "smartphone", "telefone", "iphone", "android",
    "notebook", "laptop", "computador", "desktop", "pc", "tablet",
    "relogio de ponto", "radio", "walkie talkie",
    "escada", "ladder",
)

STANDALONE_MOTOR_PATTERNS = (
    re.compile(r"motor\s+\d+\s*hp"),
    re.compile(r"motor\s+\d+\s*cv"),
    re.compile(r"motor\s+trifasico"),
    re.compile(r"motor\s+monofasico"),
    re.compile(r"motor\s+eletrico"),
    re.compile(r"motor\s+weg"),
    re.compile(r"^\s*motor\s+"),
)

# compatibility[query_domain][doc_domain]
DOMAIN_COMPATIBILITY: Dict[str, Dict[str, float]] = {
    CLEANING_CORE: {CLEANING_CORE: 1.0, CLEANING_SUPPORT: 0.85, UNKNOWN_DOMAIN: 0.6, PERIPHERAL: 0.2},
    CLEANING_SUPPORT: {CLEANING_SUPPORT: 1.0, CLEANING_CORE: 0.8, UNKNOWN_DOMAIN: 0.6, PERIPHERAL: 0.3},
    PERIPHERAL: {PERIPHERAL: 1.0, UNKNOWN_DOMAIN: 0.7, CLEANING_SUPPORT: 0.4, CLEANING_CORE: 0.3},
    UNKNOWN_DOMAIN: {CLEANING_CORE: 0.8, CLEANING_SUPPORT: 0.75, UNKNOWN_DOMAIN: 0.6, PERIPHERAL: 0.4},
}


@dataclass(frozen=True)
class DomainClassification:
    category: str = UNKNOWN_DOMAIN
    confidence: float = 0.3


def _matches_any(normalized: str, keywords: Sequence[str]) -> bool:
    # word-boundary match so "pc" does not fire inside "epc" or "cart" inside "cartucho"
    padded = f" {normalized} "
    return any(f" {kw} " in padded for kw in keywords)


def classify_text(text: Optional[str]) -> DomainClassification:
    """Classify a description into a domain.

    Support keywords are checked first because phrases such as ``"disco para"``
    are more specific than the machine names they mention.
    """
    if not text or not text.strip():
        return DomainClassification(UNKNOWN_DOMAIN, 0.1)

    normalized = normalize_text(text)
    if _matches_any(normalized, CLEANING_SUPPORT_KEYWORDS):
        return DomainClassification(CLEANING_SUPPORT, 0.90)
    if _matches_any(normalized, CLEANING_CORE_KEYWORDS):
        return DomainClassification(CLEANING_CORE, 0.95)
    if _matches_any(normalized, PERIPHERAL_KEYWORDS):
        return DomainClassification(PERIPHERAL, 0.90)
    if "motor" in normalized and any(rx.search(normalized) for rx in STANDALONE_MOTOR_PATTERNS):
        return DomainClassification(PERIPHERAL, 0.85)
    return DomainClassification(UNKNOWN_DOMAIN, 0.3)


def compute_domain_score(query_domain: DomainClassification, doc_domain: DomainClassification) -> float:
    """Compatibility between query and document domains.

    Args:
        query_domain: Classification of the query.
        doc_domain: Classification of the document.

    Returns:
        ``base * (0.5 + 0.5 * query_conf * doc_conf)`` clamped to ``[0, 1]``.
    """
    row = DOMAIN_COMPATIBILITY.get(query_domain.category, DOMAIN_COMPATIBILITY[UNKNOWN_DOMAIN])
    base = row.get(doc_domain.category, row[UNKNOWN_DOMAIN])
    score = base * (0.5 + 0.5 * query_domain.confidence * doc_domain.confidence)
    return max(0.0, min(1.0, score))
