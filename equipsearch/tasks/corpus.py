"""Equipment corpus loading.

The corpus file is ``{"metadata": {...}, "corpus": [doc, ...]}`` with
camelCase document fields. Loading is strict: anything that would leave the
engine with an ambiguous catalog raises :class:`CorpusLoadError`.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence
import asyncio
import json
import logging
import math
import time

from equipsearch import config
from equipsearch.tasks.domain_classification import DomainClassification, classify_text
from equipsearch.tasks.normalization import parse_brazilian_number
from equipsearch.tasks.taxonomy import ACESSORIO, CATEGORIES, EQUIPAMENTO, INDEFINIDO, detect_category, detect_doc_type

logger = logging.getLogger(__name__)

FRACTION = "fraction"
PERCENT = "percent"


class CorpusLoadError(Exception):
    """Raised when the corpus cannot be loaded; fatal to startup."""


def _sample_count(raw: Any) -> int:
    n = parse_brazilian_number(raw)
    return int(n) if n is not None and math.isfinite(n) and n >= 1 else 1


@dataclass(frozen=True)
class NumericMetric:
    display: float
    mean: float
    median: float
    min: float
    max: float
    sample_count: int = 1
    unit: str = FRACTION

    @classmethod
    def single(cls, value: float, unit: str = FRACTION) -> "NumericMetric":
        return cls(value, value, value, value, value, 1, unit)

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["NumericMetric"]:
        if not isinstance(raw, dict):
            return None
        display = parse_brazilian_number(raw.get("display"))
        if display is None:
            return None

        def num(key: str) -> float:
            value = parse_brazilian_number(raw.get(key))
            return display if value is None else value

        unit = raw.get("unit") if raw.get("unit") in (FRACTION, PERCENT) else FRACTION
        return cls(
            display=display,
            mean=num("mean"),
            median=num("median"),
            min=num("min"),
            max=num("max"),
            sample_count=_sample_count(raw.get("n")),
            unit=unit,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "display": self.display, "mean": self.mean, "median": self.median,
            "min": self.min, "max": self.max, "n": self.sample_count, "unit": self.unit,
        }


@dataclass(frozen=True)
class DocumentMetrics:
    valor_unitario: Optional[NumericMetric] = None
    vida_util_meses: Optional[NumericMetric] = None
    manutencao: Optional[NumericMetric] = None


@dataclass(frozen=True)
class CorpusDocument:
    """One equipment record.

    Attributes:
        id: Unique document id.
        group_id: Clusters SKU variants of the same equipment.
        title: Canonical title, when present.
        text: Searchable text.
        raw_text: Original description.
        semantic_text: Richer text used for embeddings.
        equipment_id: Canonical equipment id.
        embedding: Precomputed vector, if any.
        brand: Brand name.
        supplier: Supplier name.
        metrics: Aggregated price / lifespan / maintenance.
        doc_category: Taxonomy category (``MOP``, ``VASSOURA`` or ``UNKNOWN``).
        doc_type: ``EQUIPAMENTO``, ``ACESSORIO`` or ``INDEFINIDO``.
        domain: Domain classification of the text.
    """
    id: str
    group_id: str
    title: str = ""
    text: str = ""
    raw_text: str = ""
    semantic_text: Optional[str] = None
    equipment_id: Optional[str] = None
    embedding: Optional[List[float]] = None
    brand: Optional[str] = None
    supplier: Optional[str] = None
    metrics: DocumentMetrics = field(default_factory=DocumentMetrics)
    doc_category: str = "UNKNOWN"
    doc_type: str = INDEFINIDO
    domain: DomainClassification = field(default_factory=DomainClassification)

    @property
    def display_title(self) -> str:
        return self.title or self.raw_text or self.text

    @property
    def price(self) -> Optional[float]:
        return self.metrics.valor_unitario.display if self.metrics.valor_unitario else None

    @property
    def lifespan_months(self) -> Optional[float]:
        return self.metrics.vida_util_meses.display if self.metrics.vida_util_meses else None

    @property
    def maintenance_percent(self) -> Optional[float]:
        m = self.metrics.manutencao
        if m is None:
            return None
        return m.display * 100.0 if m.unit == FRACTION else m.display

    def to_payload(self) -> Dict[str, Any]:
        """Public view used in search responses."""
        return {
            "id": self.id,
            "groupId": self.group_id,
            "equipmentId": self.equipment_id,
            "title": self.display_title,
            "text": self.text,
            "brand": self.brand,
            "supplier": self.supplier,
            "price": self.price,
            "lifespanMonths": self.lifespan_months,
            "maintenancePercent": self.maintenance_percent,
            "docCategory": self.doc_category,
            "docType": self.doc_type,
            "domain": self.domain.category,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Corpus-file form (inverse of :func:`parse_document`)."""
        metrics = {
            key: metric.to_dict()
            for key, metric in (
                ("valorUnitario", self.metrics.valor_unitario),
                ("vidaUtilMeses", self.metrics.vida_util_meses),
                ("manutencao", self.metrics.manutencao),
            )
            if metric is not None
        }
        out: Dict[str, Any] = {
            "id": self.id,
            "groupId": self.group_id,
            "equipmentId": self.equipment_id,
            "title": self.title,
            "text": self.text,
            "rawText": self.raw_text,
            "semanticText": self.semantic_text,
            "brand": self.brand,
            "supplier": self.supplier,
            "docCategory": self.doc_category,
            "docType": self.doc_type,
            "metrics": metrics,
        }
        if self.embedding is not None:
            out["embedding"] = list(self.embedding)
        return {k: v for k, v in out.items() if v is not None}


def _parse_embedding(doc_id: str, raw: Any) -> Optional[List[float]]:
    if raw is None:
        return None
    if (
        isinstance(raw, list) and raw
        and all(isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v) for v in raw)
    ):
        return [float(v) for v in raw]
    logger.warning("[corpus] dropping invalid embedding for doc %s", doc_id)
    return None


def _metric(metrics: Dict[str, Any], key: str, legacy: Any, unit: str = FRACTION) -> Optional[NumericMetric]:
    metric = NumericMetric.from_dict(metrics.get(key))
    if metric is not None:
        return metric
    value = parse_brazilian_number(legacy)
    return NumericMetric.single(value, unit) if value is not None else None


def parse_document(item: Dict[str, Any]) -> CorpusDocument:
    """Build a :class:`CorpusDocument` from one corpus entry.

    Raises:
        CorpusLoadError: Missing id, or neither text nor title.
    """
    if not isinstance(item, dict):
        raise CorpusLoadError(f"corpus entry is not an object: {item!r}")
    doc_id = item.get("id")
    if doc_id is None or str(doc_id).strip() == "":
        raise CorpusLoadError("corpus entry without id")
    doc_id = str(doc_id)
    text = str(item.get("text") or "")
    title = str(item.get("title") or "")
    if not text.strip() and not title.strip():
        raise CorpusLoadError(f"corpus entry {doc_id} has neither text nor title")
    raw_text = str(item.get("rawText") or text)

    metrics_raw = item.get("metrics") if isinstance(item.get("metrics"), dict) else {}
    metrics = DocumentMetrics(
        valor_unitario=_metric(metrics_raw, "valorUnitario", item.get("price")),
        vida_util_meses=_metric(metrics_raw, "vidaUtilMeses", item.get("lifespanMonths")),
        manutencao=_metric(metrics_raw, "manutencao", item.get("maintenancePercent"), PERCENT),
    )

    persisted_category = item.get("docCategory")
    if persisted_category in CATEGORIES:
        doc_category = persisted_category
    else:
        doc_category = detect_category(title or text)
    doc_type = item.get("docType")
    if doc_type not in (EQUIPAMENTO, ACESSORIO, INDEFINIDO):
        doc_type = detect_doc_type(title or text)

    return CorpusDocument(
        id=doc_id,
        group_id=str(item.get("groupId") or doc_id),
        title=title,
        text=text,
        raw_text=raw_text,
        semantic_text=item.get("semanticText") or None,
        equipment_id=item.get("equipmentId") or None,
        embedding=_parse_embedding(doc_id, item.get("embedding")),
        brand=item.get("brand") or None,
        supplier=item.get("supplier") or None,
        metrics=metrics,
        doc_category=doc_category,
        doc_type=doc_type,
        domain=classify_text(text or raw_text),
    )


def parse_corpus(raw: Any) -> List[CorpusDocument]:
    """Validate the envelope and parse every entry (ids must be unique)."""
    if not isinstance(raw, dict) or not isinstance(raw.get("corpus"), list):
        raise CorpusLoadError("invalid corpus format: expected {metadata, corpus: [...]} object")
    documents: List[CorpusDocument] = []
    seen: set = set()
    for item in raw["corpus"]:
        doc = parse_document(item)
        if doc.id in seen:
            raise CorpusLoadError(f"duplicate document id: {doc.id}")
        seen.add(doc.id)
        documents.append(doc)
    return documents


def read_corpus_file(path: str | Path) -> List[CorpusDocument]:
    """Read and parse a corpus file synchronously.

    Raises:
        CorpusLoadError: On any IO, JSON or validation problem.
    """
    path = Path(path)
    t0 = time.perf_counter()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise CorpusLoadError(f"corpus file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise CorpusLoadError(f"could not read corpus {path}: {e}") from e
    documents = parse_corpus(raw)
    logger.info(
        "[corpus] loaded %d documents from %s in %.1f ms",
        len(documents), path, (time.perf_counter() - t0) * 1000.0,
    )
    return documents


def write_corpus_file(
    path: str | Path,
    documents: Iterable[CorpusDocument],
    metadata: Optional[Dict[str, Any]] = None,
) -> Path:
    """Write documents back in corpus-file form (e.g. after embedding precompute)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"metadata": metadata or {}, "corpus": [d.to_dict() for d in documents]}
    path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
    return path


class CorpusStore:
    """Load-once corpus holder.

    Concurrent first callers share one pending load. A failed load raises
    :class:`CorpusLoadError` to every waiter and leaves the store unloaded so
    a later call retries.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._documents: Optional[List[CorpusDocument]] = None
        self._by_id: Dict[str, CorpusDocument] = {}
        self._by_group: Dict[str, List[CorpusDocument]] = {}
        self._pending: Optional[asyncio.Future] = None

    @property
    def loaded(self) -> bool:
        return self._documents is not None

    async def load(self) -> List[CorpusDocument]:
        if self._documents is not None:
            return self._documents
        if self._pending is None:
            self._pending = asyncio.ensure_future(asyncio.to_thread(read_corpus_file, self.path))
        pending = self._pending
        try:
            documents = await pending
        finally:
            if self._pending is pending:
                self._pending = None
        if self._documents is None:
            self._set(documents)
        return self._documents

    def _set(self, documents: Sequence[CorpusDocument]) -> None:
        self._documents = list(documents)
        self._by_id = {d.id: d for d in self._documents}
        self._by_group = {}
        for d in self._documents:
            self._by_group.setdefault(d.group_id, []).append(d)

    @property
    def documents(self) -> List[CorpusDocument]:
        if self._documents is None:
            raise RuntimeError("corpus not loaded; await CorpusStore.load() first")
        return self._documents

    def by_id(self, doc_id: str) -> Optional[CorpusDocument]:
        return self._by_id.get(doc_id)

    def by_group(self, group_id: str) -> List[CorpusDocument]:
        return list(self._by_group.get(group_id, []))

    def stats(self) -> Dict[str, Any]:
        return {
            "loaded": self.loaded,
            "document_count": len(self._documents or []),
            "path": str(self.path),
        }

    def reset(self) -> None:
        self._documents = None
        self._by_id = {}
        self._by_group = {}
        self._pending = None


_default_store: Optional[CorpusStore] = None


def get_corpus_store(path: str | Path | None = None) -> CorpusStore:
    """Return the process-wide corpus store, creating it on first use."""
    global _default_store
    if _default_store is None:
        _default_store = CorpusStore(path or config.CORPUS_PATH)
    return _default_store


def reset_corpus_store() -> None:
    global _default_store
    if _default_store is not None:
        _default_store.reset()
    _default_store = None
