"""Compiled abbreviation maps and their process-wide loader.

The artifact is optional: when it is missing or malformed the loader logs
and returns ``None``, which turns query rewriting into a passthrough.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
import asyncio
import json
import logging

from equipsearch import config

logger = logging.getLogger(__name__)

MAP_KEYS = ("exactMap", "tokenMap", "expandMap")


@dataclass(frozen=True)
class AbbrevCompiled:
    """Immutable snapshot of the compiled abbreviation artifact.

    Attributes:
        exact_map: Normalized phrase -> canonical phrase.
        token_map: Token -> canonical token.
        expand_map: Generic token -> ordered alternative phrases.
    """
    exact_map: Mapping[str, str] = field(default_factory=dict)
    token_map: Mapping[str, str] = field(default_factory=dict)
    expand_map: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AbbrevCompiled":
        """Build from the artifact's camelCase JSON keys (missing maps become empty)."""
        exact = {str(k): str(v) for k, v in (raw.get("exactMap") or {}).items()}
        token = {str(k): str(v) for k, v in (raw.get("tokenMap") or {}).items()}
        expand: Dict[str, Tuple[str, ...]] = {}
        for k, items in (raw.get("expandMap") or {}).items():
            if isinstance(items, list):
                expand[str(k)] = tuple(str(i) for i in items)
        return cls(
            exact_map=MappingProxyType(exact),
            token_map=MappingProxyType(token),
            expand_map=MappingProxyType(expand),
        )


def read_abbreviations(path: str | Path) -> Optional[AbbrevCompiled]:
    """Read the artifact synchronously.

    Args:
        path: JSON file with ``exactMap``, ``tokenMap`` and ``expandMap``.

    Returns:
        The compiled maps, or ``None`` when the file is absent or unusable.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("[abbrev] %s not found; continuing without abbrev rewrites", path)
        return None
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("[abbrev] could not read %s (%s); continuing without abbrev rewrites", path, e)
        return None
    if not isinstance(raw, dict):
        logger.warning("[abbrev] %s is not a JSON object; continuing without abbrev rewrites", path)
        return None

    bad = [k for k in MAP_KEYS if raw.get(k) is not None and not isinstance(raw[k], dict)]
    if bad:
        logger.warning(
            "[abbrev] %s has non-object maps (%s); continuing without abbrev rewrites", path, ", ".join(bad)
        )
        return None

    compiled = AbbrevCompiled.from_dict(raw)
    logger.info(
        "[abbrev] loaded %s | exactMap=%d | tokenMap=%d | expandMap=%d",
        path, len(compiled.exact_map), len(compiled.token_map), len(compiled.expand_map),
    )
    return compiled


class AbbreviationStore:
    """Load-once holder for :class:`AbbrevCompiled`.

    Concurrent first callers await the same pending load. ``reset()`` drops
    the memoized value so tests can start clean.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._loaded = False
        self._value: Optional[AbbrevCompiled] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> Optional[AbbrevCompiled]:
        if self._loaded:
            return self._value
        if self._pending is None:
            self._pending = asyncio.ensure_future(asyncio.to_thread(read_abbreviations, self.path))
        pending = self._pending
        try:
            value = await pending
        finally:
            if self._pending is pending:
                self._pending = None
        self._value = value
        self._loaded = True
        return value

    def reset(self) -> None:
        self._loaded = False
        self._value = None
        self._pending = None


_default_store: Optional[AbbreviationStore] = None


def get_abbreviation_store(path: str | Path | None = None) -> AbbreviationStore:
    """Return the process-wide store, creating it on first use."""
    global _default_store
    if _default_store is None:
        _default_store = AbbreviationStore(path or config.ABBREV_PATH)
    return _default_store


def reset_abbreviation_store() -> None:
    """Forget the process-wide store (test isolation)."""
    global _default_store
    if _default_store is not None:
        _default_store.reset()
    _default_store = None


def expand_items(compiled: AbbrevCompiled, token: str) -> List[str]:
    """Alternatives registered for a generic token, in artifact order."""
    return list(compiled.expand_map.get(token, ()))
