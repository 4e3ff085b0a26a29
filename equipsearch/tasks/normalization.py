"""Text normalization shared by every search component.

Provides:
    * :func:`normalize_text` canonical form used for indexing, cache keys and rewrites
    * :func:`consonant_key` short phonetic-ish signature used by the fuzzy channel
    * :func:`sanitize_text` lighter cleanup that keeps case
    * :func:`parse_brazilian_number` for ``"1.234,56"`` style values
"""
from __future__ import annotations
from typing import List, Optional, Union
import re
import unicodedata

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_NON_WORD_RE = re.compile(r"[^\w\s]")
_SPACES_RE = re.compile(r"\s+")
_VOWELS_SPACES_RE = re.compile(r"[aeiou\s]")

CONSONANT_KEY_LENGTH = 10


def strip_accents(text: str) -> str:
    """Remove combining marks after NFD decomposition."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: Optional[str]) -> str:
    """Canonicalize text for search.

    Steps: lowercase, strip diacritics, replace anything outside
    ``[a-z0-9\\s]`` with a space, collapse whitespace, trim.

    Args:
        text: Raw text (``None`` tolerated).

    Returns:
        Normalized text, ``""`` for empty input.
    """
    if not text:
        return ""
    out = strip_accents(text.lower())
    out = _NON_ALNUM_RE.sub(" ", out)
    return _SPACES_RE.sub(" ", out).strip()


def tokenize(text: Optional[str]) -> List[str]:
    """Split already-normalized text on whitespace."""
    return [t for t in (text or "").split(" ") if t]


def sanitize_text(text: Optional[str]) -> str:
    """Strip diacritics and punctuation but keep case and digits."""
    if not text:
        return ""
    out = _NON_WORD_RE.sub(" ", strip_accents(text))
    return _SPACES_RE.sub(" ", out).strip()


def consonant_key(text: Optional[str]) -> str:
    """Consonant signature: normalized text without vowels/spaces, first 10 chars."""
    return _VOWELS_SPACES_RE.sub("", normalize_text(text))[:CONSONANT_KEY_LENGTH]


def parse_brazilian_number(value: Union[str, int, float, None]) -> Optional[float]:
    """Parse Brazilian formatted numbers.

    Args:
        value: ``"1.234,56"``, ``"1234,56"`` or a number.

    Returns:
        Float value, or ``None`` when the input cannot be parsed.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not value:
        return None
    s = str(value).strip().replace(".", "").replace(",", ".")
    if not s:
        return None
    try:
        return float(s)
    except ValueError:
        return None
