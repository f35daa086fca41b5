"""Text normalization helpers for comparing learner answers with references"""

import re
import unicodedata

_WHITESPACE_RE = re.compile(r'\s+')


def strip_accents(text: str) -> str:
    """
    Remove combining diacritical marks ("café" -> "cafe").

    Characters are decomposed first (NFD) so that precomposed letters
    like "é" split into a base letter plus a combining mark.
    """
    decomposed = unicodedata.normalize('NFD', text)
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold_case(text: str) -> str:
    """Lowercase, trim and collapse whitespace, keeping accents intact"""
    composed = unicodedata.normalize('NFC', text)
    return _WHITESPACE_RE.sub(' ', composed.lower().strip())


def normalize_text(text: str) -> str:
    """
    Canonical form used for equality checks and similarity scoring.

    Applies canonical decomposition, strips diacritics, lowercases, trims
    and collapses internal whitespace runs into a single space.

    Examples:
        >>> normalize_text("  Où   est la GARE ? ")
        'ou est la gare ?'
        >>> normalize_text("")
        ''
    """
    if not text:
        return ''
    stripped = strip_accents(text).lower()
    # Lowercasing can produce new combining marks (e.g. "İ" -> "i̇")
    stripped = strip_accents(stripped)
    return _WHITESPACE_RE.sub(' ', stripped).strip()
