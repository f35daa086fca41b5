"""
Unit tests for text normalization helpers.
"""

import sys
import os
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.text_normalizer import fold_case, normalize_text, strip_accents


def test_normalize_removes_accents_case_and_extra_whitespace():
    assert normalize_text("  Où   est la GARE ? ") == "ou est la gare ?"
    assert normalize_text("Élève") == "eleve"
    assert normalize_text("Ça va?\t\n bien") == "ca va? bien"


def test_normalize_empty_string():
    assert normalize_text("") == ""
    assert normalize_text("   ") == ""


def test_normalize_decomposed_and_precomposed_are_equal():
    precomposed = "caf\u00e9"
    decomposed = "cafe\u0301"
    assert normalize_text(precomposed) == normalize_text(decomposed) == "cafe"


@pytest.mark.parametrize("text", [
    "",
    "   ",
    "Bonjour",
    "  J'AI   été  au cinéma ",
    "İstanbul",
    "ﬁn",
    "Noël 🎄",
    "á́",
])
def test_normalize_is_idempotent(text):
    once = normalize_text(text)
    assert normalize_text(once) == once


def test_strip_accents_keeps_base_letters():
    assert strip_accents("café crème") == "cafe creme"
    assert strip_accents("garçon") == "garcon"
    assert strip_accents("Hôtel") == "Hotel"


def test_fold_case_keeps_accents():
    assert fold_case("  Café   Noir ") == "café noir"
    assert fold_case("ÉTÉ") == "été"
