"""Text normalization and edit-distance helpers used by catalog matching"""

import re
import unicodedata

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")
# Case-pack suffix such as "1KGx12" or "500G x20" at the end of a Kyte product name
CASE_PACK_SUFFIX_RE = re.compile(r"\s*x\d+$", re.IGNORECASE)


def normalize_name(value: str) -> str:
    """
    Normalize a product name for comparison.

    Lowercases, strips accents and punctuation, collapses whitespace and
    drops a trailing case-pack suffix ("x12").
    """
    if not value:
        return ""
    text = unicodedata.normalize("NFKD", value)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = CASE_PACK_SUFFIX_RE.sub("", text.strip())
    text = _PUNCTUATION_RE.sub(" ", text.lower())
    text = text.replace("_", " ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_identifier(value: str | None) -> str:
    """Normalize a SKU or barcode for exact comparison"""
    if not value:
        return ""
    return value.strip().upper()


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)"""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Edit-distance similarity in [0, 1]"""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein(a, b) / longest
