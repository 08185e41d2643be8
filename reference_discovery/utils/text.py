"""Text normalization and similarity helpers shared by all pipeline stages."""

import re
from typing import Iterable, List, Optional

from rapidfuzz.distance import Levenshtein

STOP_WORDS = frozenset(
    """
    a an and are as at be by for from has he in is it its of on that the to
    was will with or but not this these those they them their there then than
    so if when where who which what how why can could should would may might
    must shall do does did have had been being were we our you your i me my
    into onto about over under also such very more most other some any all
    each both using use used based via between within without
    """.split()
)

ACADEMIC_TERMS = frozenset(
    """
    research study analysis methodology framework approach theory model system
    process development implementation evaluation assessment investigation
    examination exploration findings results conclusion evidence data
    empirical systematic comprehensive comparative experimental qualitative
    quantitative statistical analytical theoretical practical
    """.split()
)

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_DOI_PREFIX = re.compile(r"^(?:https?://(?:dx\.)?doi\.org/|doi:\s*)", re.IGNORECASE)
_DOI_PATTERN = re.compile(r"^10\.\d{4,}/\S+$")
_OPERATORS = re.compile(r"\b(?:AND|OR|NOT)\b")


def normalize_text(value: Optional[str]) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    if not value:
        return ""
    value = _PUNCTUATION.sub(" ", value.lower())
    return _WHITESPACE.sub(" ", value).strip()


def normalize_doi(doi: Optional[str]) -> str:
    if not doi:
        return ""
    return _DOI_PREFIX.sub("", doi.strip()).strip().lower()


def is_valid_doi(doi: Optional[str]) -> bool:
    return bool(doi) and bool(_DOI_PATTERN.match(normalize_doi(doi)))


def normalize_url(url: Optional[str]) -> str:
    if not url:
        return ""
    url = url.strip().lower()
    url = re.sub(r"^https?://", "", url)
    url = re.sub(r"^www\.", "", url)
    return url.rstrip("/")


def string_similarity(first: Optional[str], second: Optional[str]) -> float:
    """Normalized Levenshtein similarity of two normalized strings, in [0, 1]."""
    a = normalize_text(first)
    b = normalize_text(second)
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a, b)


def jaccard(first: Iterable[str], second: Iterable[str]) -> float:
    """Jaccard overlap of two string collections. Two empty sets score 0."""
    a = set(first)
    b = set(second)
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def clean_term(term: str) -> str:
    """Lowercase a keyword and strip quoting characters."""
    unquoted = term.replace('"', " ").replace("'", " ").lower()
    return _WHITESPACE.sub(" ", unquoted).strip()


def is_stop_word(term: str) -> bool:
    return term in STOP_WORDS


def is_academic_term(term: str) -> bool:
    return term.lower() in ACADEMIC_TERMS


def extract_query_terms(query: str, min_length: int = 3) -> List[str]:
    """Split a rendered boolean query back into its distinct content terms.

    Parentheses, boolean operators and quotes are removed; terms shorter than
    `min_length` and stop words are dropped; order of first appearance is kept.
    """
    stripped = query.replace("(", " ").replace(")", " ").replace('"', " ")
    stripped = _OPERATORS.sub(" ", stripped)
    terms: List[str] = []
    seen = set()
    for raw in stripped.lower().split():
        term = raw.strip(".,;:!?")
        if len(term) < min_length or term in STOP_WORDS or term in seen:
            continue
        seen.add(term)
        terms.append(term)
    return terms


def count_operators(query: str, operator: str) -> int:
    return len(re.findall(rf"\b{operator}\b", query))
