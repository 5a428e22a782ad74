"""Normalisation and fuzzy comparison helpers.

Name similarity blends token coverage with a whole-string edit distance
ratio. Both parts only grow as more tokens match and as the edit distance
shrinks, so the blend does too.
"""

import re
import unicodedata
from datetime import date, datetime

from rapidfuzz.distance import Levenshtein

TOKEN_WEIGHT = 0.6
EDIT_WEIGHT = 0.4
FUZZY_TOKEN_MIN_LENGTH = 4

DATE_FORMATS: list[str] = [
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%Y.%m.%d",
    "%Y%m%d",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d%b%Y",
]


def clamp_confidence(value: float) -> int:
    """Round ``value`` and clamp it into the 0..100 confidence range."""
    return max(0, min(100, int(round(value))))


def normalize_name(name: str) -> str:
    """Casefold, strip diacritics and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    text = stripped.casefold()
    text = re.sub(r"[^\w\s]|[\d_]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def _tokens_match(left: str, right: str) -> bool:
    if left == right:
        return True
    if min(len(left), len(right)) < FUZZY_TOKEN_MIN_LENGTH:
        return False
    return Levenshtein.distance(left, right, score_cutoff=1) <= 1


def token_coverage(left_tokens: list[str], right_tokens: list[str]) -> float:
    """Fraction of the shorter token list found in the longer one.

    Each token of the longer list can satisfy at most one token of the
    shorter list.
    """
    if not left_tokens or not right_tokens:
        return 0.0
    shorter, longer = sorted((left_tokens, right_tokens), key=len)
    available = list(longer)
    matched = 0
    for token in shorter:
        for idx, candidate in enumerate(available):
            if _tokens_match(token, candidate):
                matched += 1
                del available[idx]
                break
    return matched / len(shorter)


def name_similarity(left: str, right: str) -> float:
    """Similarity of two person names in [0, 1].

    Args:
        left: First name string, any case or script decoration.
        right: Second name string.

    Returns:
        1.0 for identical normalised names, 0.0 when either side is empty.
    """
    a = normalize_name(left)
    b = normalize_name(right)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    coverage = token_coverage(a.split(), b.split())
    edit_ratio = Levenshtein.normalized_similarity(a, b)
    return round(TOKEN_WEIGHT * coverage + EDIT_WEIGHT * edit_ratio, 4)


def parse_date(value: str | None) -> date | None:
    """Parse a date written in any of the accepted formats."""
    if not value:
        return None
    cleaned = re.sub(r"\s+", " ", value.strip())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


def normalize_date(value: str | None) -> str | None:
    """Return the ISO ``YYYY-MM-DD`` form of ``value`` when it parses."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


def normalize_document_number(value: str) -> str:
    return re.sub(r"\s+", "", value).upper()


def normalize_country(value: str) -> str:
    return re.sub(r"[^A-Za-z]", "", value).upper()
