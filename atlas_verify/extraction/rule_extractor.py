"""Rule-based field extraction from the free-text body of a document.

Looks for labelled lines ("Surname:", "Date of Birth", "Passport No.")
and a few unlabelled patterns. Values found next to a label carry the
labelled confidence band, bare pattern hits the lower pattern band.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from atlas_verify.utils.config import ExtractionConfig
from atlas_verify.utils.logger import get_logger
from atlas_verify.utils.text import normalize_country, normalize_date

logger = get_logger(__name__)


@dataclass
class ExtractedField:
    """A field value extracted by a text rule."""

    field_name: str
    value: str
    confidence: int
    line_number: int
    extraction_method: str


_LABELS: dict[str, str] = {
    "surname": r"surname|last\s*name|family\s*name|nom",
    "givenNames": r"given\s*names?(?:\s*\(s\))?|first\s*names?|forenames?|pr[ée]noms?",
    "documentNumber": (
        r"(?:passport|document|travel\s*document)\s*(?:no\.?|number|num\.?|#)"
        r"|no\.?\s*du\s*passeport"
    ),
    "nationality": r"nationality|nationalit[ée]|citizenship",
    "birthDate": r"date\s*of\s*birth|birth\s*date|d\.?o\.?b\.?|born",
    "expiryDate": (
        r"date\s*of\s*expiry|date\s*of\s*expiration|expiry\s*date"
        r"|expiration\s*date|expires|valid\s*until"
    ),
    "sex": r"sex|gender",
}

_LABEL_RES: dict[str, re.Pattern[str]] = {
    name: re.compile(
        rf"^\s*(?:{pattern})(?![A-Za-z])\s*[:.\-/]?\s*(?P<rest>.*)$", re.IGNORECASE
    )
    for name, pattern in _LABELS.items()
}

_DATE_SEARCH: list[re.Pattern[str]] = [
    re.compile(r"\b\d{4}[-/.]\d{1,2}[-/.]\d{1,2}\b"),
    re.compile(r"\b\d{1,2}[-/.]\d{1,2}[-/.]\d{4}\b"),
    re.compile(r"\b\d{1,2}\s*[A-Za-z]{3,9}\.?\s*\d{4}\b"),
    re.compile(r"\b[A-Za-z]{3,9}\s+\d{1,2},?\s+\d{4}\b"),
]

_NAME_VALUE_RE = re.compile(r"^[A-Za-zÀ-ÿ][A-Za-zÀ-ÿ' \-]*$")
_DOC_NUMBER_VALUE_RE = re.compile(r"\b([A-Z0-9][A-Z0-9 ]{4,13}[A-Z0-9])\b")
_BARE_DOC_NUMBER_RE = re.compile(r"\b([A-Z]{1,2}\s?\d{6,8})\b")

_DOCUMENT_TYPE_KEYWORDS: list[tuple[str, str]] = [
    (r"\bpass(?:port|eport)\b", "P"),
    (r"\bidentity\s*card\b|\bid\s*card\b", "I"),
    (r"\bresidence\s*permit\b", "R"),
    (r"\bvisa\b", "V"),
]

_SEX_VALUES = {"M": "M", "MALE": "M", "F": "F", "FEMALE": "F", "X": "X"}

COUNTRY_CODES: dict[str, str] = {
    "UNITEDSTATES": "USA",
    "UNITEDSTATESOFAMERICA": "USA",
    "AMERICAN": "USA",
    "UNITEDKINGDOM": "GBR",
    "BRITISH": "GBR",
    "BRITISHCITIZEN": "GBR",
    "CANADA": "CAN",
    "CANADIAN": "CAN",
    "FRANCE": "FRA",
    "FRENCH": "FRA",
    "FRANCAISE": "FRA",
    "GERMANY": "D",
    "GERMAN": "D",
    "DEUTSCH": "D",
    "SPAIN": "ESP",
    "SPANISH": "ESP",
    "ITALY": "ITA",
    "ITALIAN": "ITA",
    "INDIA": "IND",
    "INDIAN": "IND",
    "CHINA": "CHN",
    "CHINESE": "CHN",
    "JAPAN": "JPN",
    "JAPANESE": "JPN",
    "AUSTRALIA": "AUS",
    "AUSTRALIAN": "AUS",
    "MEXICO": "MEX",
    "MEXICAN": "MEX",
    "BRAZIL": "BRA",
    "BRAZILIAN": "BRA",
    "NETHERLANDS": "NLD",
    "DUTCH": "NLD",
    "UTOPIA": "UTO",
    "UTOPIAN": "UTO",
}


def _clean_name(value: str) -> str | None:
    value = re.sub(r"\s+", " ", value).strip(" -'")
    if not _NAME_VALUE_RE.match(value) or sum(ch.isalpha() for ch in value) < 2:
        return None
    return value.upper()


def _clean_date(value: str) -> str | None:
    for pattern in _DATE_SEARCH:
        match = pattern.search(value)
        if match:
            normalized = normalize_date(match.group(0))
            if normalized:
                return normalized
    return None


def _clean_document_number(value: str) -> str | None:
    match = _DOC_NUMBER_VALUE_RE.search(value.upper())
    if not match:
        return None
    compact = re.sub(r"\s+", "", match.group(1))
    if not 5 <= len(compact) <= 12 or not any(ch.isdigit() for ch in compact):
        return None
    return compact


def _clean_nationality(value: str) -> str | None:
    letters = normalize_country(value)
    if not letters:
        return None
    if letters in COUNTRY_CODES:
        return COUNTRY_CODES[letters]
    if len(letters) == 3:
        return letters
    return None


def _clean_sex(value: str) -> str | None:
    tokens = re.split(r"[\s/]+", value.strip().upper())
    return _SEX_VALUES.get(tokens[0]) if tokens else None


_CLEANERS: dict[str, Callable[[str], str | None]] = {
    "surname": _clean_name,
    "givenNames": _clean_name,
    "documentNumber": _clean_document_number,
    "nationality": _clean_nationality,
    "birthDate": _clean_date,
    "expiryDate": _clean_date,
    "sex": _clean_sex,
}


class RuleExtractor:
    """Regex-based extractor for the human-readable part of a document.

    Args:
        config: Extraction settings holding the confidence bands.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()

    def extract(self, text: str) -> list[ExtractedField]:
        """Extract every candidate field value from ``text``.

        Args:
            text: OCR text of one document.

        Returns:
            Candidates in document order, possibly several per field.
        """
        lines = [line.strip() for line in text.splitlines()]
        # MRZ lines are handled by the MRZ parser.
        lines = [line if "<<" not in line else "" for line in lines]

        results: list[ExtractedField] = []
        for idx, line in enumerate(lines):
            if not line:
                continue
            results.extend(self._labelled(idx, line, lines))

        results.extend(self._unlabelled(lines, results))
        logger.info("Rule extraction found %d candidate fields", len(results))
        return results

    def best_by_field(self, fields: list[ExtractedField]) -> dict[str, ExtractedField]:
        """Keep the highest-confidence candidate per field, first one on ties."""
        best: dict[str, ExtractedField] = {}
        for candidate in fields:
            current = best.get(candidate.field_name)
            if current is None or candidate.confidence > current.confidence:
                best[candidate.field_name] = candidate
        return best

    def _labelled(
        self, idx: int, line: str, lines: list[str]
    ) -> list[ExtractedField]:
        found: list[ExtractedField] = []
        for field_name, label_re in _LABEL_RES.items():
            match = label_re.match(line)
            if not match:
                continue
            rest = match.group("rest").strip()
            value = _CLEANERS[field_name](rest) if rest else None
            if value is None:
                next_line = self._next_line(idx, lines)
                value = _CLEANERS[field_name](next_line) if next_line else None
            if value is None:
                continue
            found.append(
                ExtractedField(
                    field_name=field_name,
                    value=value,
                    confidence=self.config.labelled_confidence,
                    line_number=idx,
                    extraction_method="label",
                )
            )
            # A line carries one label.
            break
        return found

    def _next_line(self, idx: int, lines: list[str]) -> str | None:
        for candidate in lines[idx + 1 : idx + 3]:
            if candidate:
                if any(label_re.match(candidate) for label_re in _LABEL_RES.values()):
                    return None
                return candidate
        return None

    def _unlabelled(
        self, lines: list[str], labelled: list[ExtractedField]
    ) -> list[ExtractedField]:
        found: list[ExtractedField] = []
        have = {f.field_name for f in labelled}
        text = "\n".join(lines)

        for pattern, code in _DOCUMENT_TYPE_KEYWORDS:
            if re.search(pattern, text, re.IGNORECASE):
                found.append(
                    ExtractedField(
                        field_name="documentType",
                        value=code,
                        confidence=self.config.pattern_confidence,
                        line_number=-1,
                        extraction_method="keyword",
                    )
                )
                break

        if "documentNumber" not in have:
            for idx, line in enumerate(lines):
                match = _BARE_DOC_NUMBER_RE.search(line.upper())
                if match:
                    found.append(
                        ExtractedField(
                            field_name="documentNumber",
                            value=re.sub(r"\s+", "", match.group(1)),
                            confidence=self.config.pattern_confidence,
                            line_number=idx,
                            extraction_method="pattern",
                        )
                    )
                    break
        return found
