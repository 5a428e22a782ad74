"""Machine-readable zone parsing for ICAO 9303 travel documents.

Finds TD1 (3x30), TD2 (2x36) and TD3 (2x44) zones in raw OCR text,
decodes the fixed-offset fields and verifies every check digit. A
mismatched check digit marks the affected field invalid but keeps the
decoded value: it usually means an OCR misread, not a forgery.
"""

import re
from dataclasses import dataclass
from typing import Any

from atlas_verify.utils.logger import get_logger

logger = get_logger(__name__)

CHECK_WEIGHTS: tuple[int, ...] = (7, 3, 1)

CHECKSUM_VALID_CONFIDENCE = 98
WELL_FORMED_CONFIDENCE = 92
MALFORMED_CONFIDENCE = 60
CHECKSUM_MISMATCH_CONFIDENCE = 55

# (layout, line length, line count)
_LAYOUTS: list[tuple[str, int, int]] = [
    ("TD3", 44, 2),
    ("TD2", 36, 2),
    ("TD1", 30, 3),
]

_MRZ_LINE_RE = re.compile(r"^[A-Z0-9<]+$")
_FILLER_GLYPHS = str.maketrans({"«": "<", "‹": "<", "〈": "<", "≤": "<"})
_ALPHA_RE = re.compile(r"^[A-Z<]+$")
_ALNUM_RE = re.compile(r"^[A-Z0-9<]+$")
_DATE_RE = re.compile(r"^\d{6}$")


@dataclass(frozen=True)
class MrzField:
    """A decoded MRZ field with its validity and confidence."""

    value: str
    valid: bool
    confidence: int

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "valid": self.valid, "confidence": self.confidence}


@dataclass(frozen=True)
class MrzRecord:
    """Parsed machine-readable zone. Never mutated after parsing."""

    layout: str
    document_type: MrzField
    issuing_country: MrzField
    surname: MrzField
    given_names: MrzField
    document_number: MrzField
    nationality: MrzField
    birth_date: MrzField
    sex: MrzField
    expiry_date: MrzField
    personal_number: MrzField | None
    composite_valid: bool
    raw_lines: tuple[str, ...]

    @property
    def check_results(self) -> tuple[bool, ...]:
        """Outcome of every check digit carried by this layout."""
        checks = [
            self.document_number.valid,
            self.birth_date.valid,
            self.expiry_date.valid,
            self.composite_valid,
        ]
        if self.personal_number is not None and self.layout == "TD3":
            checks.append(self.personal_number.valid)
        return tuple(checks)

    @property
    def valid(self) -> bool:
        return all(self.check_results)

    @property
    def validity_ratio(self) -> float:
        results = self.check_results
        return sum(results) / len(results)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "layout": self.layout,
            "documentType": self.document_type.to_dict(),
            "issuingCountry": self.issuing_country.to_dict(),
            "surname": self.surname.to_dict(),
            "givenNames": self.given_names.to_dict(),
            "documentNumber": self.document_number.to_dict(),
            "nationality": self.nationality.to_dict(),
            "birthDate": self.birth_date.to_dict(),
            "sex": self.sex.to_dict(),
            "expiryDate": self.expiry_date.to_dict(),
            "personalNumber": (
                self.personal_number.to_dict() if self.personal_number else None
            ),
            "compositeValid": self.composite_valid,
            "valid": self.valid,
        }
        return data


def char_value(ch: str) -> int | None:
    """Numeric value of an MRZ character for check digit arithmetic."""
    if ch.isdigit():
        return int(ch)
    if "A" <= ch <= "Z":
        return ord(ch) - ord("A") + 10
    if ch == "<":
        return 0
    return None


def compute_check_digit(data: str) -> int | None:
    """Compute the ICAO 9303 check digit for ``data``.

    Args:
        data: MRZ characters covered by the check digit.

    Returns:
        Check digit 0..9, or ``None`` if ``data`` holds a character
        outside the MRZ alphabet.
    """
    total = 0
    for idx, ch in enumerate(data):
        value = char_value(ch)
        if value is None:
            return None
        total += value * CHECK_WEIGHTS[idx % 3]
    return total % 10


def verify_check_digit(data: str, check: str) -> bool:
    """Compare the computed check digit of ``data`` with ``check``."""
    expected = compute_check_digit(data)
    if expected is None:
        return False
    if check == "<":
        return expected == 0
    return check.isdigit() and int(check) == expected


def _checked_field(raw: str, check: str) -> MrzField:
    valid = verify_check_digit(raw, check)
    return MrzField(
        value=raw.replace("<", ""),
        valid=valid,
        confidence=CHECKSUM_VALID_CONFIDENCE if valid else CHECKSUM_MISMATCH_CONFIDENCE,
    )


def _plain_field(value: str, well_formed: bool) -> MrzField:
    return MrzField(
        value=value,
        valid=well_formed,
        confidence=WELL_FORMED_CONFIDENCE if well_formed else MALFORMED_CONFIDENCE,
    )


def _code_field(raw: str) -> MrzField:
    return _plain_field(raw.replace("<", ""), bool(_ALPHA_RE.match(raw)))


def _sex_field(raw: str) -> MrzField:
    value = "X" if raw == "<" else raw
    return _plain_field(value, value in {"M", "F", "X"})


def _name_fields(raw: str) -> tuple[MrzField, MrzField]:
    well_formed = bool(_ALPHA_RE.match(raw))
    surname_raw, _, given_raw = raw.partition("<<")
    surname = re.sub(r"\s+", " ", surname_raw.replace("<", " ")).strip()
    given = re.sub(r"\s+", " ", given_raw.replace("<", " ")).strip()
    return _plain_field(surname, well_formed), _plain_field(given, well_formed)


def _optional_field(raw: str, check: str | None) -> MrzField | None:
    if not raw.strip("<"):
        return None
    if check is None:
        return _plain_field(raw.replace("<", ""), bool(_ALNUM_RE.match(raw)))
    return _checked_field(raw, check)


def _date_field(raw: str, check: str) -> MrzField:
    field = _checked_field(raw, check)
    if not _DATE_RE.match(raw):
        return MrzField(field.value, False, CHECKSUM_MISMATCH_CONFIDENCE)
    return field


def normalize_mrz_line(line: str) -> str:
    """Upper-case a text line, map filler look-alikes and drop spaces."""
    return re.sub(r"\s+", "", line.translate(_FILLER_GLYPHS).upper())


def find_mrz_lines(text: str) -> tuple[str, list[str]] | None:
    """Locate the last group of MRZ-shaped lines in ``text``.

    Returns:
        ``(layout, lines)`` or ``None`` when no recognised layout is found.
    """
    candidates = [normalize_mrz_line(line) for line in text.splitlines()]
    candidates = [c for c in candidates if c and _MRZ_LINE_RE.match(c)]

    for layout, length, count in _LAYOUTS:
        sized = [c for c in candidates if len(c) == length]
        if len(sized) < count:
            continue
        # The zone is printed at the bottom of the page.
        group = sized[-count:]
        if not any("<" in line for line in group):
            continue
        return layout, group
    return None


def _parse_td3(lines: list[str]) -> MrzRecord:
    line1, line2 = lines
    surname, given = _name_fields(line1[5:44])
    composite = line2[0:10] + line2[13:20] + line2[21:43]
    return MrzRecord(
        layout="TD3",
        document_type=_code_field(line1[0:2]),
        issuing_country=_code_field(line1[2:5]),
        surname=surname,
        given_names=given,
        document_number=_checked_field(line2[0:9], line2[9]),
        nationality=_code_field(line2[10:13]),
        birth_date=_date_field(line2[13:19], line2[19]),
        sex=_sex_field(line2[20]),
        expiry_date=_date_field(line2[21:27], line2[27]),
        personal_number=_optional_field(line2[28:42], line2[42]),
        composite_valid=verify_check_digit(composite, line2[43]),
        raw_lines=tuple(lines),
    )


def _parse_td2(lines: list[str]) -> MrzRecord:
    line1, line2 = lines
    surname, given = _name_fields(line1[5:36])
    composite = line2[0:10] + line2[13:20] + line2[21:35]
    return MrzRecord(
        layout="TD2",
        document_type=_code_field(line1[0:2]),
        issuing_country=_code_field(line1[2:5]),
        surname=surname,
        given_names=given,
        document_number=_checked_field(line2[0:9], line2[9]),
        nationality=_code_field(line2[10:13]),
        birth_date=_date_field(line2[13:19], line2[19]),
        sex=_sex_field(line2[20]),
        expiry_date=_date_field(line2[21:27], line2[27]),
        personal_number=_optional_field(line2[28:35], None),
        composite_valid=verify_check_digit(composite, line2[35]),
        raw_lines=tuple(lines),
    )


def _parse_td1(lines: list[str]) -> MrzRecord:
    line1, line2, line3 = lines
    surname, given = _name_fields(line3[0:30])
    composite = line1[5:30] + line2[0:7] + line2[8:15] + line2[18:29]
    return MrzRecord(
        layout="TD1",
        document_type=_code_field(line1[0:2]),
        issuing_country=_code_field(line1[2:5]),
        surname=surname,
        given_names=given,
        document_number=_checked_field(line1[5:14], line1[14]),
        nationality=_code_field(line2[15:18]),
        birth_date=_date_field(line2[0:6], line2[6]),
        sex=_sex_field(line2[7]),
        expiry_date=_date_field(line2[8:14], line2[14]),
        personal_number=_optional_field(line1[15:30], None),
        composite_valid=verify_check_digit(composite, line2[29]),
        raw_lines=tuple(lines),
    )


_PARSERS = {"TD3": _parse_td3, "TD2": _parse_td2, "TD1": _parse_td1}


def parse_mrz(text: str) -> MrzRecord | None:
    """Parse the machine-readable zone contained in OCR text.

    Args:
        text: Raw OCR output for one document.

    Returns:
        The parsed record, or ``None`` when no line group matches a known
        layout. Absence is not an error.
    """
    if not text:
        return None

    found = find_mrz_lines(text)
    if found is None:
        logger.debug("No MRZ found in %d characters of text", len(text))
        return None

    layout, lines = found
    record = _PARSERS[layout](lines)
    logger.info(
        "Parsed %s MRZ: %d/%d check digits valid",
        layout,
        sum(record.check_results),
        len(record.check_results),
    )
    return record
