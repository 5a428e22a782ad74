"""Core domain types shared across the verification pipeline.

Everything here is immutable once built. Confidences are clamped to the
0..100 range on construction so downstream code never re-checks them.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from atlas_verify.utils.text import clamp_confidence

EXTRACTION_FIELDS: tuple[str, ...] = (
    "surname",
    "givenNames",
    "documentNumber",
    "nationality",
    "birthDate",
    "sex",
    "expiryDate",
    "documentType",
)


class CheckStatus(StrEnum):
    """Outcome of a single cross-check or policy criterion."""

    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


class FieldSource(StrEnum):
    """Where an extracted field value came from."""

    MRZ = "mrz"
    TEXT = "text"


@dataclass(frozen=True)
class RawText:
    """OCR engine output for one document."""

    text: str
    confidence: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))


@dataclass(frozen=True)
class FieldValue:
    """An extracted value and how much it can be trusted."""

    value: str
    confidence: int
    source: FieldSource = FieldSource.TEXT

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "confidence": self.confidence,
            "source": str(self.source),
        }


@dataclass(frozen=True)
class DocumentExtraction:
    """Merged field extraction for exactly one source document."""

    document_id: str
    fields: Mapping[str, FieldValue] = field(default_factory=dict)
    confidence: int = 0
    mrz_found: bool = False
    mrz_valid: bool = False
    ocr_confidence: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))
        object.__setattr__(
            self, "ocr_confidence", clamp_confidence(self.ocr_confidence)
        )

    def value(self, name: str) -> str | None:
        """Return the value of field ``name`` or ``None`` when absent."""
        found = self.fields.get(name)
        return found.value if found else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "fields": {
                name: self.fields[name].to_dict()
                for name in EXTRACTION_FIELDS
                if name in self.fields
            },
            "confidence": self.confidence,
            "mrzFound": self.mrz_found,
            "mrzValid": self.mrz_valid,
            "ocrConfidence": self.ocr_confidence,
        }


@dataclass(frozen=True)
class ApplicantProfile:
    """Applicant-declared identity and travel intent for one run."""

    surname: str = ""
    given_names: str = ""
    full_name: str = ""
    date_of_birth: str = ""
    nationality: str = ""
    passport_number: str = ""
    visa_type: str = "tourist"

    @classmethod
    def create(
        cls,
        surname: str = "",
        given_names: str = "",
        date_of_birth: str = "",
        nationality: str = "",
        passport_number: str = "",
        visa_type: str = "tourist",
        full_name: str | None = None,
    ) -> "ApplicantProfile":
        """Build a profile, deriving ``full_name`` from its parts if omitted."""
        surname = surname.strip()
        given_names = given_names.strip()
        if full_name is None:
            full_name = f"{given_names} {surname}"
        return cls(
            surname=surname,
            given_names=given_names,
            full_name=full_name.strip(),
            date_of_birth=date_of_birth.strip(),
            nationality=nationality.strip().upper(),
            passport_number=passport_number.strip().upper(),
            visa_type=visa_type.strip().lower() or "tourist",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "surname": self.surname,
            "givenNames": self.given_names,
            "fullName": self.full_name,
            "dateOfBirth": self.date_of_birth,
            "nationality": self.nationality,
            "passportNumber": self.passport_number,
            "visaType": self.visa_type,
        }


@dataclass(frozen=True)
class ApplicantCheck:
    """One comparison between a declared and a document-derived attribute."""

    field: str
    status: CheckStatus
    detail: str
    confidence: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "status": str(self.status),
            "detail": self.detail,
            "confidence": self.confidence,
        }
