"""Hybrid extraction combining MRZ data with free-text heuristics.

The MRZ is the primary source when its check digits mostly agree;
labelled free text fills the gaps and competes on confidence otherwise.
"""

from dataclasses import dataclass
from datetime import date

from atlas_verify.models import (
    EXTRACTION_FIELDS,
    DocumentExtraction,
    FieldSource,
    FieldValue,
    RawText,
)
from atlas_verify.mrz.parser import MrzField, MrzRecord
from atlas_verify.utils.config import ExtractionConfig
from atlas_verify.utils.logger import get_logger

from .rule_extractor import RuleExtractor

logger = get_logger(__name__)


@dataclass
class MrzCandidate:
    """An MRZ field value prepared for merging."""

    value: str
    confidence: int
    checksum_valid: bool


def mrz_date_to_iso(value: str, kind: str, today: date | None = None) -> str | None:
    """Convert an MRZ ``YYMMDD`` date to ISO form.

    Birth dates pivot on the current year (a birth year cannot lie in the
    future); expiry dates are always placed in the 2000s.

    Args:
        value: Six-digit MRZ date.
        kind: ``"birth"`` or ``"expiry"``.
        today: Reference date for the birth-year pivot.

    Returns:
        ISO date string, or ``None`` when ``value`` is not a calendar date.
    """
    if len(value) != 6 or not value.isdigit():
        return None
    yy, mm, dd = int(value[0:2]), int(value[2:4]), int(value[4:6])
    today = today or date.today()
    if kind == "birth":
        year = 2000 + yy if yy <= today.year % 100 else 1900 + yy
    else:
        year = 2000 + yy
    try:
        return date(year, mm, dd).isoformat()
    except ValueError:
        return None


class HybridExtractor:
    """Merges MRZ and rule-based extraction into a ``DocumentExtraction``.

    Args:
        config: Extraction configuration with confidence bands and weights.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()
        self.rule_extractor = RuleExtractor(self.config)

    def extract(
        self,
        raw_text: RawText,
        mrz: MrzRecord | None,
        document_id: str,
    ) -> DocumentExtraction:
        """Build the extraction for one document.

        Args:
            raw_text: OCR text and engine confidence.
            mrz: Parsed MRZ, or ``None`` when the document has none.
            document_id: Identifier of the source document.

        Returns:
            Extraction with every field that could be found. Never raises
            for sparse or garbled text.
        """
        mrz_candidates = self._mrz_candidates(mrz) if mrz else {}
        trusted_mrz = mrz is not None and (
            mrz.validity_ratio >= self.config.mostly_valid_ratio
        )

        rule_fields = self.rule_extractor.best_by_field(
            self.rule_extractor.extract(raw_text.text)
        )
        ocr_factor = 0.5 + 0.5 * raw_text.confidence / 100

        merged: dict[str, FieldValue] = {}
        for name in EXTRACTION_FIELDS:
            candidate = mrz_candidates.get(name)
            mrz_value: FieldValue | None = None
            if candidate is not None:
                confidence = candidate.confidence
                if not trusted_mrz:
                    confidence = min(confidence, self.config.heuristic_ceiling)
                mrz_value = FieldValue(candidate.value, confidence, FieldSource.MRZ)

            rule = rule_fields.get(name)
            text_value = (
                FieldValue(rule.value, rule.confidence * ocr_factor, FieldSource.TEXT)
                if rule
                else None
            )

            chosen = self._resolve(
                mrz_value,
                text_value,
                trusted=trusted_mrz and candidate is not None and candidate.checksum_valid,
            )
            if chosen is not None:
                merged[name] = chosen

        extraction = DocumentExtraction(
            document_id=document_id,
            fields=merged,
            confidence=self.aggregate_confidence(merged),
            mrz_found=mrz is not None,
            mrz_valid=bool(mrz and mrz.valid),
            ocr_confidence=raw_text.confidence,
        )
        logger.info(
            "Extraction for %s: %d fields, confidence %d (mrz=%s)",
            document_id,
            len(merged),
            extraction.confidence,
            "valid" if extraction.mrz_valid else ("found" if mrz else "absent"),
        )
        return extraction

    def aggregate_confidence(self, fields: dict[str, FieldValue]) -> float:
        """Weighted confidence across all tracked fields.

        Fields that were not extracted contribute zero, so a sparse
        extraction scores low even if its few fields are certain.
        """
        weights = self.config.field_weights
        total_weight = sum(weights.get(name, 1.0) for name in EXTRACTION_FIELDS)
        if total_weight <= 0:
            return 0.0
        weighted = sum(
            value.confidence * weights.get(name, 1.0) for name, value in fields.items()
        )
        return weighted / total_weight

    def _resolve(
        self,
        mrz_value: FieldValue | None,
        text_value: FieldValue | None,
        trusted: bool,
    ) -> FieldValue | None:
        if mrz_value is None or text_value is None:
            return mrz_value or text_value
        if trusted:
            return mrz_value
        if text_value.confidence > mrz_value.confidence:
            if text_value.value != mrz_value.value:
                logger.debug(
                    "Text value %r outranks MRZ value %r",
                    text_value.value,
                    mrz_value.value,
                )
            return text_value
        return mrz_value

    def _mrz_candidates(self, mrz: MrzRecord) -> dict[str, MrzCandidate]:
        def plain(field: MrzField) -> MrzCandidate | None:
            if not field.value:
                return None
            return MrzCandidate(field.value, field.confidence, field.valid)

        def dated(field: MrzField, kind: str) -> MrzCandidate | None:
            iso = mrz_date_to_iso(field.value, kind)
            if iso is None:
                return None
            return MrzCandidate(iso, field.confidence, field.valid)

        candidates = {
            "surname": plain(mrz.surname),
            "givenNames": plain(mrz.given_names),
            "documentNumber": plain(mrz.document_number),
            "nationality": plain(mrz.nationality),
            "birthDate": dated(mrz.birth_date, "birth"),
            "sex": plain(mrz.sex),
            "expiryDate": dated(mrz.expiry_date, "expiry"),
            "documentType": plain(mrz.document_type),
        }
        return {name: c for name, c in candidates.items() if c is not None}
