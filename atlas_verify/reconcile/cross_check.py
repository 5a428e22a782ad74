"""Cross-checks between applicant declarations and document data.

Checks are emitted in a fixed order (fullName, dateOfBirth,
passportNumber, nationality) and only when both sides carry a value.
Only the name check can fail; the others flag a mismatch as a warning.
"""

from collections.abc import Sequence

from atlas_verify.models import (
    ApplicantCheck,
    ApplicantProfile,
    CheckStatus,
    DocumentExtraction,
)
from atlas_verify.utils.config import ReconcileConfig
from atlas_verify.utils.logger import get_logger
from atlas_verify.utils.text import (
    name_similarity,
    normalize_country,
    normalize_date,
    normalize_document_number,
)

logger = get_logger(__name__)


def select_best_extraction(
    extractions: Sequence[DocumentExtraction],
) -> DocumentExtraction | None:
    """Return the extraction with the highest aggregate confidence.

    The earliest extraction wins ties.
    """
    best: DocumentExtraction | None = None
    for extraction in extractions:
        if best is None or extraction.confidence > best.confidence:
            best = extraction
    return best


def _canonical_date(value: str) -> str:
    return normalize_date(value) or value.strip()


class CrossCheckReconciler:
    """Compares an ``ApplicantProfile`` with the best document extraction.

    Args:
        config: Name similarity thresholds and the fallback confidence.
    """

    def __init__(self, config: ReconcileConfig | None = None) -> None:
        self.config = config or ReconcileConfig()

    def reconcile(
        self,
        applicant: ApplicantProfile,
        extraction: DocumentExtraction | None,
    ) -> list[ApplicantCheck]:
        """Run all comparable cross-checks.

        Args:
            applicant: Declared applicant data.
            extraction: Best document extraction, or ``None``.

        Returns:
            Checks in the fixed field order.
        """
        if extraction is None:
            return []

        checks = [
            self._check_name(applicant, extraction),
            self._check_birth_date(applicant, extraction),
            self._check_passport_number(applicant, extraction),
            self._check_nationality(applicant, extraction),
        ]
        result = [c for c in checks if c is not None]
        logger.info(
            "Cross-checks for %s: %s",
            extraction.document_id,
            ", ".join(f"{c.field}={c.status}" for c in result) or "none comparable",
        )
        return result

    def reconcile_best(
        self,
        applicant: ApplicantProfile,
        extractions: Sequence[DocumentExtraction],
    ) -> list[ApplicantCheck]:
        """Reconcile against the highest-confidence extraction of a run."""
        return self.reconcile(applicant, select_best_extraction(extractions))

    def _confidence(self, extraction: DocumentExtraction, name: str) -> int:
        found = extraction.fields.get(name)
        return found.confidence if found else self.config.default_confidence

    def _check_name(
        self, applicant: ApplicantProfile, extraction: DocumentExtraction
    ) -> ApplicantCheck | None:
        doc_name = " ".join(
            part
            for part in (extraction.value("givenNames"), extraction.value("surname"))
            if part
        ).strip()
        if not doc_name or not applicant.full_name:
            return None

        similarity = name_similarity(applicant.full_name, doc_name)
        if similarity > self.config.name_pass_threshold:
            status = CheckStatus.PASS
        elif similarity > self.config.name_warning_threshold:
            status = CheckStatus.WARNING
        else:
            status = CheckStatus.FAIL
        return ApplicantCheck(
            field="fullName",
            status=status,
            detail=f"Document vs applicant name similarity {similarity * 100:.1f}%.",
            confidence=similarity * 100,
        )

    def _check_birth_date(
        self, applicant: ApplicantProfile, extraction: DocumentExtraction
    ) -> ApplicantCheck | None:
        doc_dob = extraction.value("birthDate")
        if not doc_dob or not applicant.date_of_birth:
            return None

        document = _canonical_date(doc_dob)
        declared = _canonical_date(applicant.date_of_birth)
        match = document == declared
        return ApplicantCheck(
            field="dateOfBirth",
            status=CheckStatus.PASS if match else CheckStatus.WARNING,
            detail=(
                "Date of birth matches applicant input."
                if match
                else f"DOB mismatch: document {document}, applicant {declared}."
            ),
            confidence=self._confidence(extraction, "birthDate"),
        )

    def _check_passport_number(
        self, applicant: ApplicantProfile, extraction: DocumentExtraction
    ) -> ApplicantCheck | None:
        doc_number = extraction.value("documentNumber")
        if not doc_number or not applicant.passport_number:
            return None

        document = normalize_document_number(doc_number)
        declared = normalize_document_number(applicant.passport_number)
        match = document == declared
        return ApplicantCheck(
            field="passportNumber",
            status=CheckStatus.PASS if match else CheckStatus.WARNING,
            detail=(
                "Passport number aligns."
                if match
                else f"Passport mismatch: document {document}, applicant {declared}."
            ),
            confidence=self._confidence(extraction, "documentNumber"),
        )

    def _check_nationality(
        self, applicant: ApplicantProfile, extraction: DocumentExtraction
    ) -> ApplicantCheck | None:
        doc_nationality = extraction.value("nationality")
        if not doc_nationality or not applicant.nationality:
            return None

        document = normalize_country(doc_nationality)
        declared = normalize_country(applicant.nationality)
        match = document == declared
        return ApplicantCheck(
            field="nationality",
            status=CheckStatus.PASS if match else CheckStatus.WARNING,
            detail=(
                "Nationality consistent."
                if match
                else f"Nationality difference: document {document}, applicant {declared}."
            ),
            confidence=self._confidence(extraction, "nationality"),
        )
