"""Pure pipeline stages downstream of OCR.

Nothing here blocks or keeps state, so stages can run concurrently for
independent documents once their text is available.
"""

from collections.abc import Sequence
from datetime import date

from atlas_verify.extraction.hybrid import HybridExtractor
from atlas_verify.models import ApplicantProfile, DocumentExtraction, RawText
from atlas_verify.mrz.parser import parse_mrz
from atlas_verify.policy.engine import PolicyEngine
from atlas_verify.policy.loader import PolicyLoadResult
from atlas_verify.reconcile.cross_check import CrossCheckReconciler
from atlas_verify.report.builder import StructuredReport, build_report
from atlas_verify.utils.logger import get_logger

logger = get_logger(__name__)


def process_raw_text(
    document_id: str,
    raw_text: RawText,
    extractor: HybridExtractor | None = None,
) -> DocumentExtraction:
    """Turn OCR text into a ``DocumentExtraction``.

    Decoding problems never escape: if parsing blows up on pathological
    text the document gets an empty extraction instead.
    """
    extractor = extractor or HybridExtractor()
    try:
        mrz = parse_mrz(raw_text.text)
        return extractor.extract(raw_text, mrz, document_id)
    except Exception:
        logger.exception("Extraction failed for %s, returning empty result", document_id)
        return DocumentExtraction(
            document_id=document_id, ocr_confidence=raw_text.confidence
        )


def assess(
    applicant: ApplicantProfile,
    extractions: Sequence[DocumentExtraction],
    policy_result: PolicyLoadResult,
    engine: PolicyEngine | None = None,
    reconciler: CrossCheckReconciler | None = None,
    as_of: date | None = None,
) -> StructuredReport:
    """Evaluate eligibility, cross-check the applicant and build the report.

    Args:
        applicant: Declared applicant data.
        extractions: At least one successful extraction.
        policy_result: Loaded policy, possibly the substituted default.
        engine: Policy engine to use.
        reconciler: Cross-check reconciler to use.
        as_of: Reference date for age and expiry criteria.

    Returns:
        The structured report.

    Raises:
        ValueError: If ``extractions`` is empty.
    """
    if not extractions:
        raise ValueError("at least one document extraction is required")

    engine = engine or PolicyEngine()
    reconciler = reconciler or CrossCheckReconciler()

    eligibility = engine.evaluate(applicant, extractions, policy_result.policy, as_of)
    cross_checks = reconciler.reconcile_best(applicant, extractions)
    return build_report(
        extractions,
        eligibility,
        applicant,
        cross_checks,
        policy_notice=policy_result.notice,
    )
