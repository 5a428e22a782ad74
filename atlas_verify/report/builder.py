"""Structured verification report assembly.

The report is the only artifact consumed outside the pipeline. It is
immutable and serialises to flat JSON-compatible data.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from atlas_verify.models import (
    ApplicantCheck,
    ApplicantProfile,
    CheckStatus,
    DocumentExtraction,
)
from atlas_verify.policy.engine import Decision, EligibilityResult
from atlas_verify.reconcile.cross_check import select_best_extraction
from atlas_verify.utils.logger import get_logger
from atlas_verify.utils.text import clamp_confidence

logger = get_logger(__name__)

LOW_CONFIDENCE_DOCUMENT = 50

_EXTRACTION_SHARE = 0.5
_ELIGIBILITY_SHARE = 0.3
_CROSS_CHECK_SHARE = 0.2

_FOLLOW_UPS = {
    "fullName": "Confirm the applicant's name against the document biographic page.",
    "dateOfBirth": "Verify the applicant's date of birth with a second document.",
    "passportNumber": "Confirm the passport number with the applicant.",
    "nationality": "Confirm the applicant's nationality.",
}


class OverallStatus(StrEnum):
    """Top-level verdict of a report."""

    VERIFIED = "verified"
    NEEDS_REVIEW = "needs-review"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StructuredReport:
    """Final artifact of one analysis run."""

    summary: str
    overall_status: OverallStatus
    overall_confidence: int
    next_actions: tuple[str, ...]
    applicant: ApplicantProfile
    extractions: tuple[DocumentExtraction, ...]
    eligibility: EligibilityResult
    cross_checks: tuple[ApplicantCheck, ...]
    policy_notice: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "overallStatus": str(self.overall_status),
            "overallConfidence": self.overall_confidence,
            "nextActions": list(self.next_actions),
            "applicant": self.applicant.to_dict(),
            "extractions": [e.to_dict() for e in self.extractions],
            "eligibility": self.eligibility.to_dict(),
            "crossChecks": [c.to_dict() for c in self.cross_checks],
            "policyNotice": self.policy_notice,
        }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def _overall_status(
    eligibility: EligibilityResult, cross_checks: Sequence[ApplicantCheck]
) -> OverallStatus:
    if eligibility.decision == Decision.INELIGIBLE:
        return OverallStatus.REJECTED
    if any(c.field == "fullName" and c.status == CheckStatus.FAIL for c in cross_checks):
        return OverallStatus.REJECTED
    all_pass = all(c.status == CheckStatus.PASS for c in cross_checks)
    if eligibility.decision == Decision.ELIGIBLE and all_pass:
        return OverallStatus.VERIFIED
    return OverallStatus.NEEDS_REVIEW


def _overall_confidence(
    best: DocumentExtraction | None,
    eligibility: EligibilityResult,
    cross_checks: Sequence[ApplicantCheck],
) -> int:
    parts = [
        (best.confidence if best else 0, _EXTRACTION_SHARE),
        (eligibility.score * 100, _ELIGIBILITY_SHARE),
    ]
    if cross_checks:
        mean = sum(c.confidence for c in cross_checks) / len(cross_checks)
        parts.append((mean, _CROSS_CHECK_SHARE))
    total = sum(weight for _, weight in parts)
    return clamp_confidence(sum(value * weight for value, weight in parts) / total)


def _next_actions(
    status: OverallStatus,
    extractions: Sequence[DocumentExtraction],
    eligibility: EligibilityResult,
    cross_checks: Sequence[ApplicantCheck],
    policy_notice: str | None,
) -> tuple[str, ...]:
    actions: list[str] = []
    for evaluation in eligibility.failed:
        actions.append(f"Resolve failed {evaluation.criterion} check: {evaluation.rationale}")
    for evaluation in eligibility.warnings:
        actions.append(f"Review {evaluation.criterion}: {evaluation.rationale}")
    for check in cross_checks:
        if check.status != CheckStatus.PASS:
            actions.append(_FOLLOW_UPS[check.field])
    for extraction in extractions:
        if extraction.confidence < LOW_CONFIDENCE_DOCUMENT:
            actions.append(
                f"Request a clearer scan of document {extraction.document_id}."
            )
    if policy_notice:
        actions.append("Correct the policy configuration; the default policy was used.")

    if status == OverallStatus.VERIFIED:
        actions.append("Proceed with visa issuance workflow.")
    elif status == OverallStatus.NEEDS_REVIEW:
        actions.append("Route application to a case officer for manual review.")
    else:
        actions.append("Notify the applicant of the outcome and the missing evidence.")

    return tuple(dict.fromkeys(actions))


def _summary(
    status: OverallStatus,
    applicant: ApplicantProfile,
    extractions: Sequence[DocumentExtraction],
    eligibility: EligibilityResult,
    cross_checks: Sequence[ApplicantCheck],
) -> str:
    passed = sum(1 for c in cross_checks if c.status == CheckStatus.PASS)
    name = applicant.full_name or "Applicant"
    return (
        f"{name}: {len(extractions)} document(s) analysed for a "
        f"{applicant.visa_type} visa. Eligibility {eligibility.decision} "
        f"(score {eligibility.score:.2f}, rule {eligibility.rule_applied}); "
        f"{passed}/{len(cross_checks)} cross-checks passed. Status: {status}."
    )


def build_report(
    extractions: Sequence[DocumentExtraction],
    eligibility: EligibilityResult,
    applicant: ApplicantProfile,
    cross_checks: Sequence[ApplicantCheck],
    policy_notice: str | None = None,
) -> StructuredReport:
    """Aggregate the run's results into a ``StructuredReport``.

    Args:
        extractions: Every successful document extraction of the run.
        eligibility: Policy evaluation result.
        applicant: Declared applicant data.
        cross_checks: Ordered applicant cross-checks.
        policy_notice: Set when the default policy replaced a rejected one.

    Returns:
        The immutable report.
    """
    best = select_best_extraction(extractions)
    status = _overall_status(eligibility, cross_checks)
    report = StructuredReport(
        summary=_summary(status, applicant, extractions, eligibility, cross_checks),
        overall_status=status,
        overall_confidence=_overall_confidence(best, eligibility, cross_checks),
        next_actions=_next_actions(
            status, extractions, eligibility, cross_checks, policy_notice
        ),
        applicant=applicant,
        extractions=tuple(extractions),
        eligibility=eligibility,
        cross_checks=tuple(cross_checks),
        policy_notice=policy_notice,
    )
    logger.info(
        "Report built: %s, confidence %d, %d next actions",
        report.overall_status,
        report.overall_confidence,
        len(report.next_actions),
    )
    return report
