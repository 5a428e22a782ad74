"""Eligibility evaluation against a visa policy.

Each criterion of the selected rule is evaluated against the best
available extraction and the applicant profile, then folded into a
weighted score and a decision. Evaluation is a pure function of its
inputs, including the reference date.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date
from enum import StrEnum
from typing import Any

from atlas_verify.models import ApplicantProfile, CheckStatus, DocumentExtraction
from atlas_verify.reconcile.cross_check import select_best_extraction
from atlas_verify.utils.logger import get_logger
from atlas_verify.utils.text import parse_date

from .models import CRITERIA, Policy, PolicyRule, PolicyThresholds

logger = get_logger(__name__)

_CREDIT = {CheckStatus.PASS: 1.0, CheckStatus.WARNING: 0.5, CheckStatus.FAIL: 0.0}


class Decision(StrEnum):
    """Eligibility decision."""

    ELIGIBLE = "eligible"
    CONDITIONALLY_ELIGIBLE = "conditionally-eligible"
    INELIGIBLE = "ineligible"


@dataclass(frozen=True)
class CriterionResult:
    """Result of evaluating one policy criterion."""

    criterion: str
    status: CheckStatus
    rationale: str
    weight: float
    hard: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "criterion": self.criterion,
            "status": str(self.status),
            "rationale": self.rationale,
            "weight": self.weight,
            "hard": self.hard,
        }


@dataclass(frozen=True)
class EligibilityResult:
    """Decision, score and per-criterion evaluations for one applicant."""

    decision: Decision
    score: float
    visa_type: str
    rule_applied: str
    evaluations: tuple[CriterionResult, ...]

    @property
    def failed(self) -> tuple[CriterionResult, ...]:
        return tuple(e for e in self.evaluations if e.status == CheckStatus.FAIL)

    @property
    def warnings(self) -> tuple[CriterionResult, ...]:
        return tuple(e for e in self.evaluations if e.status == CheckStatus.WARNING)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": str(self.decision),
            "score": self.score,
            "visaType": self.visa_type,
            "ruleApplied": self.rule_applied,
            "evaluations": [e.to_dict() for e in self.evaluations],
        }


@dataclass(frozen=True)
class _Context:
    applicant: ApplicantProfile
    best: DocumentExtraction | None
    rule: PolicyRule
    thresholds: PolicyThresholds
    as_of: date


def _age_on(birth: date, as_of: date) -> int:
    return as_of.year - birth.year - ((as_of.month, as_of.day) < (birth.month, birth.day))


class PolicyEngine:
    """Evaluates applicants against a ``Policy``.

    Criteria are dispatched through a registry, one evaluator per
    criterion name, each returning a status and a rationale.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[_Context], tuple[CheckStatus, str]]] = {
            "confidence": self._evaluate_confidence,
            "required_fields": self._evaluate_required_fields,
            "age": self._evaluate_age,
            "expiry": self._evaluate_expiry,
        }

    def evaluate(
        self,
        applicant: ApplicantProfile,
        extractions: Sequence[DocumentExtraction],
        policy: Policy,
        as_of: date | None = None,
    ) -> EligibilityResult:
        """Evaluate eligibility for the applicant's visa type.

        Args:
            applicant: Declared applicant data.
            extractions: All document extractions of the run.
            policy: Policy to apply.
            as_of: Reference date for age and expiry; defaults to today.

        Returns:
            Eligibility decision with per-criterion evaluations.
        """
        rule_name, rule = policy.rule_for(applicant.visa_type)
        ctx = _Context(
            applicant=applicant,
            best=select_best_extraction(extractions),
            rule=rule,
            thresholds=policy.thresholds,
            as_of=as_of or date.today(),
        )

        evaluations: list[CriterionResult] = []
        for criterion in CRITERIA:
            weight = rule.weight(criterion)
            hard = criterion in rule.hard_criteria
            if weight <= 0 and not hard:
                continue
            status, rationale = self._evaluators[criterion](ctx)
            evaluations.append(CriterionResult(criterion, status, rationale, weight, hard))

        score = self._score(evaluations, policy.thresholds)
        decision = self._decide(evaluations, score, policy.thresholds)
        logger.info(
            "Eligibility for %s visa (rule %s): %s, score %.2f",
            applicant.visa_type,
            rule_name,
            decision,
            score,
        )
        return EligibilityResult(
            decision=decision,
            score=score,
            visa_type=applicant.visa_type,
            rule_applied=rule_name,
            evaluations=tuple(evaluations),
        )

    def _score(
        self, evaluations: list[CriterionResult], thresholds: PolicyThresholds
    ) -> float:
        total_weight = sum(e.weight for e in evaluations)
        if total_weight <= 0:
            score = 1.0 if all(e.status == CheckStatus.PASS for e in evaluations) else 0.0
        else:
            score = sum(_CREDIT[e.status] * e.weight for e in evaluations) / total_weight
        if any(e.hard and e.status == CheckStatus.FAIL for e in evaluations):
            score = min(score, max(0.0, thresholds.ineligible_score - 0.01))
        return round(score, 4)

    def _decide(
        self,
        evaluations: list[CriterionResult],
        score: float,
        thresholds: PolicyThresholds,
    ) -> Decision:
        if any(e.hard and e.status == CheckStatus.FAIL for e in evaluations):
            return Decision.INELIGIBLE
        if score < thresholds.ineligible_score:
            return Decision.INELIGIBLE
        clean = all(e.status == CheckStatus.PASS for e in evaluations)
        if clean and score >= thresholds.eligible_score:
            return Decision.ELIGIBLE
        return Decision.CONDITIONALLY_ELIGIBLE

    def _evaluate_confidence(self, ctx: _Context) -> tuple[CheckStatus, str]:
        """Best extraction confidence against the rule minimum."""
        confidence = ctx.best.confidence if ctx.best else 0
        minimum = ctx.rule.min_confidence
        if confidence >= minimum:
            return CheckStatus.PASS, (
                f"Extraction confidence {confidence} meets minimum {minimum}."
            )
        if confidence >= minimum - ctx.thresholds.confidence_warning_margin:
            return CheckStatus.WARNING, (
                f"Extraction confidence {confidence} is just below minimum {minimum}."
            )
        return CheckStatus.FAIL, (
            f"Extraction confidence {confidence} is below minimum {minimum}."
        )

    def _evaluate_required_fields(self, ctx: _Context) -> tuple[CheckStatus, str]:
        """Presence of every required field in the best extraction."""
        present = ctx.best.fields if ctx.best else {}
        missing = [name for name in ctx.rule.required_fields if name not in present]
        if not missing:
            return CheckStatus.PASS, "All required document fields were extracted."
        status = (
            CheckStatus.FAIL
            if "required_fields" in ctx.rule.hard_criteria
            else CheckStatus.WARNING
        )
        return status, f"Missing required fields: {', '.join(missing)}."

    def _evaluate_age(self, ctx: _Context) -> tuple[CheckStatus, str]:
        """Applicant age within the rule bounds."""
        birth_text = ctx.best.value("birthDate") if ctx.best else None
        source = "document"
        if not birth_text:
            birth_text = ctx.applicant.date_of_birth
            source = "declared"
        birth = parse_date(birth_text)
        if birth is None or birth > ctx.as_of:
            return CheckStatus.WARNING, "Date of birth unavailable; age not verified."

        age = _age_on(birth, ctx.as_of)
        low, high = ctx.rule.min_age, ctx.rule.max_age
        if low is not None and age < low:
            return CheckStatus.FAIL, f"Applicant age {age} ({source}) is below minimum {low}."
        if high is not None and age > high:
            return CheckStatus.FAIL, f"Applicant age {age} ({source}) exceeds maximum {high}."
        return CheckStatus.PASS, f"Applicant age {age} ({source}) is within policy bounds."

    def _evaluate_expiry(self, ctx: _Context) -> tuple[CheckStatus, str]:
        """Document validity remaining against the required lead time."""
        expiry = parse_date(ctx.best.value("expiryDate")) if ctx.best else None
        if expiry is None:
            return CheckStatus.WARNING, "Document expiry date unavailable."

        days_left = (expiry - ctx.as_of).days
        lead = ctx.rule.min_expiry_days
        if days_left < 0:
            return CheckStatus.FAIL, f"Document expired on {expiry.isoformat()}."
        if days_left < lead:
            return CheckStatus.WARNING, (
                f"Document expires in {days_left} days; policy requires {lead}."
            )
        return CheckStatus.PASS, (
            f"Document valid for {days_left} more days (requires {lead})."
        )
