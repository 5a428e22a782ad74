"""Tests for policy loading and eligibility evaluation."""

import json
from datetime import date
from pathlib import Path

import pytest

from atlas_verify.models import (
    ApplicantProfile,
    CheckStatus,
    DocumentExtraction,
    FieldSource,
    FieldValue,
)
from atlas_verify.policy.engine import Decision, EligibilityResult, PolicyEngine
from atlas_verify.policy.loader import (
    DEFAULT_POLICY,
    dump_policy,
    load_policy_file,
    parse_policy,
    policy_to_dict,
)
from atlas_verify.policy.models import Policy, PolicyRule

FULL_FIELDS = {
    "surname": "ERIKSSON",
    "givenNames": "ANNA MARIA",
    "documentNumber": "L898902C3",
    "nationality": "UTO",
    "birthDate": "1974-08-12",
    "sex": "F",
    "expiryDate": "2034-04-15",
    "documentType": "P",
}


def _extraction(
    confidence: int = 90, document_id: str = "doc-1", **overrides: str | None
) -> DocumentExtraction:
    """Create a DocumentExtraction with every field, minus ``None`` overrides."""
    values = {**FULL_FIELDS, **overrides}
    fields = {
        name: FieldValue(value, 95, FieldSource.MRZ)
        for name, value in values.items()
        if value is not None
    }
    return DocumentExtraction(document_id=document_id, fields=fields, confidence=confidence)


def _applicant(visa_type: str = "tourist", date_of_birth: str = "1974-08-12") -> ApplicantProfile:
    return ApplicantProfile.create(
        surname="Eriksson",
        given_names="Anna Maria",
        date_of_birth=date_of_birth,
        nationality="UTO",
        passport_number="L898902C3",
        visa_type=visa_type,
    )


class TestParsePolicy:
    """Tests for parsing policy text."""

    def test_blank_text_is_default_without_notice(self) -> None:
        for text in (None, "", "   \n"):
            loaded = parse_policy(text)
            assert loaded.policy is DEFAULT_POLICY
            assert loaded.substituted is False
            assert loaded.notice is None

    def test_yaml_with_camel_case_keys(self) -> None:
        text = (
            "version: 2\n"
            "visaTypes:\n"
            "  Work:\n"
            "    minConfidence: 75\n"
            "    minAge: 21\n"
            "    hardCriteria: [confidence, requiredFields]\n"
            "thresholds:\n"
            "  eligibleScore: 0.9\n"
        )
        loaded = parse_policy(text)
        assert loaded.substituted is False
        assert loaded.policy.version == 2
        name, rule = loaded.policy.rule_for(" WORK ")
        assert name == "work"
        assert rule.min_confidence == 75
        assert rule.min_age == 21
        assert rule.hard_criteria == ["confidence", "required_fields"]
        assert loaded.policy.thresholds.eligible_score == 0.9

    def test_json_with_snake_case_keys(self) -> None:
        text = json.dumps({"default": {"min_confidence": 40, "min_expiry_days": 0}})
        loaded = parse_policy(text)
        assert loaded.substituted is False
        assert loaded.policy.default.min_confidence == 40
        assert loaded.policy.default.min_expiry_days == 0

    @pytest.mark.parametrize(
        "text",
        [
            "visaTypes: [unclosed",
            "{not json",
            "- just\n- a list",
            "plain words",
            '{"default": {"minConfidence": 150}}',
            '{"default": {"colour": "blue"}}',
            '{"default": {"requiredFields": ["shoeSize"]}}',
            '{"default": {"minAge": 30, "maxAge": 20}}',
            '{"default": {"weights": {"luck": 1.0}}}',
            '{"default": {"weights": {"age": -1}}}',
            '{"default": {"weights": {"confidence": NaN}}}',
            '{"visaTypes": {"tourist": {"weights": {"expiry": Infinity}}}}',
            "visaTypes:\n  tourist:\n    weights:\n      age: .inf\n",
            "default:\n  weights:\n    confidence: .nan\n",
            '{"thresholds": {"eligibleScore": 0.3, "ineligibleScore": 0.6}}',
        ],
    )
    def test_invalid_text_is_substituted(self, text: str) -> None:
        loaded = parse_policy(text)
        assert loaded.substituted is True
        assert loaded.policy is DEFAULT_POLICY
        assert loaded.reason

    def test_reason_names_the_problem(self) -> None:
        loaded = parse_policy('{"default": {"requiredFields": ["shoeSize"]}}')
        assert "shoeSize" in loaded.reason
        loaded = parse_policy("- a\n- b")
        assert loaded.reason == "policy must be a mapping"

    def test_notice(self) -> None:
        loaded = parse_policy("{broken")
        assert loaded.notice.startswith("Policy configuration rejected (")
        assert loaded.notice.endswith("default policy applied.")

    def test_unknown_visa_type_uses_default_rule(self) -> None:
        name, rule = DEFAULT_POLICY.rule_for("diplomatic")
        assert name == "default"
        assert rule is DEFAULT_POLICY.default


class TestPolicyFiles:
    """Tests for policy files and rendering."""

    def test_missing_file_is_substituted(self, tmp_path: Path) -> None:
        loaded = load_policy_file(tmp_path / "nope.yaml")
        assert loaded.substituted is True
        assert "not found" in loaded.reason

    def test_shipped_policy_matches_builtin(self, config_dir: Path) -> None:
        loaded = load_policy_file(config_dir / "policy.yaml")
        assert loaded.substituted is False
        assert policy_to_dict(loaded.policy) == policy_to_dict(DEFAULT_POLICY)

    def test_dump_round_trip(self) -> None:
        loaded = parse_policy(dump_policy())
        assert loaded.substituted is False
        assert policy_to_dict(loaded.policy) == policy_to_dict(DEFAULT_POLICY)

    def test_dump_uses_camel_case(self) -> None:
        text = dump_policy()
        assert "visaTypes:" in text
        assert "minConfidence:" in text


class TestPolicyEngine:
    """Tests for the PolicyEngine class."""

    def setup_method(self) -> None:
        self.engine = PolicyEngine()

    def _statuses(self, result: EligibilityResult) -> dict[str, CheckStatus]:
        return {e.criterion: e.status for e in result.evaluations}

    def test_clean_applicant_is_eligible(self, as_of: date) -> None:
        result = self.engine.evaluate(_applicant(), [_extraction()], DEFAULT_POLICY, as_of)
        assert result.decision == Decision.ELIGIBLE
        assert result.score == 1.0
        assert result.rule_applied == "tourist"
        assert [e.criterion for e in result.evaluations] == [
            "confidence",
            "required_fields",
            "age",
            "expiry",
        ]

    def test_unknown_visa_type_falls_back(self, as_of: date) -> None:
        result = self.engine.evaluate(
            _applicant("diplomatic"), [_extraction()], DEFAULT_POLICY, as_of
        )
        assert result.rule_applied == "default"
        assert result.visa_type == "diplomatic"

    def test_confidence_warning_band(self, as_of: date) -> None:
        result = self.engine.evaluate(
            _applicant(), [_extraction(confidence=55)], DEFAULT_POLICY, as_of
        )
        assert self._statuses(result)["confidence"] == CheckStatus.WARNING
        assert result.score == pytest.approx(0.85)
        assert result.decision == Decision.CONDITIONALLY_ELIGIBLE

    def test_low_confidence_is_hard_fail(self, as_of: date) -> None:
        result = self.engine.evaluate(
            _applicant(), [_extraction(confidence=40)], DEFAULT_POLICY, as_of
        )
        assert self._statuses(result)["confidence"] == CheckStatus.FAIL
        assert result.decision == Decision.INELIGIBLE
        assert result.score < DEFAULT_POLICY.thresholds.ineligible_score

    def test_missing_required_field(self, as_of: date) -> None:
        result = self.engine.evaluate(
            _applicant(), [_extraction(nationality=None)], DEFAULT_POLICY, as_of
        )
        failed = result.failed
        assert [e.criterion for e in failed] == ["required_fields"]
        assert "nationality" in failed[0].rationale
        assert result.decision == Decision.INELIGIBLE

    def test_soft_required_fields_warn(self, as_of: date) -> None:
        policy = Policy(default=PolicyRule(hard_criteria=["confidence"]))
        result = self.engine.evaluate(
            _applicant("any"), [_extraction(nationality=None)], policy, as_of
        )
        assert self._statuses(result)["required_fields"] == CheckStatus.WARNING

    def test_expired_document(self, as_of: date) -> None:
        result = self.engine.evaluate(
            _applicant(), [_extraction(expiryDate="2026-01-01")], DEFAULT_POLICY, as_of
        )
        assert self._statuses(result)["expiry"] == CheckStatus.FAIL
        assert result.decision == Decision.INELIGIBLE

    def test_expiry_inside_lead_time_warns(self, as_of: date) -> None:
        result = self.engine.evaluate(
            _applicant(), [_extraction(expiryDate="2027-01-01")], DEFAULT_POLICY, as_of
        )
        assert self._statuses(result)["expiry"] == CheckStatus.WARNING
        assert result.score == pytest.approx(0.875)
        assert result.decision == Decision.CONDITIONALLY_ELIGIBLE

    def test_unknown_expiry_warns(self, as_of: date) -> None:
        policy = Policy(default=PolicyRule(required_fields=["surname"]))
        result = self.engine.evaluate(
            _applicant("any"), [_extraction(expiryDate=None)], policy, as_of
        )
        assert self._statuses(result)["expiry"] == CheckStatus.WARNING

    def test_soft_age_failure_is_conditional(self, as_of: date) -> None:
        result = self.engine.evaluate(
            _applicant("business"),
            [_extraction(birthDate="2012-01-01")],
            DEFAULT_POLICY,
            as_of,
        )
        assert self._statuses(result)["age"] == CheckStatus.FAIL
        assert result.decision == Decision.CONDITIONALLY_ELIGIBLE

    def test_hard_age_failure_is_ineligible(self, as_of: date) -> None:
        result = self.engine.evaluate(
            _applicant("student"),
            [_extraction(birthDate="1950-01-01", expiryDate="2030-01-01")],
            DEFAULT_POLICY,
            as_of,
        )
        assert self._statuses(result)["age"] == CheckStatus.FAIL
        assert result.decision == Decision.INELIGIBLE

    def test_age_falls_back_to_declared_birth_date(self, as_of: date) -> None:
        policy = Policy(default=PolicyRule(required_fields=["surname"], min_age=18))
        result = self.engine.evaluate(
            _applicant("any"), [_extraction(birthDate=None)], policy, as_of
        )
        age = next(e for e in result.evaluations if e.criterion == "age")
        assert age.status == CheckStatus.PASS
        assert "declared" in age.rationale

    def test_unknown_age_warns(self, as_of: date) -> None:
        policy = Policy(default=PolicyRule(required_fields=["surname"]))
        result = self.engine.evaluate(
            _applicant("any", date_of_birth=""), [_extraction(birthDate=None)], policy, as_of
        )
        assert self._statuses(result)["age"] == CheckStatus.WARNING

    def test_zero_weight_criterion_skipped(self, as_of: date) -> None:
        result = self.engine.evaluate(
            _applicant("transit"), [_extraction()], DEFAULT_POLICY, as_of
        )
        assert [e.criterion for e in result.evaluations] == [
            "confidence",
            "required_fields",
            "expiry",
        ]
        assert result.decision == Decision.ELIGIBLE

    def test_best_extraction_is_used(self, as_of: date) -> None:
        extractions = [_extraction(confidence=30, document_id="a"), _extraction(document_id="b")]
        result = self.engine.evaluate(_applicant(), extractions, DEFAULT_POLICY, as_of)
        assert self._statuses(result)["confidence"] == CheckStatus.PASS

    def test_no_extractions_is_ineligible(self, as_of: date) -> None:
        result = self.engine.evaluate(_applicant(), [], DEFAULT_POLICY, as_of)
        assert result.decision == Decision.INELIGIBLE

    def test_deterministic(self, as_of: date) -> None:
        args = (_applicant(), [_extraction(confidence=58)], DEFAULT_POLICY, as_of)
        assert self.engine.evaluate(*args).to_dict() == self.engine.evaluate(*args).to_dict()

    def test_higher_confidence_never_lowers_score(self, as_of: date) -> None:
        scores = [
            self.engine.evaluate(
                _applicant(), [_extraction(confidence=c)], DEFAULT_POLICY, as_of
            ).score
            for c in range(0, 101, 5)
        ]
        assert scores == sorted(scores)

    def test_to_dict(self, as_of: date) -> None:
        data = self.engine.evaluate(
            _applicant(), [_extraction()], DEFAULT_POLICY, as_of
        ).to_dict()
        assert data["decision"] == "eligible"
        assert data["ruleApplied"] == "tourist"
        assert data["evaluations"][0]["status"] == "pass"
