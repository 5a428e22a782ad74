"""Loading eligibility policies from editable text.

A policy that fails to parse never aborts an analysis. The loader hands
back the built-in default policy together with the reason, and the caller
decides how to tell the user.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from atlas_verify.utils.logger import get_logger

from .models import Policy, PolicyRule, PolicyThresholds

logger = get_logger(__name__)

DEFAULT_POLICY = Policy(
    version=1,
    default=PolicyRule(
        description="Fallback rule for visa types without a dedicated entry.",
        min_confidence=60,
        min_age=0,
        max_age=120,
        min_expiry_days=180,
    ),
    visa_types={
        "tourist": PolicyRule(
            description="Short-stay leisure travel.",
            min_confidence=60,
            min_age=0,
            max_age=120,
            min_expiry_days=180,
        ),
        "business": PolicyRule(
            description="Short-stay business travel.",
            min_confidence=70,
            min_age=18,
            max_age=120,
            min_expiry_days=180,
        ),
        "student": PolicyRule(
            description="Long-stay study programme.",
            min_confidence=70,
            min_age=16,
            max_age=60,
            min_expiry_days=365,
            weights={"confidence": 0.25, "required_fields": 0.25, "age": 0.25, "expiry": 0.25},
            hard_criteria=["confidence", "required_fields", "age", "expiry"],
        ),
        "transit": PolicyRule(
            description="Airside transit, passport data only.",
            required_fields=["surname", "documentNumber", "nationality"],
            min_confidence=50,
            min_expiry_days=30,
            weights={"confidence": 0.4, "required_fields": 0.4, "age": 0.0, "expiry": 0.2},
        ),
    },
    thresholds=PolicyThresholds(),
)


@dataclass(frozen=True)
class PolicyLoadResult:
    """Outcome of loading a policy.

    ``substituted`` is true when the text could not be used and the
    default policy stands in for it; ``reason`` then says why.
    """

    policy: Policy
    substituted: bool = False
    reason: str | None = None

    @property
    def notice(self) -> str | None:
        if not self.substituted:
            return None
        return f"Policy configuration rejected ({self.reason}); default policy applied."


def _substitute(reason: str) -> PolicyLoadResult:
    logger.warning("Falling back to default policy: %s", reason)
    return PolicyLoadResult(policy=DEFAULT_POLICY, substituted=True, reason=reason)


def _load_text(text: str) -> Any:
    stripped = text.strip()
    if stripped.startswith(("{", "[")):
        return json.loads(stripped)
    return yaml.safe_load(stripped)


def parse_policy(text: str | None) -> PolicyLoadResult:
    """Parse policy text written as YAML or JSON.

    Args:
        text: Policy document. ``None`` or blank text selects the default
            policy without signalling a substitution.

    Returns:
        The parsed policy, or the default policy plus the rejection reason.
    """
    if text is None or not text.strip():
        return PolicyLoadResult(policy=DEFAULT_POLICY)

    try:
        raw = _load_text(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        return _substitute(f"malformed policy text: {exc.__class__.__name__}")

    if not isinstance(raw, dict):
        return _substitute("policy must be a mapping")

    try:
        policy = Policy.model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "policy"
        return _substitute(f"{location}: {first['msg']}")

    logger.info(
        "Loaded policy v%d with %d visa types", policy.version, len(policy.visa_types)
    )
    return PolicyLoadResult(policy=policy)


def load_policy_file(path: Path) -> PolicyLoadResult:
    """Read and parse a policy file; a missing file is a substitution."""
    if not path.exists():
        return _substitute(f"policy file not found: {path}")
    return parse_policy(path.read_text(encoding="utf-8"))


def policy_to_dict(policy: Policy) -> dict[str, Any]:
    return policy.model_dump(mode="json", by_alias=True)


def dump_policy(policy: Policy = DEFAULT_POLICY) -> str:
    """Render a policy as YAML for display or editing."""
    return yaml.safe_dump(policy_to_dict(policy), sort_keys=False)
