"""Pydantic schema for the visa eligibility policy.

A policy maps visa types to rules and always carries a ``default`` rule
for visa types it does not list. Keys may be written in snake_case or
camelCase so JSON-style policies load unchanged.
"""

import math
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from atlas_verify.models import EXTRACTION_FIELDS

CRITERIA: tuple[str, ...] = ("confidence", "required_fields", "age", "expiry")


def _criterion_key(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _default_required_fields() -> list[str]:
    return ["surname", "documentNumber", "nationality", "birthDate", "expiryDate"]


def _default_weights() -> dict[str, float]:
    return {"confidence": 0.3, "required_fields": 0.3, "age": 0.15, "expiry": 0.25}


def _default_hard_criteria() -> list[str]:
    return ["confidence", "required_fields", "expiry"]


class _PolicyModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        allow_inf_nan=False,
        frozen=True,
    )


class PolicyRule(_PolicyModel):
    """Eligibility criteria for one visa type."""

    description: str = ""
    required_fields: list[str] = Field(default_factory=_default_required_fields)
    min_confidence: int = Field(default=60, ge=0, le=100)
    min_age: int | None = Field(default=None, ge=0)
    max_age: int | None = Field(default=None, ge=0)
    min_expiry_days: int = Field(default=180, ge=0)
    weights: dict[str, float] = Field(default_factory=_default_weights)
    hard_criteria: list[str] = Field(default_factory=_default_hard_criteria)

    @field_validator("required_fields")
    @classmethod
    def _known_fields(cls, value: list[str]) -> list[str]:
        unknown = [name for name in value if name not in EXTRACTION_FIELDS]
        if unknown:
            raise ValueError(f"unknown required fields: {', '.join(unknown)}")
        return value

    @field_validator("weights", mode="before")
    @classmethod
    def _normalize_weights(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        weights = {_criterion_key(str(k)): v for k, v in value.items()}
        unknown = [k for k in weights if k not in CRITERIA]
        if unknown:
            raise ValueError(f"unknown criteria in weights: {', '.join(unknown)}")
        if any(
            not isinstance(v, int | float) or not math.isfinite(v) or v < 0
            for v in weights.values()
        ):
            raise ValueError("weights must be finite non-negative numbers")
        return weights

    @field_validator("hard_criteria", mode="before")
    @classmethod
    def _normalize_hard(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        names = [_criterion_key(str(v)) for v in value]
        unknown = [n for n in names if n not in CRITERIA]
        if unknown:
            raise ValueError(f"unknown hard criteria: {', '.join(unknown)}")
        return names

    @model_validator(mode="after")
    def _age_bounds(self) -> "PolicyRule":
        if (
            self.min_age is not None
            and self.max_age is not None
            and self.min_age > self.max_age
        ):
            raise ValueError("min_age must not exceed max_age")
        return self

    def weight(self, criterion: str) -> float:
        return float(self.weights.get(criterion, 0.0))


class PolicyThresholds(_PolicyModel):
    """Score bands that turn a criterion score into a decision."""

    eligible_score: float = Field(default=0.8, ge=0.0, le=1.0)
    ineligible_score: float = Field(default=0.5, ge=0.0, le=1.0)
    confidence_warning_margin: int = Field(default=10, ge=0, le=100)

    @model_validator(mode="after")
    def _ordered(self) -> "PolicyThresholds":
        if self.ineligible_score > self.eligible_score:
            raise ValueError("ineligible_score must not exceed eligible_score")
        return self


class Policy(_PolicyModel):
    """Visa-type keyed eligibility rules with a fallback rule."""

    version: int = 1
    default: PolicyRule = Field(default_factory=PolicyRule)
    visa_types: dict[str, PolicyRule] = Field(default_factory=dict)
    thresholds: PolicyThresholds = Field(default_factory=PolicyThresholds)

    @field_validator("visa_types", mode="before")
    @classmethod
    def _lower_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k).strip().lower(): v for k, v in value.items()}
        return value

    def rule_for(self, visa_type: str) -> tuple[str, PolicyRule]:
        """Return ``(rule name, rule)`` for a visa type.

        Unknown visa types get the ``default`` rule.
        """
        key = visa_type.strip().lower()
        if key in self.visa_types:
            return key, self.visa_types[key]
        return "default", self.default
