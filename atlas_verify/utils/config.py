"""Configuration management for the verification pipeline.

Settings are read from YAML and validated with pydantic. Every section
has defaults so the pipeline runs without a config file.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("configs/config.yaml")


class OCRConfig(BaseModel):
    """Settings for the Tesseract OCR collaborator."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 3


def _default_field_weights() -> dict[str, float]:
    return {
        "documentNumber": 3.0,
        "nationality": 3.0,
        "surname": 2.0,
        "birthDate": 2.0,
        "givenNames": 1.5,
        "expiryDate": 1.5,
        "sex": 0.5,
        "documentType": 0.5,
    }


class ExtractionConfig(BaseModel):
    """Confidence bands and weights used when building extractions."""

    labelled_confidence: int = 65
    pattern_confidence: int = 45
    heuristic_ceiling: int = 50
    mostly_valid_ratio: float = 0.5
    field_weights: dict[str, float] = Field(default_factory=_default_field_weights)


class ReconcileConfig(BaseModel):
    """Thresholds for applicant cross-checks."""

    name_pass_threshold: float = 0.75
    name_warning_threshold: float = 0.4
    default_confidence: int = 60


class PolicyConfig(BaseModel):
    """Location of the eligibility policy document."""

    policy_path: str = "configs/policy.yaml"


class AppConfig(BaseModel):
    """Top-level application configuration."""

    ocr: OCRConfig = Field(default_factory=OCRConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
