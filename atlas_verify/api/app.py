"""FastAPI application for the Atlas Verify document verification API.

Provides endpoints for full analysis runs, MRZ parsing and extraction of
already recognised text, policy inspection and health checks.
"""

import shutil
import uuid
from pathlib import Path
from typing import Annotated

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from atlas_verify import __version__
from atlas_verify.extraction.hybrid import HybridExtractor
from atlas_verify.models import ApplicantProfile, RawText
from atlas_verify.mrz.parser import parse_mrz
from atlas_verify.orchestration.pipeline import process_raw_text
from atlas_verify.orchestration.runner import AnalysisRunner
from atlas_verify.orchestration.state_machine import DocumentTask
from atlas_verify.policy.loader import load_policy_file, parse_policy, policy_to_dict
from atlas_verify.utils.config import AppConfig, load_config
from atlas_verify.utils.logger import get_logger

from .schemas import (
    AnalysisResponse,
    DocumentStateResponse,
    ExtractionResponse,
    HealthResponse,
    MrzResponse,
    PolicyRequest,
    PolicyResponse,
    TextRequest,
)

logger = get_logger(__name__)

app = FastAPI(
    title="Atlas Verify API",
    description="Travel document verification and visa eligibility assessment",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/tiff",
    "application/octet-stream",
}


def _get_components() -> tuple[AppConfig, AnalysisRunner]:
    """Build the configuration and a runner for one request."""
    config = load_config()
    return config, AnalysisRunner(config)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        tesseract_available=shutil.which("tesseract") is not None,
    )


@app.get("/policy/default", response_model=PolicyResponse)
async def default_policy() -> PolicyResponse:
    """Return the policy the service applies when none is submitted."""
    config, _ = _get_components()
    loaded = load_policy_file(Path(config.policy.policy_path))
    return PolicyResponse(
        substituted=loaded.substituted,
        reason=loaded.reason,
        policy=policy_to_dict(loaded.policy),
    )


@app.post("/policy/validate", response_model=PolicyResponse)
async def validate_policy(request: PolicyRequest) -> PolicyResponse:
    """Parse policy text and report whether it would be substituted."""
    loaded = parse_policy(request.text)
    return PolicyResponse(
        substituted=loaded.substituted,
        reason=loaded.reason,
        policy=policy_to_dict(loaded.policy),
    )


@app.post("/mrz", response_model=MrzResponse)
async def parse_mrz_text(request: TextRequest) -> MrzResponse:
    """Parse the machine-readable zone out of OCR text."""
    record = parse_mrz(request.text)
    if record is None:
        return MrzResponse(found=False)
    return MrzResponse(found=True, valid=record.valid, record=record.to_dict())


@app.post("/extract", response_model=ExtractionResponse)
async def extract_text(request: TextRequest) -> ExtractionResponse:
    """Build a document extraction from already recognised text."""
    config, _ = _get_components()
    document_id = request.document_id or uuid.uuid4().hex
    extraction = process_raw_text(
        document_id,
        RawText(request.text, request.ocr_confidence),
        HybridExtractor(config.extraction),
    )
    data = extraction.to_dict()
    return ExtractionResponse(
        document_id=extraction.document_id,
        confidence=extraction.confidence,
        mrz_found=extraction.mrz_found,
        mrz_valid=extraction.mrz_valid,
        fields=data["fields"],
    )


@app.post("/analyze", response_model=AnalysisResponse)
async def analyze(
    files: Annotated[list[UploadFile], File(...)],
    surname: Annotated[str, Form()] = "",
    given_names: Annotated[str, Form()] = "",
    date_of_birth: Annotated[str, Form()] = "",
    nationality: Annotated[str, Form()] = "",
    passport_number: Annotated[str, Form()] = "",
    visa_type: Annotated[str, Form()] = "tourist",
    policy_text: Annotated[str | None, Form()] = None,
) -> AnalysisResponse:
    """Run a full analysis over uploaded document images.

    Args:
        files: Document images (PNG, JPEG, WEBP or TIFF).
        surname: Declared surname.
        given_names: Declared given names.
        date_of_birth: Declared date of birth.
        nationality: Declared nationality (ICAO alpha-3).
        passport_number: Declared passport number.
        visa_type: Requested visa type.
        policy_text: Optional policy override as YAML or JSON.

    Returns:
        Report, document states and the policy substitution signal.
    """
    for file in files:
        if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
            raise HTTPException(
                status_code=400,
                detail=f"Unsupported file type: {file.content_type}",
            )

    config, runner = _get_components()
    if policy_text is None or not policy_text.strip():
        policy_path = Path(config.policy.policy_path)
        if policy_path.exists():
            policy_text = policy_path.read_text(encoding="utf-8")

    tasks = [
        DocumentTask.create(file.filename or "document", await file.read())
        for file in files
    ]
    applicant = ApplicantProfile.create(
        surname=surname,
        given_names=given_names,
        date_of_birth=date_of_birth,
        nationality=nationality,
        passport_number=passport_number,
        visa_type=visa_type,
    )

    outcome = await runner.run(tasks, applicant, policy_text=policy_text)
    if not outcome.success:
        logger.warning("Analysis produced no report: %s", outcome.message)

    return AnalysisResponse(
        success=outcome.success,
        message=outcome.message,
        policy_substituted=outcome.policy.substituted,
        policy_notice=outcome.policy.notice,
        documents=[
            DocumentStateResponse(
                document_id=t.document_id,
                name=t.name,
                status=t.status,
                error=t.error,
            )
            for t in outcome.tasks
        ],
        report=outcome.report.to_dict() if outcome.report else None,
    )
