"""Pydantic request/response schemas for the FastAPI endpoints."""

from typing import Any

from pydantic import BaseModel, Field

from atlas_verify.orchestration.state_machine import DocumentStatus


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool


class TextRequest(BaseModel):
    """Raw OCR text submitted for MRZ parsing or extraction."""

    text: str
    ocr_confidence: int = Field(default=100, ge=0, le=100)
    document_id: str | None = None


class MrzResponse(BaseModel):
    """Response schema for MRZ parsing."""

    found: bool
    valid: bool = False
    record: dict[str, Any] | None = None


class ExtractionResponse(BaseModel):
    """Response schema for a single text extraction."""

    document_id: str
    confidence: int
    mrz_found: bool
    mrz_valid: bool
    fields: dict[str, dict[str, Any]]


class PolicyRequest(BaseModel):
    """Policy text to validate."""

    text: str


class PolicyResponse(BaseModel):
    """Loaded policy plus the substitution signal."""

    substituted: bool
    reason: str | None = None
    policy: dict[str, Any]


class DocumentStateResponse(BaseModel):
    """Lifecycle state of one submitted document."""

    document_id: str
    name: str
    status: DocumentStatus
    error: str | None = None


class AnalysisResponse(BaseModel):
    """Response schema for a full analysis run."""

    success: bool
    message: str | None = None
    policy_substituted: bool
    policy_notice: str | None = None
    documents: list[DocumentStateResponse]
    report: dict[str, Any] | None = None
