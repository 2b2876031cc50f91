"""Pydantic schemas for the HTTP functions.

Serialization models for personalization, submission analysis,
class digests and errors.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

from tailoredu import __version__


# =============================================================================
# PERSONALIZATION SCHEMAS
# =============================================================================


class PersonalizationResponseSchema(BaseModel):
    """Response for a personalized assignment."""

    personalized_text: str
    rationale: str
    kept_keywords: list[str]
    changed_elements: list[Literal["context", "examples", "names", "setting"]]
    reading_level_estimate: str


class ValidationIssueSchema(BaseModel):
    """One field-level problem."""

    field: str
    message: str


class ValidationFailedResponse(BaseModel):
    """400 body for invalid requests."""

    error: Literal["validation_failed"] = "validation_failed"
    issues: list[ValidationIssueSchema]


# =============================================================================
# SUBMISSION ANALYSIS SCHEMAS
# =============================================================================


class AnalyzeSubmissionRequest(BaseModel):
    """Request to analyze a submission.

    submissionId is checked by the handler so a missing id gets the
    function's own error message.
    """

    submissionId: str | None = None
    rubricId: str | None = None


class AnalyzeSubmissionResponse(BaseModel):
    """Stored analysis plus the analyzed submission."""

    success: bool = True
    analysis: dict[str, Any]
    submission: dict[str, Any]


# =============================================================================
# CLASS DIGEST SCHEMAS
# =============================================================================


class ClassDigestRequest(BaseModel):
    """Request for a weekly class digest."""

    classId: str | None = None
    variant: str = "teacher"


class ClassDigestResponse(BaseModel):
    """Digest row and whether it came from this week's cache."""

    digest: dict[str, Any]
    cached: bool


# =============================================================================
# ERROR / HEALTH SCHEMAS
# =============================================================================


class ErrorResponse(BaseModel):
    """Generic error body."""

    error: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = __version__
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
