"""Submission analysis endpoint."""

from fastapi import APIRouter, Depends, HTTPException, status

from tailoredu.config.app_config import load_app_config
from tailoredu.core.submission_analysis import analyze_submission
from tailoredu.db.backend import BackendStore
from tailoredu.llm.client import LLMClient
from tailoredu.web.dependencies import get_backend_store, get_llm_client, require_user
from tailoredu.web.schemas import (
    AnalyzeSubmissionRequest,
    AnalyzeSubmissionResponse,
    ErrorResponse,
)

router = APIRouter(prefix="/functions", tags=["analysis"])


@router.post(
    "/analyze-submission",
    response_model=AnalyzeSubmissionResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def analyze(
    request: AnalyzeSubmissionRequest,
    user_id: str = Depends(require_user),
    store: BackendStore = Depends(get_backend_store),
    client: LLMClient = Depends(get_llm_client),
) -> AnalyzeSubmissionResponse:
    """Analyze a student submission with AI and store the result."""
    if not request.submissionId:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing submissionId",
        )

    result = analyze_submission(
        store=store,
        client=client,
        user_id=user_id,
        submission_id=request.submissionId,
        rubric_id=request.rubricId,
        temperature=load_app_config().ai.analysis_temperature,
    )
    return AnalyzeSubmissionResponse(**result.to_dict())
