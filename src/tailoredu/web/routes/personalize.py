"""Assignment personalization endpoint."""

from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends

from tailoredu.core.personalization import (
    PersonalizationError,
    PersonalizationRequest,
    validate_request,
    validate_response,
)
from tailoredu.core.personalizer import Personalizer
from tailoredu.web.dependencies import get_active_personalizer
from tailoredu.web.errors import ValidationFailedError
from tailoredu.web.schemas import (
    ErrorResponse,
    PersonalizationResponseSchema,
    ValidationFailedResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/functions", tags=["personalization"])


@router.post(
    "/personalize-assignment",
    response_model=PersonalizationResponseSchema,
    responses={400: {"model": ValidationFailedResponse}, 500: {"model": ErrorResponse}},
)
def personalize_assignment(
    payload: Any = Body(default=None),
    personalizer: Personalizer = Depends(get_active_personalizer),
) -> dict[str, Any]:
    """Personalize an assignment for one student.

    The request is validated field by field; the generated response is
    validated against the request's constraints before it is returned.
    """
    request_check = validate_request(payload)
    if not request_check.is_valid:
        raise ValidationFailedError(request_check.issues)

    request = PersonalizationRequest.from_dict(payload)
    logger.info(
        "personalization_requested",
        student_id=request.student_profile.student_id,
        generator=personalizer.name,
        max_words=request.constraints.max_length_words,
    )

    response = personalizer.generate(request)

    response_check = validate_response(response, request)
    if not response_check.is_valid:
        raise PersonalizationError(
            "Generated personalization failed validation",
            issues=response_check.issues,
        )

    return response
