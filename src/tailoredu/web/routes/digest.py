"""Weekly class digest endpoint."""

from fastapi import APIRouter, Depends

from tailoredu.config.app_config import load_app_config
from tailoredu.core.class_digest import generate_class_digest, validate_digest_request
from tailoredu.db.backend import BackendStore
from tailoredu.llm.client import LLMClient
from tailoredu.web.dependencies import get_backend_store, get_llm_client, require_user
from tailoredu.web.schemas import ClassDigestRequest, ClassDigestResponse, ErrorResponse

router = APIRouter(prefix="/functions", tags=["digest"])


@router.post(
    "/ai-class-digest",
    response_model=ClassDigestResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
def class_digest(
    request: ClassDigestRequest,
    user_id: str = Depends(require_user),
    store: BackendStore = Depends(get_backend_store),
    client: LLMClient = Depends(get_llm_client),
) -> ClassDigestResponse:
    """Return this week's digest for a class, generating it if needed."""
    validate_digest_request(request.classId, request.variant)

    result = generate_class_digest(
        store=store,
        client=client,
        class_id=request.classId,
        variant=request.variant,
        temperature=load_app_config().ai.digest_temperature,
    )
    return ClassDigestResponse(**result.to_dict())
