"""Error-to-response mapping for the HTTP functions.

Every error body uses the key ``error``. Status codes:
- 400 validation failures (itemized issues) and bad input
- 401/403 authentication and ownership failures
- 429/402 upstream AI provider limits, passed through
- 500 everything else

Nothing is retried here; the caller decides whether to try again.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tailoredu.core.class_digest import DigestError, DigestValidationError
from tailoredu.core.personalization import PersonalizationError, ValidationIssue
from tailoredu.core.submission_analysis import AccessDeniedError, AnalysisError
from tailoredu.db.backend import BackendError
from tailoredu.llm.client import LLMError

logger = structlog.get_logger(__name__)


class ValidationFailedError(Exception):
    """Request failed validation; carries every field-level issue."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__(f"{len(issues)} validation issue(s)")


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _issue_field(loc: tuple[Any, ...]) -> str:
    parts = [str(p) for p in loc if p != "body"]
    return ".".join(parts) or "body"


async def validation_failed_handler(request: Request, exc: ValidationFailedError) -> JSONResponse:
    return _error(
        status.HTTP_400_BAD_REQUEST,
        "validation_failed",
        issues=[issue.to_dict() for issue in exc.issues],
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies get the same itemized 400 as semantic failures."""
    issues = [
        {"field": _issue_field(tuple(err.get("loc", ()))), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return _error(status.HTTP_400_BAD_REQUEST, "validation_failed", issues=issues)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    logger.error("ai_gateway_failed", path=request.url.path, status=exc.status_code, error=str(exc))
    return _error(exc.status_code, str(exc))


async def access_denied_handler(request: Request, exc: AccessDeniedError) -> JSONResponse:
    return _error(status.HTTP_403_FORBIDDEN, str(exc))


async def digest_validation_handler(request: Request, exc: DigestValidationError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


async def personalization_error_handler(request: Request, exc: PersonalizationError) -> JSONResponse:
    logger.error("personalization_failed", error=str(exc), issues=len(exc.issues))
    extra = {"issues": [i.to_dict() for i in exc.issues]} if exc.issues else {}
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), **extra)


async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "function_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or "Unknown error occurred")


def register_error_handlers(app: FastAPI) -> None:
    """Install the error mapping on an app."""
    app.add_exception_handler(ValidationFailedError, validation_failed_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(LLMError, llm_error_handler)
    app.add_exception_handler(AccessDeniedError, access_denied_handler)
    app.add_exception_handler(DigestValidationError, digest_validation_handler)
    app.add_exception_handler(PersonalizationError, personalization_error_handler)
    app.add_exception_handler(AnalysisError, server_error_handler)
    app.add_exception_handler(DigestError, server_error_handler)
    app.add_exception_handler(BackendError, server_error_handler)
    app.add_exception_handler(Exception, server_error_handler)
