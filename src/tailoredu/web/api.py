"""FastAPI application factory.

Main entry point for the TailorEDU functions API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from tailoredu import __version__
from tailoredu.config.app_config import load_app_config
from tailoredu.web.errors import register_error_handlers
from tailoredu.web.routes import (
    analysis_router,
    digest_router,
    health_router,
    personalize_router,
)

logger = structlog.get_logger(__name__)

ALLOWED_METHODS = "POST, GET, OPTIONS"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    config = load_app_config()
    logger.info(
        "api_startup",
        provider=config.ai.default_provider,
        generator=config.personalization.generator,
        backend_configured=bool(config.backend.get_url()),
    )
    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI app instance
    """
    cors = load_app_config().cors

    app = FastAPI(
        title="TailorEDU Functions API",
        description="Personalization, submission analysis and class digest functions",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS headers on regular responses
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors.allow_origins,
        allow_credentials=False,
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=cors.allow_headers,
    )

    preflight_headers = {
        "Access-Control-Allow-Origin": ", ".join(cors.allow_origins),
        "Access-Control-Allow-Headers": ", ".join(cors.allow_headers),
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
    }

    # Added last so it runs first: any OPTIONS gets 204, preflight or not
    @app.middleware("http")
    async def preflight(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=preflight_headers)
        return await call_next(request)

    app.include_router(health_router)
    app.include_router(personalize_router)
    app.include_router(analysis_router)
    app.include_router(digest_router)

    register_error_handlers(app)

    return app


# Default app instance for uvicorn
app = create_app()
