"""Route handlers for the HTTP functions."""

from tailoredu.web.routes.health import router as health_router
from tailoredu.web.routes.personalize import router as personalize_router
from tailoredu.web.routes.analysis import router as analysis_router
from tailoredu.web.routes.digest import router as digest_router

__all__ = [
    "health_router",
    "personalize_router",
    "analysis_router",
    "digest_router",
]
