"""FastAPI application entry point for the knowledge ingestion service."""
import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .api import routes_admin, routes_channel, routes_files, routes_namespaces
from .core.config import settings
from .core.errors import IngestionError
from .core.logging_config import configure_logging
from .core.middleware import RequestLoggingMiddleware
from .core.rate_limiter import limiter, rate_limit_handler
from .core.security import require_service_token

logger = logging.getLogger(__name__)


async def ingestion_error_handler(request: Request, exc: IngestionError) -> JSONResponse:
    """Render pipeline errors as ``{detail, error, retryable}`` bodies."""

    if exc.status_code >= 500:
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        {
            "detail": str(exc) or exc.__class__.__name__,
            "error": exc.__class__.__name__,
            "retryable": exc.retryable,
        },
        status_code=exc.status_code,
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()
    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(IngestionError, ingestion_error_handler)

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL.rstrip("/")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    guarded = [Depends(require_service_token)]
    app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])
    app.include_router(
        routes_files.router, prefix="/api/files", tags=["files"], dependencies=guarded
    )
    app.include_router(
        routes_channel.router, prefix="/api/channel", tags=["channel"], dependencies=guarded
    )
    app.include_router(
        routes_namespaces.router,
        prefix="/api/namespaces",
        tags=["namespaces"],
        dependencies=guarded,
    )

    return app


app = create_app()
