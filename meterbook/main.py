"""FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from meterbook.api.routes import api_router
from meterbook.core.config import settings
from meterbook.core.database import Base, engine
from meterbook.core.errors import DependencyError, MeterbookError
from meterbook.core.logging_config import configure_logging

# Import models for Base.metadata.create_all - order matters for foreign keys
from meterbook.models import (
    flat,  # noqa: F401
    reading,  # noqa: F401
)
from meterbook.models import settings as settings_model  # noqa: F401

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    configure_logging()
    # Startup: Create database tables
    Base.metadata.create_all(bind=engine)
    logger.info("%s %s started", settings.PROJECT_NAME, settings.VERSION)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Meter reading approval and billing API",
    lifespan=lifespan,
)


@app.exception_handler(MeterbookError)
async def meterbook_error_handler(request: Request, exc: MeterbookError) -> JSONResponse:
    """Render service errors as JSON with their HTTP status."""
    headers = None
    content = {"detail": exc.detail, "error": type(exc).__name__}
    if isinstance(exc, DependencyError):
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
        headers = {"Retry-After": "1"}
        content["retryable"] = True
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


# Include API routers
app.include_router(api_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "meterbook.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
