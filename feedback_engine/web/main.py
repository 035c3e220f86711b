from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from feedback_engine.infrastructure.config import get_settings
from feedback_engine.infrastructure.exceptions import (
    create_user_friendly_error_message,
    log_error_details,
)
from feedback_engine.infrastructure.logging import get_logger
from feedback_engine.web.routes import api
from feedback_engine.web.schemas import ErrorDetail

logger = get_logger(__name__)


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    details = log_error_details(exc, {"method": request.method, "path": request.url.path})
    logger.error(f"Unhandled error: {details}")
    detail = ErrorDetail(code="internal_error", message=create_user_friendly_error_message(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": detail.model_dump()},
    )


def create_application() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app.title,
        version=settings.app.version,
        debug=settings.app.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=settings.security.cors_methods,
        allow_headers=["*"],
    )

    # signature images written by LocalBlobStore
    app.mount(
        "/blobs",
        StaticFiles(directory=settings.storage.blob_dir, check_dir=False),
        name="blobs",
    )

    app.include_router(api.router)
    app.add_exception_handler(Exception, unhandled_error)

    logger.info(
        f"{settings.app.title} {settings.app.version} configured",
        extra={"environment": settings.app.environment},
    )
    return app


app = create_application()
