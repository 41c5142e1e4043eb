import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from formflow import __version__
from formflow.common.logger import configure_from_settings
from formflow.core.config import get_settings
from formflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    FormFlowError,
    NotFoundError,
    ValidationError,
)
from formflow.api.routers import submissions, approvals, forms, plants, analytics, assignments, health

settings = get_settings()
configure_from_settings(settings)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Multi-tenant form workflows with sequential approvals",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Domain errors -> HTTP. ConflictError must be checked before ValidationError.
_STATUS_FOR_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
)


@app.exception_handler(FormFlowError)
async def formflow_error_handler(request: Request, exc: FormFlowError):
    for error_type, http_status in _STATUS_FOR_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
        logger.error(f"Unhandled domain error on {request.url.path}: {exc}")

    return JSONResponse(
        status_code=http_status,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    # A unique constraint lost a race with a concurrent writer
    logger.warning(f"Integrity error on {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"error": "ConflictError", "detail": "The request conflicts with a concurrent change, retry it"},
    )


# Include routers
app.include_router(submissions.router, prefix="/api")
app.include_router(approvals.router, prefix="/api")
app.include_router(forms.router, prefix="/api")
app.include_router(plants.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(assignments.router, prefix="/api")
app.include_router(health.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
