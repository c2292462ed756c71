"""Prayer Engine: Main FastAPI Application.

Moderation, lifecycle and reminder engine for a community prayer list.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .api import api_router
from .core import close_db, get_settings, init_db
from .schemas import ErrorResponse
from .services.errors import (
    DatastoreError,
    EntityNotFoundError,
    StaleStateError,
    ValidationError,
)

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info(f"Starting {settings.app_name} {settings.app_version} ({settings.environment})")

    # Skip init_db in production (tables are managed by migrations)
    if settings.environment != "production":
        try:
            await init_db()
        except Exception as e:
            logger.warning(f"Could not initialize database: {e}")
    yield
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Prayer Engine API

    Intake, moderation and lifecycle of prayer requests.

    ### Key Features

    - **Moderation Queue**: Every submission waits for an admin decision, made exactly once.
    - **Lifecycle**: Updates can answer a prayer or bring it back to current.
    - **Scheduled Jobs**: Aged prayers are archived; quiet prayers trigger reminders.
    - **Notifications**: Emails go out after the decision is committed and never undo it.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message, details=[]).model_dump(),
    )


@app.exception_handler(StaleStateError)
async def stale_state_handler(request: Request, exc: StaleStateError):
    logger.info(f"Stale moderation action on {request.url.path}: {exc}")
    return _error(status.HTTP_409_CONFLICT, "stale_state", StaleStateError.user_message)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "validation_error", str(exc))


@app.exception_handler(EntityNotFoundError)
async def not_found_handler(request: Request, exc: EntityNotFoundError):
    return _error(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


@app.exception_handler(DatastoreError)
@app.exception_handler(SQLAlchemyError)
async def datastore_error_handler(request: Request, exc: Exception):
    logger.error(f"Datastore error on {request.url.path}: {exc}")
    return _error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "datastore_unavailable",
        "The request could not be saved. Please try again.",
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    message = "An unexpected error occurred"
    if settings.debug:
        message = f"{message}: {str(exc)[:200]}"
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error", message)


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "prayer_engine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
