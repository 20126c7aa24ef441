"""FastAPI application entry point."""

import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from splitlab.api.config import get_api_settings
from splitlab.api.routes import (
    events_router,
    experiments_router,
    health_router,
    subjects_router,
)
from splitlab.config import get_settings
from splitlab.experimentation import (
    ExperimentError,
    IneligibleError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

api_settings = get_api_settings()

ERROR_STATUS = {
    NotFoundError: 404,
    ValidationError: 422,
    InvalidStateError: 409,
    IneligibleError: 403,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.remove()
    logger.add(sys.stderr, level=get_settings().log_level)
    logger.info("Starting up API server...")

    yield

    logger.info("Shutting down API server...")


# Create FastAPI app
app = FastAPI(
    title=api_settings.api_title,
    version=api_settings.api_version,
    description=api_settings.api_description,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ExperimentError)
async def experiment_error_handler(request: Request, exc: ExperimentError) -> JSONResponse:
    """Translate core errors to HTTP responses."""
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400
    )
    content: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=content)


# Include routers
app.include_router(health_router)
app.include_router(experiments_router)
app.include_router(subjects_router)
app.include_router(events_router)


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": api_settings.api_title,
        "version": api_settings.api_version,
        "docs": "/docs",
        "health": "/health",
    }


def run() -> None:
    """Serve the API with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(
        "splitlab.api.main:app",
        host=api_settings.host,
        port=api_settings.port,
        reload=api_settings.debug,
    )
