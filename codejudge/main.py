"""
Code Judge - Main Application Entry Point.

Sandboxed multi-language code execution service.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codejudge.api import evaluate_router, submissions_router
from codejudge.config import get_settings
from codejudge.sandbox.errors import ValidationError
from codejudge.services import executor_lifespan

settings = get_settings()

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.environment == "production"
        else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        10 if settings.debug else 20
    )
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    async with executor_lifespan(app):
        yield


# Create FastAPI application
app = FastAPI(
    title="Code Judge",
    description="""
Sandboxed execution of untrusted programs against stdin/stdout test cases.

## Features

- **Isolated sandboxes**: one network-less, read-only container per job
- **Many toolchains**: javascript, python, java, cpp, c, csharp, php, ruby, go, rust
- **Hard limits**: per-test time limit, memory ceiling, CPU quota
- **Verdicts**: accepted, wrong answer, time/memory limit exceeded, compilation,
  runtime and system errors with cleaned diagnostics

## Usage

1. `POST /api/v1/evaluate` to score a program synchronously
2. `POST /api/v1/evaluate/sample` to run with custom input
3. `POST /api/v1/submissions` to evaluate in the background, then poll
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.server.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Rejected job specifications never reach the sandbox."""
    logger.info("Rejected request", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=400,
        content={"error": str(exc), "code": "VALIDATION_ERROR"}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": str(exc) if settings.debug else None
        }
    )


# Include routers
app.include_router(evaluate_router, prefix="/api/v1")
app.include_router(submissions_router, prefix="/api/v1")


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment
    }


# Root endpoint
@app.get("/", tags=["root"])
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health"
    }


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "codejudge.main:app",
        host=settings.server.host,
        port=settings.server.port,
        workers=settings.server.workers,
        reload=settings.debug
    )


if __name__ == "__main__":
    run()
