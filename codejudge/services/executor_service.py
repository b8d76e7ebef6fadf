"""
Executor service for dependency injection and lifecycle management.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from structlog import get_logger

from codejudge.config import get_settings
from codejudge.sandbox.executor import CodeExecutor
from codejudge.services.submission_service import SubmissionService

logger = get_logger()
settings = get_settings()

# Global instances
_executor: CodeExecutor | None = None
_submissions: SubmissionService | None = None


async def get_executor() -> CodeExecutor:
    """Get the executor instance for dependency injection."""
    if _executor is None:
        raise RuntimeError("Executor not initialized. Use executor_lifespan.")
    return _executor


async def get_submission_service() -> SubmissionService:
    """Get the submission service for dependency injection."""
    if _submissions is None:
        raise RuntimeError("Submission service not initialized. Use executor_lifespan.")
    return _submissions


@asynccontextmanager
async def executor_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage executor lifecycle."""
    global _executor, _submissions

    logger.info("Initializing code executor...")

    _executor = CodeExecutor(config=settings.sandbox)
    await _executor.initialize(pull_images=settings.sandbox.pull_images)
    _submissions = SubmissionService(
        _executor,
        max_concurrent_jobs=settings.server.max_concurrent_jobs,
        max_retained=settings.server.max_retained_submissions,
    )

    logger.info("Code executor started")

    try:
        yield
    finally:
        logger.info("Shutting down code executor...")
        await _submissions.shutdown()
        await _executor.shutdown()
        _submissions = None
        _executor = None
        logger.info("Code executor stopped")
