"""Services module."""

from .executor_service import executor_lifespan, get_executor, get_submission_service
from .submission_service import SubmissionRecord, SubmissionService, SubmissionStatus

__all__ = [
    "executor_lifespan",
    "get_executor",
    "get_submission_service",
    "SubmissionRecord",
    "SubmissionService",
    "SubmissionStatus",
]
