"""API module."""

from .evaluate import router as evaluate_router
from .submissions import router as submissions_router

__all__ = ["evaluate_router", "submissions_router"]
