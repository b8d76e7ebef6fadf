"""
Background evaluation of submissions.

A submission is accepted immediately (``pending``) and evaluated by a tracked
``asyncio.Task``.  The task's completion is the single transition to
``completed`` or ``failed``; callers can poll the record, await it, or cancel
it.  Records live in memory only and the oldest finished ones are evicted past
``max_retained``; persisting them is the caller's concern.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from structlog import get_logger

from codejudge.sandbox.executor import CodeExecutor
from codejudge.sandbox.models import ExecutionJob, ExecutionResult, TestCase
from codejudge.sandbox.verdict import score

logger = get_logger()


class SubmissionStatus(str, Enum):
    """Processing status of a submission."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SubmissionRecord:
    """State of one background evaluation."""

    language: str
    id: UUID = field(default_factory=uuid4)
    status: SubmissionStatus = SubmissionStatus.PENDING
    submitted_at: datetime = field(default_factory=_utcnow)
    completed_at: datetime | None = None
    result: ExecutionResult | None = None
    score: int = 0
    error: str | None = None


class SubmissionService:
    """Runs submissions as explicit background tasks."""

    def __init__(
        self,
        executor: CodeExecutor,
        max_concurrent_jobs: int = 4,
        max_retained: int = 1000,
    ) -> None:
        self._executor = executor
        self._max_retained = max_retained
        self._slots = asyncio.Semaphore(max_concurrent_jobs)
        self._records: dict[UUID, SubmissionRecord] = {}
        self._tasks: dict[UUID, asyncio.Task[None]] = {}

    def submit(
        self,
        language: str,
        source_code: str,
        test_cases: Iterable[TestCase | Mapping[str, Any]],
        time_limit_ms: int | None = None,
        memory_limit_mb: int | None = None,
    ) -> SubmissionRecord:
        """Validate and schedule a submission.

        Raises ``ValidationError`` synchronously; nothing is scheduled then.
        """
        job = self._executor.build(
            language, source_code, test_cases, time_limit_ms, memory_limit_mb
        )
        record = SubmissionRecord(language=job.language)
        self._records[record.id] = record

        task = asyncio.create_task(self._evaluate(record, job), name=f"submission-{record.id}")
        self._tasks[record.id] = task
        task.add_done_callback(lambda t: self._on_done(record, t))

        logger.info("Submission accepted", submission_id=str(record.id), job_id=job.job_id)
        return record

    def get(self, submission_id: UUID) -> SubmissionRecord | None:
        return self._records.get(submission_id)

    async def wait(self, submission_id: UUID, timeout: float | None = None) -> SubmissionRecord:
        """Wait until the submission leaves ``pending`` (or *timeout* expires)."""
        record = self._records.get(submission_id)
        if record is None:
            raise KeyError(submission_id)
        task = self._tasks.get(submission_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return record

    async def cancel(self, submission_id: UUID) -> bool:
        """Cancel a pending submission; returns False if it already finished."""
        task = self._tasks.get(submission_id)
        if task is None:
            return False
        task.cancel()
        await asyncio.wait({task})
        return True

    async def shutdown(self) -> None:
        """Cancel every in-flight evaluation and wait for sandbox teardown."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled in-flight submissions", count=len(tasks))

    def _on_done(self, record: SubmissionRecord, task: asyncio.Task[None]) -> None:
        self._tasks.pop(record.id, None)
        # Cancelled before the task ever ran
        if task.cancelled() and record.status is SubmissionStatus.PENDING:
            self._finish(record, SubmissionStatus.FAILED, error="Submission cancelled")

    def _evict_finished(self) -> None:
        """Drop the oldest finished records beyond the retention limit."""
        finished = [
            record_id for record_id, record in self._records.items()
            if record.status is not SubmissionStatus.PENDING
        ]
        excess = len(finished) - self._max_retained
        for record_id in finished[:max(excess, 0)]:
            del self._records[record_id]

    async def _evaluate(self, record: SubmissionRecord, job: ExecutionJob) -> None:
        log = logger.bind(submission_id=str(record.id), job_id=job.job_id)
        try:
            async with self._slots:
                result = await self._executor.run_job(job)
        except asyncio.CancelledError:
            self._finish(record, SubmissionStatus.FAILED, error="Submission cancelled")
            log.info("Submission cancelled")
            raise
        except Exception as exc:
            log.error("Submission evaluation failed", error=str(exc), exc_info=True)
            self._finish(record, SubmissionStatus.FAILED, error=str(exc))
            return

        record.result = result
        record.score = score(result.test_results)
        self._finish(record, SubmissionStatus.COMPLETED)
        log.info("Submission completed", verdict=result.verdict.value, score=record.score)

    def _finish(
        self, record: SubmissionRecord, status: SubmissionStatus, error: str | None = None
    ) -> None:
        record.status = status
        record.error = error
        record.completed_at = _utcnow()
        self._evict_finished()
