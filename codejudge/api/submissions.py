"""
Submission API routes.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from codejudge.models.schemas import ErrorResponse, EvaluateRequest, SubmissionSchema
from codejudge.services.executor_service import get_submission_service
from codejudge.services.submission_service import SubmissionService

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.post(
    "/",
    response_model=SubmissionSchema,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": ErrorResponse}},
    summary="Submit a program for background evaluation"
)
async def create_submission(
    request: EvaluateRequest,
    service: SubmissionService = Depends(get_submission_service)
) -> SubmissionSchema:
    """
    Accept a submission and evaluate it in the background.

    Poll `GET /submissions/{id}` until the status leaves `pending`.
    """
    record = service.submit(
        language=request.language,
        source_code=request.source_code,
        test_cases=[tc.model_dump() for tc in request.test_cases],
        time_limit_ms=request.time_limit,
        memory_limit_mb=request.memory_limit,
    )
    return SubmissionSchema.from_record(record)


@router.get(
    "/{submission_id}",
    response_model=SubmissionSchema,
    responses={404: {"model": ErrorResponse}},
    summary="Get a submission"
)
async def get_submission(
    submission_id: UUID,
    service: SubmissionService = Depends(get_submission_service)
) -> SubmissionSchema:
    record = service.get(submission_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return SubmissionSchema.from_record(record)


@router.delete(
    "/{submission_id}",
    response_model=SubmissionSchema,
    responses={404: {"model": ErrorResponse}},
    summary="Cancel a pending submission"
)
async def cancel_submission(
    submission_id: UUID,
    service: SubmissionService = Depends(get_submission_service)
) -> SubmissionSchema:
    record = service.get(submission_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    await service.cancel(submission_id)
    return SubmissionSchema.from_record(record)
