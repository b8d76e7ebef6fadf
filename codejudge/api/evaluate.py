"""
Evaluation API routes.
"""

from fastapi import APIRouter, Depends

from codejudge.models.schemas import (
    ErrorResponse,
    EvaluateRequest,
    ExecutionResultSchema,
    LanguageSchema,
    SampleRequest,
    SampleResultSchema,
)
from codejudge.sandbox.executor import CodeExecutor
from codejudge.services.executor_service import get_executor

router = APIRouter(tags=["evaluate"])


@router.post(
    "/evaluate",
    response_model=ExecutionResultSchema,
    responses={400: {"model": ErrorResponse}},
    summary="Evaluate and score a program",
    description="Run a program against an ordered list of test cases"
)
async def evaluate(
    request: EvaluateRequest,
    executor: CodeExecutor = Depends(get_executor)
) -> ExecutionResultSchema:
    """
    Run all test cases, stopping after the first failing visible test.

    - **language**: one of the identifiers from `/languages`
    - **sourceCode**: program text
    - **testCases**: ordered `input` / `expectedOutput` / `isHidden` triples
    - **timeLimit**: per-test limit in ms (clamped to the server ceiling)
    """
    result = await executor.evaluate(
        language=request.language,
        source_code=request.source_code,
        test_cases=[tc.model_dump() for tc in request.test_cases],
        time_limit_ms=request.time_limit,
        memory_limit_mb=request.memory_limit,
    )
    return ExecutionResultSchema.from_result(result)


@router.post(
    "/evaluate/sample",
    response_model=SampleResultSchema,
    responses={400: {"model": ErrorResponse}},
    summary="Run a program with custom input",
    description="Run a program once against a single synthetic test case"
)
async def evaluate_sample(
    request: SampleRequest,
    executor: CodeExecutor = Depends(get_executor)
) -> SampleResultSchema:
    result = await executor.evaluate_sample(
        language=request.language,
        source_code=request.source_code,
        input=request.input,
        expected_output=request.expected_output,
        time_limit_ms=request.time_limit,
    )
    return SampleResultSchema.from_result(result)


@router.get(
    "/languages",
    response_model=list[LanguageSchema],
    summary="List supported languages"
)
async def list_languages(
    executor: CodeExecutor = Depends(get_executor)
) -> list[LanguageSchema]:
    return [LanguageSchema.from_profile(p) for p in executor.registry.values()]
