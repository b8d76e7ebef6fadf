"""Derive a job verdict from its per-test results."""

from __future__ import annotations

from collections.abc import Sequence

from codejudge.sandbox.models import FailureKind, TestResult, Verdict

_FAILURE_VERDICTS: dict[FailureKind, Verdict] = {
    FailureKind.TIMEOUT: Verdict.TIME_LIMIT_EXCEEDED,
    FailureKind.MEMORY: Verdict.MEMORY_LIMIT_EXCEEDED,
    FailureKind.COMPILATION: Verdict.COMPILATION_ERROR,
}


def classify(results: Sequence[TestResult]) -> tuple[Verdict, str | None]:
    """Return the overall verdict and the top-level error message.

    The first failing result in execution order decides the verdict. Priority:
    timeout, memory, compilation, any other error text, then wrong answer.
    """
    first_failure = next((r for r in results if not r.passed), None)
    if first_failure is None:
        return Verdict.ACCEPTED, None

    verdict = _FAILURE_VERDICTS.get(first_failure.failure)
    if verdict is not None:
        return verdict, first_failure.error_message

    if first_failure.error_message:
        return Verdict.RUNTIME_ERROR, first_failure.error_message

    return Verdict.WRONG_ANSWER, wrong_answer_message(first_failure)


def wrong_answer_message(result: TestResult) -> str:
    return f'Expected: "{result.expected_output.strip()}", Got: "{result.actual_output}"'


def score(results: Sequence[TestResult]) -> int:
    """Percentage of passed tests, rounded half up; 0 when nothing ran."""
    if not results:
        return 0
    passed = sum(1 for r in results if r.passed)
    return int(passed * 100 / len(results) + 0.5)
