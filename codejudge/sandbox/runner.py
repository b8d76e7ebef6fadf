"""
Test runner: compile once, then run each test case inside a provisioned sandbox.

Test cases run strictly in order.  A failing visible test stops the run; a
failing hidden test does not, unless ``stop_on_hidden_failure`` is set.
"""

from __future__ import annotations

import asyncio
import time

from structlog import get_logger

from codejudge.config import SandboxConfig
from codejudge.sandbox.manager import SandboxHandle, SandboxProvisioner
from codejudge.sandbox.models import (
    CompileOutcome,
    ExecutionJob,
    FailureKind,
    TestCase,
    TestResult,
)
from codejudge.sandbox.output import clean_error_text, decode, normalize_output, truncate

logger = get_logger()

STDIN_FILE = ".stdin"

# 128 + SIGKILL: the kernel OOM killer inside the memory cgroup
_OOM_EXIT_CODE = 137
_OOM_MARKERS = ("MemoryError", "OutOfMemoryError", "std::bad_alloc", "out of memory")
# Toolchains that build on the fly report build failures on stderr of the run
_COMPILE_MARKERS = (
    "compilation terminated",
    "compilation failed",
    "could not compile",
    "# command-line-arguments",
)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class TestRunner:
    """Runs a job's test cases against an already-provisioned sandbox."""

    __test__ = False

    def __init__(self, provisioner: SandboxProvisioner, config: SandboxConfig) -> None:
        self._provisioner = provisioner
        self._config = config

    async def compile(self, handle: SandboxHandle, job: ExecutionJob) -> CompileOutcome:
        """Run the language's build step, if it has one."""
        command = job.profile.compile_command
        if command is None:
            return CompileOutcome(success=True)

        start = time.monotonic()
        try:
            outcome = await self._provisioner.exec(handle, command, self._config.compile_timeout)
        except asyncio.TimeoutError:
            return CompileOutcome(
                success=False,
                message=f"Compilation timed out after {self._config.compile_timeout:.0f}s",
                duration_ms=_elapsed_ms(start),
            )

        duration = _elapsed_ms(start)
        if outcome.exit_code == 0:
            logger.debug("Compilation succeeded", job_id=job.job_id, duration_ms=duration)
            return CompileOutcome(success=True, duration_ms=duration)

        # javac and some toolchains report diagnostics on stdout
        diagnostics, _ = truncate(
            decode(outcome.stderr) or decode(outcome.stdout), self._config.max_output_size
        )
        message = clean_error_text(diagnostics, self._config.workdir)
        return CompileOutcome(
            success=False,
            message=message or f"Compilation failed with exit code {outcome.exit_code}",
            duration_ms=duration,
        )

    async def run_all(self, handle: SandboxHandle, job: ExecutionJob) -> list[TestResult]:
        results: list[TestResult] = []
        for index, test_case in enumerate(job.test_cases):
            result = await self.run_test_case(handle, job, index, test_case)
            results.append(result)
            logger.debug(
                "Test case finished",
                job_id=job.job_id,
                index=index,
                passed=result.passed,
                failure=result.failure.value,
                duration_ms=result.execution_time_ms,
            )
            if not result.passed and self._stops_after(test_case):
                break
        return results

    async def run_test_case(
        self,
        handle: SandboxHandle,
        job: ExecutionJob,
        index: int,
        test_case: TestCase,
    ) -> TestResult:
        """Pipe the case's input into a fresh run of the program."""
        await self._provisioner.write_file(handle, STDIN_FILE, test_case.input.encode("utf-8"))
        command = f"{job.profile.run_command} < {STDIN_FILE}"

        start = time.monotonic()
        try:
            outcome = await self._provisioner.exec(handle, command, job.time_limit_ms / 1000)
        except asyncio.TimeoutError:
            return TestResult(
                index=index,
                input=test_case.input,
                expected_output=test_case.expected_output,
                actual_output="",
                passed=False,
                execution_time_ms=_elapsed_ms(start),
                error_message=(
                    f"Time Limit Exceeded: Your code took longer than "
                    f"{job.time_limit_ms}ms to execute."
                ),
                failure=FailureKind.TIMEOUT,
            )
        elapsed = _elapsed_ms(start)

        limit = self._config.max_output_size
        stdout, _ = truncate(decode(outcome.stdout), limit)
        stderr, _ = truncate(decode(outcome.stderr), limit)

        actual = normalize_output(stdout)
        passed = actual == normalize_output(test_case.expected_output)
        error = clean_error_text(stderr, self._config.workdir)
        failure = FailureKind.NONE

        if self._is_memory_failure(outcome.exit_code, stderr):
            passed = False
            failure = FailureKind.MEMORY
            error = "\n".join(
                part for part in (
                    f"Memory Limit Exceeded: Your code used more than {job.memory_limit_mb}MB of memory.",
                    error,
                ) if part
            )
        elif not passed:
            if error and self._is_compile_failure(error):
                failure = FailureKind.COMPILATION
            elif error:
                failure = FailureKind.RUNTIME
            elif outcome.exit_code != 0:
                failure = FailureKind.RUNTIME
                error = f"Process exited with code {outcome.exit_code}"
            else:
                failure = FailureKind.WRONG_ANSWER

        return TestResult(
            index=index,
            input=test_case.input,
            expected_output=test_case.expected_output,
            actual_output=actual,
            passed=passed,
            execution_time_ms=elapsed,
            error_message=error,
            failure=failure,
        )

    def _stops_after(self, test_case: TestCase) -> bool:
        return not test_case.is_hidden or self._config.stop_on_hidden_failure

    @staticmethod
    def _is_memory_failure(exit_code: int, stderr: str) -> bool:
        if exit_code == 0:
            return False
        if exit_code == _OOM_EXIT_CODE:
            return True
        return any(marker in stderr for marker in _OOM_MARKERS)

    @staticmethod
    def _is_compile_failure(error: str) -> bool:
        lowered = error.lower()
        return any(marker in lowered for marker in _COMPILE_MARKERS)
