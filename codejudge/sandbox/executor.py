"""
High-level code execution interface.

Orchestrates: job validation → sandbox provisioning → compile → test runs →
verdict classification.  This is the single entry point consumed by the API
and the submission service.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

from docker.errors import DockerException
from structlog import get_logger

from codejudge.config import SandboxConfig, get_settings
from codejudge.sandbox.backend import DockerBackend, SandboxBackend
from codejudge.sandbox.errors import ResourceError
from codejudge.sandbox.job import build_job
from codejudge.sandbox.languages import LanguageRegistry
from codejudge.sandbox.manager import SandboxProvisioner
from codejudge.sandbox.models import (
    CompileOutcome,
    ExecutionJob,
    ExecutionResult,
    JobState,
    SampleResult,
    TestCase,
    TestResult,
    Verdict,
)
from codejudge.sandbox.output import clean_error_text
from codejudge.sandbox.runner import TestRunner
from codejudge.sandbox.verdict import classify

logger = get_logger()


class CodeExecutor:
    """
    Facade over the registry, provisioner, runner and classifier.

    Usage::

        executor = CodeExecutor()
        await executor.initialize()
        result = await executor.evaluate("python", source, test_cases)
        await executor.shutdown()
    """

    def __init__(
        self,
        backend: SandboxBackend | None = None,
        registry: LanguageRegistry | None = None,
        config: SandboxConfig | None = None,
    ) -> None:
        self._config = config or get_settings().sandbox
        self._registry = registry or LanguageRegistry(image_overrides=self._config.image_overrides)
        self._backend = backend
        self._provisioner: SandboxProvisioner | None = None
        self._runner: TestRunner | None = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def registry(self) -> LanguageRegistry:
        return self._registry

    @property
    def provisioner(self) -> SandboxProvisioner | None:
        return self._provisioner

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self, pull_images: bool = False) -> None:
        """Connect to the isolation layer and clean up after earlier crashes."""
        async with self._init_lock:
            if not self._initialized:
                await self._connect(pull_images)

    async def _connect(self, pull_images: bool) -> None:
        try:
            if self._backend is None:
                self._backend = await asyncio.to_thread(DockerBackend.from_env)
            await asyncio.to_thread(self._backend.ping)
        except DockerException as exc:
            logger.error("Cannot connect to Docker", error=str(exc))
            raise RuntimeError(
                "Docker is not available. Install and start Docker to enable code execution."
            ) from exc

        self._provisioner = SandboxProvisioner(self._backend, self._config)
        self._runner = TestRunner(self._provisioner, self._config)
        await self._provisioner.reap_stale()
        if pull_images:
            await self._provisioner.prepare_images(
                [profile.image for profile in self._registry.values()]
            )

        self._initialized = True
        logger.info("CodeExecutor initialized", languages=self._registry.languages())

    async def shutdown(self) -> None:
        """Release resources."""
        if self._backend is not None:
            await asyncio.to_thread(self._backend.close)
        self._initialized = False
        logger.info("CodeExecutor shut down")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(
        self,
        language: str,
        source_code: str,
        test_cases: Iterable[TestCase | Mapping[str, Any]],
        time_limit_ms: int | None = None,
        memory_limit_mb: int | None = None,
    ) -> ExecutionJob:
        """Validate a request; raises ``ValidationError`` without provisioning."""
        return build_job(
            self._registry,
            language,
            source_code,
            test_cases,
            time_limit_ms=time_limit_ms,
            memory_limit_mb=memory_limit_mb,
            limits=self._config,
        )

    async def evaluate(
        self,
        language: str,
        source_code: str,
        test_cases: Iterable[TestCase | Mapping[str, Any]],
        time_limit_ms: int | None = None,
        memory_limit_mb: int | None = None,
    ) -> ExecutionResult:
        """Run every test case (subject to short-circuiting) and score the job."""
        job = self.build(language, source_code, test_cases, time_limit_ms, memory_limit_mb)
        return await self.run_job(job)

    async def evaluate_sample(
        self,
        language: str,
        source_code: str,
        input: str,
        expected_output: str = "",
        time_limit_ms: int | None = None,
        memory_limit_mb: int | None = None,
    ) -> SampleResult:
        """Run the program once against a caller-supplied input."""
        sample = TestCase(input=input, expected_output=expected_output)
        result = await self.evaluate(
            language, source_code, [sample], time_limit_ms, memory_limit_mb
        )
        if result.test_results:
            return SampleResult.from_test_result(result.test_results[0])
        # Compilation or system error: nothing ran
        return SampleResult(
            input=input,
            expected=expected_output,
            output="",
            passed=False,
            error=result.error_message,
        )

    async def run_job(self, job: ExecutionJob) -> ExecutionResult:
        """Execute a validated job. Cancellation propagates after teardown."""
        if not self._initialized:
            await self.initialize()
        assert self._provisioner is not None and self._runner is not None

        log = logger.bind(job_id=job.job_id, language=job.language)
        log.info("Job state changed", state=JobState.PROVISIONING.value)

        compiled = CompileOutcome(success=True)
        results: list[TestResult] = []
        memory_bytes = 0
        try:
            async with self._provisioner.sandbox(job) as handle:
                if job.profile.requires_compilation:
                    log.info("Job state changed", state=JobState.COMPILING.value)
                    compiled = await self._runner.compile(handle, job)

                if compiled.success:
                    log.info("Job state changed", state=JobState.RUNNING.value)
                    results = await self._runner.run_all(handle, job)
                    memory_bytes = await self._provisioner.memory_peak(handle)
        except ResourceError as exc:
            log.error("Job state changed", state=JobState.FAILED.value, error=str(exc))
            return ExecutionResult(
                verdict=Verdict.SYSTEM_ERROR,
                error_message=clean_error_text(str(exc), self._config.workdir),
            )
        except asyncio.CancelledError:
            log.warning("Job state changed", state=JobState.FAILED.value, reason="cancelled")
            raise

        if not compiled.success:
            log.info(
                "Job state changed",
                state=JobState.DONE.value,
                verdict=Verdict.COMPILATION_ERROR.value,
            )
            return ExecutionResult(
                verdict=Verdict.COMPILATION_ERROR,
                error_message=compiled.message,
            )

        log.info("Job state changed", state=JobState.CLASSIFYING.value)
        verdict, message = classify(results)
        result = ExecutionResult(
            verdict=verdict,
            test_results=results,
            execution_time_ms=sum(r.execution_time_ms for r in results),
            memory_used_mb=round(memory_bytes / (1024 * 1024), 2),
            error_message=message,
        )
        log.info(
            "Job state changed",
            state=JobState.DONE.value,
            verdict=verdict.value,
            tests_run=len(results),
            passed=result.passed_count,
            duration_ms=result.execution_time_ms,
        )
        return result
