"""Data models for the code execution sandbox."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from codejudge.sandbox.languages import LanguageProfile


class Verdict(str, Enum):
    """Overall classification of a job."""

    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong_answer"
    TIME_LIMIT_EXCEEDED = "time_limit_exceeded"
    MEMORY_LIMIT_EXCEEDED = "memory_limit_exceeded"
    COMPILATION_ERROR = "compilation_error"
    RUNTIME_ERROR = "runtime_error"
    SYSTEM_ERROR = "system_error"


class FailureKind(str, Enum):
    """Failure signal recorded on a single test result."""

    NONE = "none"
    TIMEOUT = "timeout"
    MEMORY = "memory"
    COMPILATION = "compilation"
    RUNTIME = "runtime"
    WRONG_ANSWER = "wrong_answer"


class SandboxState(str, Enum):
    """Lifecycle of a sandbox handle."""

    CREATED = "created"
    STARTED = "started"
    STOPPED = "stopped"
    REMOVED = "removed"


class JobState(str, Enum):
    """Lifecycle of an execution job."""

    PENDING = "pending"
    PROVISIONING = "provisioning"
    COMPILING = "compiling"
    RUNNING = "running"
    CLASSIFYING = "classifying"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class TestCase:
    """One stdin / expected-stdout pair."""

    __test__ = False

    input: str
    expected_output: str
    is_hidden: bool = False


@dataclass(frozen=True)
class ExecutionJob:
    """Immutable execution plan for one submission."""

    job_id: str
    profile: LanguageProfile
    source_code: str
    test_cases: tuple[TestCase, ...]
    time_limit_ms: int
    memory_limit_mb: int

    @property
    def language(self) -> str:
        return self.profile.language


@dataclass(frozen=True)
class ExecOutcome:
    """Raw result of one command run inside a sandbox."""

    exit_code: int
    stdout: bytes = b""
    stderr: bytes = b""


@dataclass(frozen=True)
class CompileOutcome:
    """Result of the once-per-job compilation step."""

    success: bool
    message: str | None = None
    duration_ms: int = 0


@dataclass(frozen=True)
class TestResult:
    """Outcome of running the program against one test case."""

    __test__ = False

    index: int
    input: str
    expected_output: str
    actual_output: str
    passed: bool
    execution_time_ms: int = 0
    error_message: str | None = None
    failure: FailureKind = FailureKind.NONE


@dataclass
class ExecutionResult:
    """Final output of a job, handed to the caller."""

    verdict: Verdict
    test_results: list[TestResult] = field(default_factory=list)
    execution_time_ms: int = 0
    memory_used_mb: float = 0.0
    error_message: str | None = None

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.test_results if r.passed)


@dataclass(frozen=True)
class SampleResult:
    """Response shape of a single custom-input run."""

    input: str
    expected: str
    output: str
    passed: bool
    error: str | None = None

    @classmethod
    def from_test_result(cls, result: TestResult) -> SampleResult:
        return cls(
            input=result.input,
            expected=result.expected_output,
            output=result.actual_output,
            passed=result.passed,
            error=result.error_message,
        )
