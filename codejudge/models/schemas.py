"""
Request and response schemas for the code judge API.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from codejudge.sandbox.languages import LanguageProfile
from codejudge.sandbox.models import ExecutionResult, SampleResult, TestResult, Verdict
from codejudge.services.submission_service import SubmissionRecord, SubmissionStatus


class CamelModel(BaseModel):
    """Base model serialised with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TestCaseSchema(CamelModel):
    """A single stdin / expected-stdout pair."""

    input: str = Field(description="Standard input fed to the program")
    expected_output: str = Field(description="Expected standard output")
    is_hidden: bool = Field(default=False, description="Withheld from the submitter")


class EvaluateRequest(CamelModel):
    """Evaluate-and-score request."""

    language: str = Field(description="Language identifier, e.g. 'python'")
    source_code: str = Field(description="Program source")
    test_cases: list[TestCaseSchema] = Field(description="Ordered test cases")
    time_limit: int | None = Field(default=None, description="Per-test time limit in ms")
    memory_limit: int | None = Field(default=None, description="Memory ceiling in MB")


class SampleRequest(CamelModel):
    """Evaluate-single-sample request."""

    language: str = Field(description="Language identifier")
    source_code: str = Field(description="Program source")
    input: str = Field(default="", description="Custom standard input")
    expected_output: str = Field(default="", description="Expected standard output")
    time_limit: int | None = Field(default=None, description="Time limit in ms")


class TestResultSchema(CamelModel):
    """Per-test outcome."""

    test_case_index: int
    input: str
    expected_output: str
    actual_output: str
    is_passed: bool
    execution_time: int = Field(description="Milliseconds")
    error_message: str | None = None

    @classmethod
    def from_result(cls, result: TestResult) -> "TestResultSchema":
        return cls(
            test_case_index=result.index,
            input=result.input,
            expected_output=result.expected_output,
            actual_output=result.actual_output,
            is_passed=result.passed,
            execution_time=result.execution_time_ms,
            error_message=result.error_message,
        )


class ExecutionResultSchema(CamelModel):
    """Job verdict and per-test diagnostics."""

    result: Verdict
    test_results: list[TestResultSchema] = Field(default_factory=list)
    execution_time: int = Field(default=0, description="Total milliseconds")
    memory_used: float = Field(default=0.0, description="Peak memory in MB, best effort")
    error_message: str | None = None

    @classmethod
    def from_result(cls, result: ExecutionResult) -> "ExecutionResultSchema":
        return cls(
            result=result.verdict,
            test_results=[TestResultSchema.from_result(r) for r in result.test_results],
            execution_time=result.execution_time_ms,
            memory_used=result.memory_used_mb,
            error_message=result.error_message,
        )


class SampleResultSchema(CamelModel):
    """Single custom-input run."""

    input: str
    expected: str
    output: str
    passed: bool
    error: str | None = None

    @classmethod
    def from_result(cls, result: SampleResult) -> "SampleResultSchema":
        return cls(
            input=result.input,
            expected=result.expected,
            output=result.output,
            passed=result.passed,
            error=result.error,
        )


class SubmissionSchema(CamelModel):
    """Background submission state."""

    id: UUID
    language: str
    status: SubmissionStatus
    submitted_at: datetime
    completed_at: datetime | None = None
    score: int = 0
    error: str | None = None
    result: ExecutionResultSchema | None = None

    @classmethod
    def from_record(cls, record: SubmissionRecord) -> "SubmissionSchema":
        return cls(
            id=record.id,
            language=record.language,
            status=record.status,
            submitted_at=record.submitted_at,
            completed_at=record.completed_at,
            score=record.score,
            error=record.error,
            result=(
                ExecutionResultSchema.from_result(record.result)
                if record.result is not None else None
            ),
        )


class LanguageSchema(CamelModel):
    """Public view of a language profile."""

    language: str
    filename: str
    compiled: bool
    time_limit: int = Field(description="Default time limit in ms")
    memory_limit: int = Field(description="Default memory ceiling in MB")

    @classmethod
    def from_profile(cls, profile: LanguageProfile) -> "LanguageSchema":
        return cls(
            language=profile.language,
            filename=profile.filename,
            compiled=profile.requires_compilation,
            time_limit=profile.time_limit_ms,
            memory_limit=profile.memory_limit_mb,
        )


class ErrorResponse(BaseModel):
    """Error response schema."""

    error: str = Field(description="Error message")
    code: str = Field(description="Error code")
    details: str | None = Field(default=None, description="Additional details")
