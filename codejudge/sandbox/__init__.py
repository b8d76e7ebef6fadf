"""Docker-based multi-language code execution sandbox."""

from codejudge.sandbox.errors import (
    ResourceError,
    SandboxError,
    UnsupportedLanguageError,
    ValidationError,
)
from codejudge.sandbox.executor import CodeExecutor
from codejudge.sandbox.languages import LanguageProfile, LanguageRegistry
from codejudge.sandbox.models import (
    ExecutionResult,
    SampleResult,
    TestCase,
    TestResult,
    Verdict,
)

__all__ = [
    "CodeExecutor",
    "ExecutionResult",
    "LanguageProfile",
    "LanguageRegistry",
    "ResourceError",
    "SampleResult",
    "SandboxError",
    "TestCase",
    "TestResult",
    "UnsupportedLanguageError",
    "ValidationError",
    "Verdict",
]
