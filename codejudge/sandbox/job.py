"""
Job specification: turn a raw evaluation request into an ``ExecutionJob``.

Pure transformation; nothing is provisioned here.  Every rejection raises
``ValidationError`` so callers can fail fast before touching the sandbox host.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from codejudge.config import SandboxConfig
from codejudge.sandbox.errors import ValidationError
from codejudge.sandbox.languages import LanguageRegistry
from codejudge.sandbox.models import ExecutionJob, TestCase

_MISSING = object()


def build_job(
    registry: LanguageRegistry,
    language: str,
    source_code: str,
    test_cases: Iterable[TestCase | Mapping[str, Any]],
    time_limit_ms: int | None = None,
    memory_limit_mb: int | None = None,
    limits: SandboxConfig | None = None,
) -> ExecutionJob:
    """Validate a request and return the immutable execution plan."""
    limits = limits or SandboxConfig()
    profile = registry.resolve(language)

    if not isinstance(source_code, str) or not source_code.strip():
        raise ValidationError("Source code is required")
    if len(source_code.encode("utf-8")) > limits.max_source_bytes:
        raise ValidationError(
            f"Source code exceeds the {limits.max_source_bytes} byte limit"
        )

    cases = tuple(
        _coerce_test_case(i, tc, limits.max_input_bytes)
        for i, tc in enumerate(test_cases or ())
    )
    if not cases:
        raise ValidationError("At least one test case is required")

    return ExecutionJob(
        job_id=uuid.uuid4().hex,
        profile=profile,
        source_code=source_code,
        test_cases=cases,
        time_limit_ms=_effective_limit(
            "time limit", time_limit_ms, profile.time_limit_ms, 1, limits.max_time_limit_ms
        ),
        memory_limit_mb=_effective_limit(
            "memory limit",
            memory_limit_mb,
            profile.memory_limit_mb,
            limits.min_memory_limit_mb,
            limits.max_memory_limit_mb,
        ),
    )


def _effective_limit(
    name: str, override: int | None, default: int, floor: int, ceiling: int
) -> int:
    if override is None:
        return max(min(default, ceiling), floor)
    if isinstance(override, bool) or not isinstance(override, (int, float)):
        raise ValidationError(f"Invalid {name}: {override!r}")
    if not math.isfinite(override):
        raise ValidationError(f"Invalid {name}: {override!r}")
    value = int(override)
    if value < floor:
        raise ValidationError(f"The {name} must be at least {floor}, got {override}")
    return min(value, ceiling)


def _coerce_test_case(
    index: int, raw: TestCase | Mapping[str, Any], max_input_bytes: int
) -> TestCase:
    if isinstance(raw, TestCase):
        data: Mapping[str, Any] = {
            "input": raw.input,
            "expected_output": raw.expected_output,
            "is_hidden": raw.is_hidden,
        }
    elif isinstance(raw, Mapping):
        data = raw
    else:
        raise ValidationError(f"Test case {index} is not an object")

    stdin = data.get("input", _MISSING)
    expected = data.get("expected_output", data.get("expectedOutput", _MISSING))
    hidden = data.get("is_hidden", data.get("isHidden", False))

    if stdin is _MISSING or stdin is None:
        raise ValidationError(f"Test case {index} has no input")
    if expected is _MISSING or expected is None:
        raise ValidationError(f"Test case {index} has no expected output")
    if not isinstance(stdin, str) or not isinstance(expected, str):
        raise ValidationError(f"Test case {index} input and expected output must be text")
    if len(stdin.encode("utf-8")) > max_input_bytes:
        raise ValidationError(
            f"Test case {index} input exceeds the {max_input_bytes} byte limit"
        )

    return TestCase(input=stdin, expected_output=expected, is_hidden=bool(hidden))
