"""Normalization of captured program output and diagnostics."""

from __future__ import annotations

import re

TRUNCATION_MARKER = "\n… [output truncated]"

_TMP_PATH = re.compile(r"/tmp/[^:\s\"']+:")
_STACK_AT = re.compile(r"^\s*at\s+", re.MULTILINE)
_BLANK_RUNS = re.compile(r"\n\s*\n+")


def normalize_output(text: str) -> str:
    """Strip leading/trailing whitespace; comparison is exact afterwards."""
    return text.strip()


def decode(raw: bytes | None) -> str:
    if not raw:
        return ""
    return raw.decode("utf-8", errors="replace")


def truncate(text: str, limit: int) -> tuple[str, bool]:
    """Cap *text* at *limit* characters, returning ``(text, truncated)``."""
    if len(text) <= limit:
        return text, False
    return text[:limit] + TRUNCATION_MARKER, True


def clean_error_text(text: str | None, workdir: str = "/workspace") -> str | None:
    """Make stderr presentable without leaking host or sandbox paths.

    Returns ``None`` when nothing meaningful is left.
    """
    if not text or not text.strip():
        return None

    prefix = workdir.rstrip("/") + "/"
    cleaned = text.strip()
    cleaned = _TMP_PATH.sub("", cleaned)
    # "/workspace/solution.cpp:3:5: error" -> "3:5: error"
    cleaned = re.sub(re.escape(prefix) + r"[^:\s\"']+:", "", cleaned)
    # 'File "/workspace/solution.py"' -> 'File "solution.py"'
    cleaned = cleaned.replace(prefix, "")
    cleaned = _STACK_AT.sub("  at ", cleaned)
    cleaned = _BLANK_RUNS.sub("\n", cleaned)
    cleaned = cleaned.strip()
    return cleaned or None
