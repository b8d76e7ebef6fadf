"""
Language profile registry.

A closed, immutable table mapping each supported language identifier to the
toolchain image, source filename and compile/run commands used inside the
sandbox.  Built once at startup; adding a language is a configuration change.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType

from codejudge.sandbox.errors import UnsupportedLanguageError


@dataclass(frozen=True)
class LanguageProfile:
    """Toolchain metadata for one language."""

    language: str
    image: str
    filename: str
    run_command: str
    compile_command: str | None = None
    time_limit_ms: int = 5000
    memory_limit_mb: int = 128

    @property
    def requires_compilation(self) -> bool:
        return self.compile_command is not None


DEFAULT_PROFILES: tuple[LanguageProfile, ...] = (
    LanguageProfile(
        language="javascript",
        image="node:18-alpine",
        filename="solution.js",
        run_command="node solution.js",
    ),
    LanguageProfile(
        language="python",
        image="python:3.11-alpine",
        filename="solution.py",
        run_command="python -u solution.py",
    ),
    LanguageProfile(
        language="java",
        image="eclipse-temurin:17-jdk-alpine",
        filename="Solution.java",
        compile_command="javac Solution.java",
        run_command="java -Xss64m Solution",
        time_limit_ms=10000,
        memory_limit_mb=256,
    ),
    LanguageProfile(
        language="cpp",
        image="frolvlad/alpine-gxx:latest",
        filename="solution.cpp",
        compile_command="g++ -std=c++17 -O2 solution.cpp -o solution",
        run_command="./solution",
        time_limit_ms=10000,
        memory_limit_mb=256,
    ),
    LanguageProfile(
        language="c",
        image="frolvlad/alpine-gxx:latest",
        filename="solution.c",
        compile_command="gcc -O2 solution.c -o solution -lm",
        run_command="./solution",
        time_limit_ms=10000,
        memory_limit_mb=256,
    ),
    LanguageProfile(
        language="csharp",
        image="mono:6.12",
        filename="Program.cs",
        compile_command="mcs -out:Program.exe Program.cs",
        run_command="mono Program.exe",
        time_limit_ms=10000,
        memory_limit_mb=256,
    ),
    LanguageProfile(
        language="php",
        image="php:8.1-cli-alpine",
        filename="solution.php",
        run_command="php solution.php",
    ),
    LanguageProfile(
        language="ruby",
        image="ruby:3.0-alpine",
        filename="solution.rb",
        run_command="ruby solution.rb",
    ),
    LanguageProfile(
        language="go",
        image="golang:1.19-alpine",
        filename="main.go",
        # GOCACHE must live in the writable working directory
        compile_command="GOCACHE=$PWD/.gocache GOPATH=$PWD/.gopath go build -o main main.go",
        run_command="./main",
        time_limit_ms=10000,
        memory_limit_mb=256,
    ),
    LanguageProfile(
        language="rust",
        image="rust:1.70-alpine",
        filename="main.rs",
        compile_command="rustc -O main.rs -o main",
        run_command="./main",
        time_limit_ms=15000,
        memory_limit_mb=512,
    ),
)


class LanguageRegistry(Mapping[str, LanguageProfile]):
    """Read-only lookup of language profiles, safe to share between jobs."""

    def __init__(
        self,
        profiles: tuple[LanguageProfile, ...] = DEFAULT_PROFILES,
        image_overrides: Mapping[str, str] | None = None,
    ) -> None:
        overrides = dict(image_overrides or {})
        table: dict[str, LanguageProfile] = {}
        for profile in profiles:
            if profile.language in overrides:
                profile = replace(profile, image=overrides[profile.language])
            table[profile.language] = profile
        self._profiles = MappingProxyType(table)

    def resolve(self, language: str) -> LanguageProfile:
        """Return the profile for *language* or raise ``UnsupportedLanguageError``."""
        try:
            return self._profiles[language]
        except (KeyError, TypeError):
            raise UnsupportedLanguageError(language) from None

    def languages(self) -> list[str]:
        return list(self._profiles)

    def __getitem__(self, language: str) -> LanguageProfile:
        return self._profiles[language]

    def __iter__(self) -> Iterator[str]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)


default_registry = LanguageRegistry()
