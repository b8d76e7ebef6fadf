"""Shared fixtures: an in-memory isolation backend that needs no Docker."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import pytest

from codejudge.config import SandboxConfig
from codejudge.sandbox.backend import ContainerSpec
from codejudge.sandbox.executor import CodeExecutor
from codejudge.sandbox.models import ExecOutcome

# Returned by a program handler to simulate a program that never terminates
HANG = object()

Program = Callable[[str], "ExecOutcome | object"]


def outcome(stdout: str = "", stderr: str = "", exit_code: int = 0) -> ExecOutcome:
    return ExecOutcome(exit_code=exit_code, stdout=stdout.encode(), stderr=stderr.encode())


def adder(stdin: str) -> ExecOutcome:
    """Behaves like ``print(int(input()) + int(input()))``."""
    a, b = stdin.split()
    return outcome(f"{int(a) + int(b)}\n")


class FakeContainer:
    def __init__(self, spec: ContainerSpec) -> None:
        self.spec = spec
        self.files: dict[str, bytes] = {}
        self.commands: list[str] = []
        self.started = False
        self.stopped = False
        self.removed = False
        self.killed = threading.Event()


class FakeBackend:
    """``SandboxBackend`` that runs Python callables instead of containers."""

    def __init__(
        self,
        program: Program = adder,
        compiler: Callable[[str], ExecOutcome] | None = None,
        fail_on: set[str] | None = None,
        delay: dict[str, float] | None = None,
        stale: list | None = None,
    ) -> None:
        self.program = program
        self.compiler = compiler or (lambda command: outcome())
        self.fail_on = fail_on or set()
        self.delay = delay or {}
        self.stale = list(stale or [])
        self.containers: list[FakeContainer] = []
        self.removed_stale: list = []
        self.closed = False

    def _step(self, name: str) -> None:
        if name in self.delay:
            time.sleep(self.delay[name])
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def ping(self) -> None:
        self._step("ping")

    def create(self, spec: ContainerSpec) -> FakeContainer:
        self._step("create")
        container = FakeContainer(spec)
        self.containers.append(container)
        return container

    def start(self, container: FakeContainer) -> None:
        self._step("start")
        container.started = True

    def put_file(self, container: FakeContainer, path: str, data: bytes) -> None:
        self._step("put_file")
        container.files[path] = data

    def exec(self, container: FakeContainer, command: str, workdir: str) -> ExecOutcome:
        self._step("exec")
        container.commands.append(command)
        if "< .stdin" not in command:
            return self.compiler(command)

        stdin = container.files[f"{workdir}/.stdin"].decode()
        result = self.program(stdin)
        if result is HANG:
            container.killed.wait(timeout=10)
            return outcome(exit_code=137)
        return result

    def kill_processes(self, container: FakeContainer) -> None:
        self._step("kill_processes")
        container.killed.set()

    def memory_peak(self, container: FakeContainer) -> int:
        self._step("memory_peak")
        return 16 * 1024 * 1024

    def stop(self, container: FakeContainer) -> None:
        self._step("stop")
        container.stopped = True

    def remove(self, container) -> None:
        self._step("remove")
        if isinstance(container, FakeContainer):
            container.removed = True
            container.killed.set()
        else:
            self.removed_stale.append(container)

    def list_stale(self, label: str) -> list:
        self._step("list_stale")
        return list(self.stale)

    def pull(self, image: str) -> None:
        self._step("pull")

    def close(self) -> None:
        self.closed = True

    @property
    def run_commands(self) -> list[str]:
        return [c for box in self.containers for c in box.commands if "< .stdin" in c]


@pytest.fixture
def config() -> SandboxConfig:
    return SandboxConfig(provision_timeout=1.0, compile_timeout=1.0)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def executor(backend: FakeBackend, config: SandboxConfig) -> CodeExecutor:
    return CodeExecutor(backend=backend, config=config)
