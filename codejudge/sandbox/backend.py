"""
Isolation backends.

``SandboxBackend`` is the seam between the provisioner and the isolation
layer.  The provisioner receives a backend explicitly, so tests can swap in an
in-memory implementation.  All methods are blocking; callers wrap them with
``asyncio.to_thread``.

``DockerBackend`` runs each job in a throw-away container:

  - no network (``network_mode="none"``)
  - read-only root filesystem with a size-capped tmpfs working directory
  - memory capped with swap disabled (``memswap_limit == mem_limit``)
  - fractional CPU quota and a pids limit
  - an idle keep-alive command so the container exits on its own if the
    host process dies before teardown
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import docker
from docker.errors import ImageNotFound
from structlog import get_logger

from codejudge.sandbox.errors import ResourceError
from codejudge.sandbox.models import ExecOutcome

logger = get_logger()

# Raw bytes per write; the base64 form stays well under the kernel's
# per-argument limit (MAX_ARG_STRLEN, 128 KiB).
_WRITE_CHUNK = 48 * 1024


@dataclass(frozen=True)
class ContainerSpec:
    """Everything needed to create one sandbox container."""

    name: str
    image: str
    workdir: str
    workdir_size: str
    memory_limit_mb: int
    cpu_period: int
    cpu_quota: int
    pids_limit: int
    keepalive_seconds: int
    labels: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class SandboxBackend(Protocol):
    def ping(self) -> None: ...

    def create(self, spec: ContainerSpec) -> Any: ...

    def start(self, container: Any) -> None: ...

    def put_file(self, container: Any, path: str, data: bytes) -> None: ...

    def exec(self, container: Any, command: str, workdir: str) -> ExecOutcome: ...

    def kill_processes(self, container: Any) -> None: ...

    def memory_peak(self, container: Any) -> int: ...

    def stop(self, container: Any) -> None: ...

    def remove(self, container: Any) -> None: ...

    def list_stale(self, label: str) -> list[Any]: ...

    def pull(self, image: str) -> None: ...

    def close(self) -> None: ...


class DockerBackend:
    """``SandboxBackend`` implemented with the Docker SDK."""

    def __init__(self, client: docker.DockerClient) -> None:
        self._client = client

    @classmethod
    def from_env(cls) -> DockerBackend:
        return cls(docker.from_env())

    def ping(self) -> None:
        self._client.ping()

    def create(self, spec: ContainerSpec):  # noqa: ANN201
        """Create (but don't start) the sandbox container."""
        memory = f"{spec.memory_limit_mb}m"
        return self._client.containers.create(
            image=spec.image,
            command=["sleep", str(spec.keepalive_seconds)],
            name=spec.name,
            working_dir=spec.workdir,
            detach=True,
            labels=spec.labels,
            # Resource limits
            mem_limit=memory,
            memswap_limit=memory,
            cpu_period=spec.cpu_period,
            cpu_quota=spec.cpu_quota,
            pids_limit=spec.pids_limit,
            # Isolation
            network_mode="none",
            read_only=True,
            tmpfs={spec.workdir: f"rw,exec,nosuid,size={spec.workdir_size},mode=1777"},
            # Security hardening
            security_opt=["no-new-privileges"],
            cap_drop=["ALL"],
        )

    def start(self, container) -> None:
        container.start()

    def put_file(self, container, path: str, data: bytes) -> None:
        """Write *data* to *path* inside the container.

        ``put_archive`` cannot target a read-only root or a tmpfs mount, so the
        file is streamed in base64 chunks through ``exec``.
        """
        offset = 0
        redirect = ">"
        while True:
            chunk = base64.b64encode(data[offset:offset + _WRITE_CHUNK]).decode("ascii")
            result = container.exec_run(
                ["sh", "-c", f'printf %s "$1" | base64 -d {redirect} "$2"', "sh", chunk, path],
            )
            if result.exit_code != 0:
                raise ResourceError(f"Could not write {path} into sandbox (exit {result.exit_code})")
            offset += _WRITE_CHUNK
            redirect = ">>"
            if offset >= len(data):
                break

    def exec(self, container, command: str, workdir: str) -> ExecOutcome:
        result = container.exec_run(["sh", "-c", command], workdir=workdir, demux=True)
        stdout, stderr = result.output or (None, None)
        exit_code = result.exit_code if result.exit_code is not None else -1
        return ExecOutcome(exit_code=exit_code, stdout=stdout or b"", stderr=stderr or b"")

    def kill_processes(self, container) -> None:
        # Signals every process except PID 1 (the keep-alive) and the caller.
        result = container.exec_run(["sh", "-c", "kill -9 -1"])
        if result.exit_code != 0:
            raise ResourceError(f"Could not kill sandbox processes (exit {result.exit_code})")

    def memory_peak(self, container) -> int:
        stats = container.stats(stream=False, one_shot=True)
        memory = stats.get("memory_stats") or {}
        return int(memory.get("max_usage") or memory.get("usage") or 0)

    def stop(self, container) -> None:
        container.stop(timeout=1)

    def remove(self, container) -> None:
        container.remove(force=True)

    def list_stale(self, label: str) -> list:
        return self._client.containers.list(all=True, filters={"label": label})

    def pull(self, image: str) -> None:
        try:
            self._client.images.get(image)
        except ImageNotFound:
            logger.info("Pulling toolchain image", image=image)
            self._client.images.pull(image)

    def close(self) -> None:
        self._client.close()
