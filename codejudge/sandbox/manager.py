"""
Sandbox provisioner.

Lifecycle per job:
  1. Create an ephemeral container from the language's toolchain image
  2. Start it with an idle keep-alive command
  3. Write the source file into the writable working directory
  4. Hand the handle to the test runner (compile once, exec once per test)
  5. Stop and force-remove the container

``sandbox()`` is the only supported way to acquire a handle: teardown runs on
every exit path, including timeouts, internal errors and cancellation.  Every
isolation-layer step is bounded by ``provision_timeout`` and any failure there
surfaces as ``ResourceError``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, TypeVar

from structlog import get_logger

from codejudge.config import SandboxConfig
from codejudge.sandbox.backend import ContainerSpec, SandboxBackend
from codejudge.sandbox.errors import ResourceError
from codejudge.sandbox.models import ExecOutcome, ExecutionJob, SandboxState

logger = get_logger()

T = TypeVar("T")


@dataclass
class SandboxHandle:
    """One live isolated environment, exclusively owned by a single job."""

    id: str
    job_id: str
    container: Any
    workdir: str
    state: SandboxState = SandboxState.CREATED
    torn_down: bool = False

    def path(self, filename: str) -> str:
        return f"{self.workdir.rstrip('/')}/{filename}"


class SandboxProvisioner:
    """Creates and tears down one sandbox per job through a ``SandboxBackend``."""

    def __init__(self, backend: SandboxBackend, config: SandboxConfig) -> None:
        self._backend = backend
        self._config = config
        self.provision_count = 0
        self.teardown_count = 0
        # Strong references to cleanup tasks scheduled from callbacks
        self._background: set[asyncio.Future] = set()

    @property
    def managed_label(self) -> str:
        return f"{self._config.label_prefix}.managed"

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def sandbox(self, job: ExecutionJob) -> AsyncIterator[SandboxHandle]:
        """Provision a sandbox for *job* and always tear it down afterwards."""
        handle = await self.provision(job)
        try:
            yield handle
        finally:
            await self.teardown(handle)

    async def provision(self, job: ExecutionJob) -> SandboxHandle:
        """Create, start and seed a sandbox; raises ``ResourceError`` on failure."""
        spec = self._container_spec(job)
        log = logger.bind(job_id=job.job_id, sandbox=spec.name)

        container = await self._create(spec)
        handle = SandboxHandle(
            id=spec.name,
            job_id=job.job_id,
            container=container,
            workdir=self._config.workdir,
        )
        try:
            await self._call(self._backend.start, container)
            handle.state = SandboxState.STARTED
            await self._call(
                self._backend.put_file,
                container,
                handle.path(job.profile.filename),
                job.source_code.encode("utf-8"),
            )
        except asyncio.CancelledError:
            await asyncio.shield(self._discard(container))
            raise
        except Exception as exc:
            log.error("Sandbox provisioning failed", error=str(exc))
            await self._discard(container)
            raise ResourceError(f"Failed to start sandbox: {exc}") from exc

        self.provision_count += 1
        log.info("Sandbox provisioned", image=spec.image, memory_mb=spec.memory_limit_mb)
        return handle

    async def teardown(self, handle: SandboxHandle) -> None:
        """Stop and remove the sandbox. Never raises; errors are logged."""
        if handle.torn_down:
            return
        handle.torn_down = True
        self.teardown_count += 1
        await asyncio.shield(self._teardown(handle))

    async def _teardown(self, handle: SandboxHandle) -> None:
        log = logger.bind(job_id=handle.job_id, sandbox=handle.id)
        try:
            await self._call(self._backend.stop, handle.container)
            handle.state = SandboxState.STOPPED
        except Exception as exc:
            log.warning("Sandbox stop failed, forcing removal", error=str(exc))
        try:
            await self._call(self._backend.remove, handle.container)
            handle.state = SandboxState.REMOVED
            log.info("Sandbox removed")
        except Exception as exc:
            log.error("Sandbox removal failed", error=str(exc))

    # ------------------------------------------------------------------
    # Operations on a live sandbox
    # ------------------------------------------------------------------

    async def write_file(self, handle: SandboxHandle, filename: str, data: bytes) -> None:
        try:
            await self._call(self._backend.put_file, handle.container, handle.path(filename), data)
        except Exception as exc:
            raise ResourceError(f"Failed to write {filename} into sandbox: {exc}") from exc

    async def exec(self, handle: SandboxHandle, command: str, timeout: float) -> ExecOutcome:
        """Run *command* in the working directory, racing it against *timeout*.

        On expiry every process in the sandbox is killed and
        ``asyncio.TimeoutError`` is raised.
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._backend.exec, handle.container, command, handle.workdir),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await self._kill(handle)
            raise
        except Exception as exc:
            raise ResourceError(f"Sandbox exec failed: {exc}") from exc

    async def memory_peak(self, handle: SandboxHandle) -> int:
        """Best-effort peak memory of the sandbox in bytes; 0 if unknown."""
        try:
            return await self._call(self._backend.memory_peak, handle.container)
        except Exception as exc:
            logger.debug("Memory stats unavailable", sandbox=handle.id, error=str(exc))
            return 0

    async def _kill(self, handle: SandboxHandle) -> None:
        try:
            await self._call(self._backend.kill_processes, handle.container)
        except Exception as exc:
            logger.warning("Could not kill sandbox processes", sandbox=handle.id, error=str(exc))

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def reap_stale(self) -> int:
        """Remove sandboxes left behind by a previous process."""
        try:
            stale = await self._call(self._backend.list_stale, self.managed_label)
        except Exception as exc:
            logger.warning("Could not list stale sandboxes", error=str(exc))
            return 0

        removed = 0
        for container in stale:
            try:
                await self._call(self._backend.remove, container)
                removed += 1
            except Exception as exc:
                logger.warning("Could not remove stale sandbox", error=str(exc))
        if removed:
            logger.info("Reaped stale sandboxes", count=removed)
        return removed

    async def prepare_images(self, images: list[str]) -> None:
        """Make sure toolchain images are present on the host."""
        for image in sorted(set(images)):
            try:
                await asyncio.to_thread(self._backend.pull, image)
            except Exception as exc:
                logger.warning("Toolchain image unavailable", image=image, error=str(exc))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.wait_for(
            asyncio.to_thread(fn, *args), timeout=self._config.provision_timeout
        )

    async def _create(self, spec: ContainerSpec) -> Any:
        task = asyncio.ensure_future(self._call(self._backend.create, spec))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The create call may still succeed; remove whatever it produces.
            self._track(task)
            task.add_done_callback(self._discard_created)
            raise
        except Exception as exc:
            logger.error("Sandbox creation failed", sandbox=spec.name, error=str(exc))
            raise ResourceError(f"Failed to create sandbox: {exc}") from exc

    def _discard_created(self, task: asyncio.Future) -> None:
        if task.cancelled() or task.exception() is not None:
            return
        self._track(asyncio.ensure_future(self._discard(task.result())))

    def _track(self, task: asyncio.Future) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _discard(self, container: Any) -> None:
        try:
            await self._call(self._backend.remove, container)
        except Exception as exc:
            logger.error("Could not discard partially provisioned sandbox", error=str(exc))

    def _container_spec(self, job: ExecutionJob) -> ContainerSpec:
        prefix = self._config.label_prefix
        return ContainerSpec(
            name=f"{prefix}-{job.job_id}",
            image=job.profile.image,
            workdir=self._config.workdir,
            workdir_size=self._config.workdir_size,
            memory_limit_mb=job.memory_limit_mb,
            cpu_period=self._config.cpu_period,
            cpu_quota=self._config.cpu_quota,
            pids_limit=self._config.pids_limit,
            keepalive_seconds=self._keepalive_seconds(job),
            labels={
                self.managed_label: "true",
                f"{prefix}.job": job.job_id,
                f"{prefix}.language": job.language,
            },
        )

    def _keepalive_seconds(self, job: ExecutionJob) -> int:
        """Upper bound on how long the job can legitimately need the sandbox."""
        step = self._config.provision_timeout
        per_test = job.time_limit_ms / 1000 + 2 * step
        total = 4 * step + self._config.compile_timeout + per_test * len(job.test_cases)
        return int(total) + 1
