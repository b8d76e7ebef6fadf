"""Tests for the Docker backend (mocked, no Docker daemon needed)."""

from __future__ import annotations

import base64
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import ImageNotFound

from codejudge.sandbox.backend import ContainerSpec, DockerBackend, SandboxBackend
from codejudge.sandbox.errors import ResourceError


def _spec(**overrides) -> ContainerSpec:
    params = dict(
        name="codejudge-abc",
        image="python:3.11-alpine",
        workdir="/workspace",
        workdir_size="64m",
        memory_limit_mb=128,
        cpu_period=100_000,
        cpu_quota=50_000,
        pids_limit=64,
        keepalive_seconds=120,
        labels={"codejudge.managed": "true"},
    )
    params.update(overrides)
    return ContainerSpec(**params)


def _exec_result(exit_code: int = 0, output=None):
    result = MagicMock()
    result.exit_code = exit_code
    result.output = output
    return result


class TestContainerCreation:
    def test_isolation_options(self):
        client = MagicMock()
        DockerBackend(client).create(_spec())

        kwargs = client.containers.create.call_args.kwargs
        assert kwargs["network_mode"] == "none"
        assert kwargs["read_only"] is True
        assert kwargs["mem_limit"] == kwargs["memswap_limit"] == "128m"
        assert kwargs["cpu_quota"] == 50_000
        assert kwargs["pids_limit"] == 64
        assert kwargs["cap_drop"] == ["ALL"]
        assert "no-new-privileges" in kwargs["security_opt"]
        assert kwargs["tmpfs"]["/workspace"].startswith("rw,exec,nosuid,size=64m")
        assert kwargs["command"] == ["sleep", "120"]
        assert kwargs["labels"] == {"codejudge.managed": "true"}

    def test_satisfies_protocol(self):
        assert isinstance(DockerBackend(MagicMock()), SandboxBackend)

    @patch("codejudge.sandbox.backend.docker.from_env")
    def test_from_env(self, mock_from_env):
        backend = DockerBackend.from_env()
        backend.ping()
        mock_from_env.return_value.ping.assert_called_once()


class TestFileTransfer:
    def test_small_file_is_one_write(self):
        container = MagicMock()
        container.exec_run.return_value = _exec_result()

        DockerBackend(MagicMock()).put_file(container, "/workspace/solution.py", b"print(1)")

        (argv,), _ = container.exec_run.call_args
        assert argv[-1] == "/workspace/solution.py"
        assert base64.b64decode(argv[-2]) == b"print(1)"
        assert '> "$2"' in argv[2]

    def test_large_file_is_appended_in_chunks(self):
        container = MagicMock()
        container.exec_run.return_value = _exec_result()
        data = b"x" * (100 * 1024)

        DockerBackend(MagicMock()).put_file(container, "/workspace/big.txt", data)

        calls = container.exec_run.call_args_list
        assert len(calls) == 3
        assert '>> "$2"' in calls[1].args[0][2]
        assert b"".join(base64.b64decode(c.args[0][-2]) for c in calls) == data

    def test_empty_file_is_still_created(self):
        container = MagicMock()
        container.exec_run.return_value = _exec_result()
        DockerBackend(MagicMock()).put_file(container, "/workspace/.stdin", b"")
        assert container.exec_run.call_count == 1

    def test_write_failure(self):
        container = MagicMock()
        container.exec_run.return_value = _exec_result(exit_code=1)
        with pytest.raises(ResourceError):
            DockerBackend(MagicMock()).put_file(container, "/workspace/a", b"a")


class TestExec:
    def test_demuxed_output(self):
        container = MagicMock()
        container.exec_run.return_value = _exec_result(0, (b"5\n", None))

        outcome = DockerBackend(MagicMock()).exec(container, "python -u solution.py < .stdin", "/workspace")

        container.exec_run.assert_called_once_with(
            ["sh", "-c", "python -u solution.py < .stdin"], workdir="/workspace", demux=True
        )
        assert outcome.exit_code == 0
        assert outcome.stdout == b"5\n"
        assert outcome.stderr == b""

    def test_no_output(self):
        container = MagicMock()
        container.exec_run.return_value = _exec_result(137, None)
        outcome = DockerBackend(MagicMock()).exec(container, "./main < .stdin", "/workspace")
        assert outcome.exit_code == 137
        assert outcome.stdout == outcome.stderr == b""

    def test_memory_peak_prefers_max_usage(self):
        container = MagicMock()
        container.stats.return_value = {"memory_stats": {"usage": 10, "max_usage": 42}}
        assert DockerBackend(MagicMock()).memory_peak(container) == 42

    def test_memory_peak_without_stats(self):
        container = MagicMock()
        container.stats.return_value = {}
        assert DockerBackend(MagicMock()).memory_peak(container) == 0


class TestMaintenance:
    def test_list_stale_filters_by_label(self):
        client = MagicMock()
        DockerBackend(client).list_stale("codejudge.managed")
        client.containers.list.assert_called_once_with(
            all=True, filters={"label": "codejudge.managed"}
        )

    def test_pull_only_missing_images(self):
        client = MagicMock()
        DockerBackend(client).pull("python:3.11-alpine")
        client.images.pull.assert_not_called()

        client.images.get.side_effect = ImageNotFound("missing")
        DockerBackend(client).pull("rust:1.70-alpine")
        client.images.pull.assert_called_once_with("rust:1.70-alpine")

    def test_kill_processes(self):
        container = MagicMock()
        container.exec_run.return_value = _exec_result()
        DockerBackend(MagicMock()).kill_processes(container)
        container.exec_run.assert_called_once_with(["sh", "-c", "kill -9 -1"])

    def test_kill_failure_is_reported(self):
        container = MagicMock()
        container.exec_run.return_value = _exec_result(exit_code=1)
        with pytest.raises(ResourceError, match="Could not kill"):
            DockerBackend(MagicMock()).kill_processes(container)

    def test_remove_is_forced(self):
        container = MagicMock()
        DockerBackend(MagicMock()).remove(container)
        container.remove.assert_called_once_with(force=True)
