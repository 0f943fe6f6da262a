"""Tests for NullContainer."""

import io

import pytest

from act_runtime.container.errors import RuntimeUnavailableError
from act_runtime.container.null_container import NullContainer
from act_runtime.container.types import FileEntry, Health, NewContainerInput


@pytest.fixture
def null(detector) -> NullContainer:
    return NullContainer(NewContainerInput(image="ubuntu:22.04", name="act-null"), detector)


OPERATIONS = [
    ("create", lambda c: c.create(["SYS_ADMIN"], [])),
    ("copy", lambda c: c.copy("/tmp", FileEntry(name="a"))),
    ("copy_dir", lambda c: c.copy_dir("/github/workspace", ".", True)),
    ("copy_tar_stream", lambda c: c.copy_tar_stream("/tmp", b"")),
    ("get_container_archive", lambda c: c.get_container_archive("/tmp")),
    ("pull", lambda c: c.pull(True)),
    ("start", lambda c: c.start(False)),
    ("exec", lambda c: c.exec(["true"], {}, "", "")),
    ("update_from_env", lambda c: c.update_from_env("/env", {})),
    ("update_from_image_env", lambda c: c.update_from_image_env({})),
    ("remove", lambda c: c.remove()),
    ("close", lambda c: c.close()),
]


class TestOperationsFail:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("name, call", OPERATIONS, ids=[name for name, _ in OPERATIONS])
    async def test_raises_with_report(self, null, name, call):
        with pytest.raises(RuntimeUnavailableError) as excinfo:
            await call(null)

        message = str(excinfo.value)
        assert message.startswith("no container runtime available")
        assert "Docker" in message
        assert "Podman" in message
        assert "https://docs.docker.com/get-docker/" in message
        assert "https://podman.io/getting-started/installation" in message
        assert excinfo.value.report in message


class TestInertMetadata:
    @pytest.mark.asyncio
    async def test_always_unhealthy(self, null):
        assert await null.get_health() is Health.UNHEALTHY

    def test_log_writer_passthrough(self, null):
        out, err = io.StringIO(), io.StringIO()
        assert null.replace_log_writer(out, err) == (out, err)

    def test_linux_defaults(self, null):
        assert null.to_container_path("/home/me/repo") == "/home/me/repo"
        assert null.get_act_path() == "/opt/act"
        assert null.get_path_variable_name() == "PATH"
        assert null.default_path_variable().endswith("/usr/bin:/sbin:/bin")
        assert null.join_path_variable("/a", "/b") == "/a:/b"
        assert null.is_environment_case_insensitive() is False

    def test_runner_context(self, null):
        context = null.get_runner_context()
        assert context["os"] == "linux"
        assert context["arch"] == "x64"
        assert context["workspace"] == "/github/workspace"
