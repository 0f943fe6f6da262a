"""Tests for RuntimeDetector."""

import pytest

from act_runtime.detection.detector import RuntimeDetector
from act_runtime.detection.probes import CommandResult
from act_runtime.detection.types import ContainerRuntime, RuntimeSocket

from conftest import make_socket

PODMAN_INFO = ("podman", "info", "--format", "json")
PODMAN_MACHINE_INSPECT = ("podman", "machine", "inspect", "--format", "{{.ConnectionInfo.PodmanSocket.Path}}")


def _uri(path) -> str:
    return f"unix://{path}"


class TestCheckEnvironmentHints:
    @pytest.mark.parametrize(
        "name, value, expected",
        [
            ("ACT_CONTAINER_RUNTIME", "docker", ContainerRuntime.DOCKER),
            ("ACT_CONTAINER_RUNTIME", "podman", ContainerRuntime.PODMAN),
            ("ACT_CONTAINER_RUNTIME", "DOCKER", ContainerRuntime.DOCKER),
            ("ACT_CONTAINER_RUNTIME", "PoDmAn", ContainerRuntime.PODMAN),
            ("ACT_CONTAINER_RUNTIME", "banana", ContainerRuntime.UNKNOWN),
            ("PODMAN_HOST", "unix:///test", ContainerRuntime.PODMAN),
            ("DOCKER_HOST", "unix:///test", ContainerRuntime.DOCKER),
        ],
    )
    def test_single_variable(self, detector, monkeypatch, name, value, expected):
        monkeypatch.setenv(name, value)
        assert detector.check_environment_hints() is expected

    def test_no_variables(self, detector):
        assert detector.check_environment_hints() is ContainerRuntime.UNKNOWN

    def test_runtime_variable_beats_host_variables(self, detector, monkeypatch):
        monkeypatch.setenv("ACT_CONTAINER_RUNTIME", "docker")
        monkeypatch.setenv("PODMAN_HOST", "unix:///podman")
        assert detector.check_environment_hints() is ContainerRuntime.DOCKER

    def test_podman_host_beats_docker_host(self, detector, monkeypatch):
        monkeypatch.setenv("PODMAN_HOST", "unix:///podman")
        monkeypatch.setenv("DOCKER_HOST", "unix:///docker")
        assert detector.check_environment_hints() is ContainerRuntime.PODMAN

    def test_unknown_runtime_value_still_checks_hosts(self, detector, monkeypatch):
        monkeypatch.setenv("ACT_CONTAINER_RUNTIME", "banana")
        monkeypatch.setenv("DOCKER_HOST", "tcp://localhost:2375")
        assert detector.check_environment_hints() is ContainerRuntime.DOCKER


class TestDetectRuntimeSockets:
    def test_custom_socket_is_only_candidate(self, detector, config, tmp_path):
        make_socket(tmp_path / "docker.sock")
        config.set_custom_socket("/run/podman/podman.sock")
        assert detector.detect_runtime_sockets() == [
            RuntimeSocket("/run/podman/podman.sock", ContainerRuntime.PODMAN, 100)
        ]

    def test_custom_socket_unknown_path_defaults_to_docker(self, detector, config):
        config.set_custom_socket("/tmp/engine.sock")
        assert detector.detect_runtime_sockets()[0].runtime is ContainerRuntime.DOCKER

    def test_only_existing_sockets(self, detector, tmp_path):
        make_socket(tmp_path / "docker.sock")
        (tmp_path / "podman.sock").write_text("not a socket")
        sockets = detector.detect_runtime_sockets()
        assert [s.path for s in sockets] == [str(tmp_path / "docker.sock")]


class TestAutoDetect:
    @pytest.mark.asyncio
    async def test_highest_verified_score_wins(self, detector, prober, tmp_path):
        for name in ("podman-user.sock", "podman.sock", "docker.sock", "colima.sock"):
            make_socket(tmp_path / name)
        prober.live = {_uri(tmp_path / "podman.sock"), _uri(tmp_path / "docker.sock")}

        assert await detector.auto_detect_runtime() is ContainerRuntime.PODMAN
        assert prober.pinged == [_uri(tmp_path / "podman-user.sock"), _uri(tmp_path / "podman.sock")]

    @pytest.mark.asyncio
    async def test_falls_to_lower_score_when_higher_fails(self, detector, prober, tmp_path):
        make_socket(tmp_path / "podman.sock")
        make_socket(tmp_path / "colima.sock")
        prober.live = {_uri(tmp_path / "colima.sock")}
        assert await detector.auto_detect_runtime() is ContainerRuntime.DOCKER

    @pytest.mark.asyncio
    async def test_ties_broken_by_table_order(self, config, prober, tmp_path):
        docker_path = make_socket(tmp_path / "a.sock")
        podman_path = make_socket(tmp_path / "b.sock")
        prober.live = {_uri(docker_path), _uri(podman_path)}

        table = [
            RuntimeSocket(docker_path, ContainerRuntime.DOCKER, 80),
            RuntimeSocket(podman_path, ContainerRuntime.PODMAN, 80),
        ]
        forward = RuntimeDetector(config, prober=prober, candidates=table, platform="linux")
        backward = RuntimeDetector(config, prober=prober, candidates=table[::-1], platform="linux")

        assert await forward.auto_detect_runtime() is ContainerRuntime.DOCKER
        assert await backward.auto_detect_runtime() is ContainerRuntime.PODMAN

    @pytest.mark.asyncio
    async def test_nothing_present(self, detector, prober):
        assert await detector.auto_detect_runtime() is ContainerRuntime.UNKNOWN
        assert prober.pinged == []

    @pytest.mark.asyncio
    async def test_custom_socket(self, detector, config, prober):
        config.set_custom_socket("/run/podman/podman.sock")
        prober.live = {"unix:///run/podman/podman.sock"}
        assert await detector.auto_detect_runtime() is ContainerRuntime.PODMAN

    @pytest.mark.asyncio
    async def test_macos_machine_socket_first(self, config, prober, candidates, tmp_path):
        machine = make_socket(tmp_path / "machine.sock")
        make_socket(tmp_path / "docker.sock")
        prober.commands[PODMAN_MACHINE_INSPECT] = CommandResult(0, machine + "\n")
        prober.live = {_uri(machine), _uri(tmp_path / "docker.sock")}

        detector = RuntimeDetector(config, prober=prober, candidates=candidates, platform="darwin")
        assert await detector.auto_detect_runtime() is ContainerRuntime.PODMAN
        assert prober.pinged == [_uri(machine)]


class TestVerification:
    @pytest.mark.asyncio
    async def test_docker_requires_binary(self, detector, prober, tmp_path):
        make_socket(tmp_path / "docker.sock")
        prober.live = {_uri(tmp_path / "docker.sock")}
        assert await detector.verify_docker() is False

        prober.binaries.add("docker")
        assert await detector.verify_docker() is True

    @pytest.mark.asyncio
    async def test_docker_uses_docker_host(self, detector, prober, monkeypatch):
        monkeypatch.setenv("DOCKER_HOST", "tcp://127.0.0.1:2375")
        prober.binaries.add("docker")
        prober.live = {"tcp://127.0.0.1:2375"}
        assert await detector.verify_docker() is True

    @pytest.mark.asyncio
    async def test_docker_without_socket(self, detector, prober):
        prober.binaries.add("docker")
        assert await detector.verify_docker() is False
        assert prober.pinged == []

    @pytest.mark.asyncio
    async def test_podman_via_socket(self, detector, prober, tmp_path):
        make_socket(tmp_path / "podman.sock")
        prober.binaries.add("podman")
        prober.live = {_uri(tmp_path / "podman.sock")}
        assert await detector.verify_podman() is True
        assert prober.ran == []

    @pytest.mark.asyncio
    async def test_podman_falls_back_to_info(self, detector, prober):
        prober.binaries.add("podman")
        prober.commands[PODMAN_INFO] = CommandResult(0, "{}")
        assert await detector.verify_podman() is True

    @pytest.mark.asyncio
    async def test_podman_info_failure(self, detector, prober):
        prober.binaries.add("podman")
        prober.commands[PODMAN_INFO] = CommandResult(125, "")
        assert await detector.verify_podman() is False

    @pytest.mark.asyncio
    async def test_podman_without_binary_runs_nothing(self, detector, prober):
        assert await detector.verify_podman() is False
        assert prober.ran == []

    @pytest.mark.asyncio
    async def test_unknown_never_verifies(self, detector):
        assert await detector.verify_runtime(ContainerRuntime.UNKNOWN) is False


class TestDetectAvailableRuntime:
    @pytest.mark.asyncio
    async def test_preferred_runtime_wins(self, detector, config, prober, tmp_path):
        make_socket(tmp_path / "podman.sock")
        make_socket(tmp_path / "docker.sock")
        prober.binaries = {"docker", "podman"}
        prober.live = {_uri(tmp_path / "podman.sock"), _uri(tmp_path / "docker.sock")}
        config.set_preferred_runtime(ContainerRuntime.DOCKER)

        assert await detector.detect_available_runtime() is ContainerRuntime.DOCKER

    @pytest.mark.asyncio
    async def test_unavailable_preference_falls_through(self, detector, config, prober, tmp_path):
        make_socket(tmp_path / "docker.sock")
        prober.binaries = {"docker"}
        prober.live = {_uri(tmp_path / "docker.sock")}
        config.set_preferred_runtime(ContainerRuntime.PODMAN)

        assert await detector.detect_available_runtime() is ContainerRuntime.DOCKER

    @pytest.mark.asyncio
    async def test_environment_hint(self, detector, prober, monkeypatch, tmp_path):
        make_socket(tmp_path / "podman.sock")
        make_socket(tmp_path / "docker.sock")
        prober.binaries = {"docker", "podman"}
        prober.live = {_uri(tmp_path / "podman.sock"), _uri(tmp_path / "docker.sock")}
        monkeypatch.setenv("ACT_CONTAINER_RUNTIME", "docker")

        assert await detector.detect_available_runtime() is ContainerRuntime.DOCKER

    @pytest.mark.asyncio
    async def test_unverified_hint_falls_through(self, detector, prober, monkeypatch, tmp_path):
        make_socket(tmp_path / "docker.sock")
        prober.live = {_uri(tmp_path / "docker.sock")}
        monkeypatch.setenv("PODMAN_HOST", "unix:///nowhere")

        assert await detector.detect_available_runtime() is ContainerRuntime.DOCKER

    @pytest.mark.asyncio
    async def test_nothing_available(self, detector):
        assert await detector.detect_available_runtime() is ContainerRuntime.UNKNOWN

    @pytest.mark.asyncio
    async def test_not_cached_by_default(self, detector, prober, tmp_path):
        make_socket(tmp_path / "docker.sock")
        prober.live = {_uri(tmp_path / "docker.sock")}
        assert await detector.detect_available_runtime() is ContainerRuntime.DOCKER

        prober.live = set()
        assert await detector.detect_available_runtime() is ContainerRuntime.UNKNOWN

    @pytest.mark.asyncio
    async def test_cache_holds_until_config_changes(self, detector, config, prober, tmp_path):
        make_socket(tmp_path / "docker.sock")
        prober.live = {_uri(tmp_path / "docker.sock")}
        config.set_cache_ttl(60)
        assert await detector.detect_available_runtime() is ContainerRuntime.DOCKER

        prober.live = set()
        assert await detector.detect_available_runtime() is ContainerRuntime.DOCKER

        config.set_custom_socket("/run/podman/podman.sock")
        assert await detector.detect_available_runtime() is ContainerRuntime.UNKNOWN

    @pytest.mark.asyncio
    async def test_cache_dropped_when_environment_changes(self, detector, config, prober, monkeypatch, tmp_path):
        make_socket(tmp_path / "docker.sock")
        prober.live = {_uri(tmp_path / "docker.sock")}
        config.set_cache_ttl(60)
        assert await detector.detect_available_runtime() is ContainerRuntime.DOCKER

        prober.live = set()
        monkeypatch.setenv("PODMAN_HOST", "unix:///nowhere")
        assert await detector.detect_available_runtime() is ContainerRuntime.UNKNOWN


class TestGetSocketForRuntime:
    @pytest.mark.asyncio
    async def test_custom_socket(self, detector, config):
        config.set_custom_socket("/custom/engine.sock")
        assert await detector.get_socket_for_runtime(ContainerRuntime.PODMAN) == "unix:///custom/engine.sock"

    @pytest.mark.asyncio
    async def test_first_verified_socket_of_runtime(self, detector, prober, tmp_path):
        make_socket(tmp_path / "podman-user.sock")
        make_socket(tmp_path / "podman.sock")
        make_socket(tmp_path / "docker.sock")
        prober.live = {_uri(tmp_path / "podman.sock"), _uri(tmp_path / "docker.sock")}

        assert await detector.get_socket_for_runtime(ContainerRuntime.PODMAN) == _uri(tmp_path / "podman.sock")
        assert await detector.get_socket_for_runtime(ContainerRuntime.DOCKER) == _uri(tmp_path / "docker.sock")

    @pytest.mark.asyncio
    async def test_none_found(self, detector):
        assert await detector.get_socket_for_runtime(ContainerRuntime.PODMAN) is None

    @pytest.mark.asyncio
    async def test_macos_machine_socket(self, config, prober, candidates, tmp_path):
        machine = make_socket(tmp_path / "machine.sock")
        prober.commands[PODMAN_MACHINE_INSPECT] = CommandResult(0, machine + "\n")
        detector = RuntimeDetector(config, prober=prober, candidates=candidates, platform="darwin")

        assert await detector.get_socket_for_runtime(ContainerRuntime.PODMAN) == _uri(machine)

    @pytest.mark.asyncio
    async def test_macos_machine_without_value_falls_back(self, config, prober, candidates, tmp_path):
        make_socket(tmp_path / "podman.sock")
        prober.live = {_uri(tmp_path / "podman.sock")}
        prober.commands[PODMAN_MACHINE_INSPECT] = CommandResult(0, "<no value>\n")
        detector = RuntimeDetector(config, prober=prober, candidates=candidates, platform="darwin")

        assert await detector.get_socket_for_runtime(ContainerRuntime.PODMAN) == _uri(tmp_path / "podman.sock")

    @pytest.mark.asyncio
    async def test_macos_machine_socket_missing_on_disk(self, config, prober, candidates, tmp_path):
        prober.commands[PODMAN_MACHINE_INSPECT] = CommandResult(0, str(tmp_path / "gone.sock"))
        detector = RuntimeDetector(config, prober=prober, candidates=candidates, platform="darwin")

        assert await detector.get_podman_machine_socket() is None


class TestHelpfulErrorMessage:
    @pytest.mark.asyncio
    async def test_contains_guidance(self, detector):
        message = await detector.get_helpful_error_message()
        for element in (
            "No container runtime detected",
            "Docker",
            "Podman",
            "https://docs.docker.com/get-docker/",
            "https://podman.io/getting-started/installation",
            "act --container-runtime",
            "act --container-socket",
        ):
            assert element in message

    @pytest.mark.asyncio
    async def test_reports_docker_socket_status(self, detector, prober, tmp_path):
        make_socket(tmp_path / "docker.sock")
        message = await detector.get_helpful_error_message()
        assert f"✗ Docker (socket: {_uri(tmp_path / 'docker.sock')})" in message

    @pytest.mark.asyncio
    async def test_reports_missing_docker_daemon(self, detector):
        message = await detector.get_helpful_error_message()
        assert "Docker daemon not running (no socket found)" in message

    @pytest.mark.asyncio
    async def test_reports_podman_binary_check(self, detector, prober):
        prober.binaries.add("podman")
        prober.commands[PODMAN_INFO] = CommandResult(0, "{}")
        message = await detector.get_helpful_error_message()
        assert "✓ Podman (binary check)" in message
