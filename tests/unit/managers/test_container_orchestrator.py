"""Unit tests for ContainerOrchestrator, ContainerRegistry and the denylist."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from aiodocker.exceptions import DockerError

from harbor.config import Settings
from harbor.drivers.base import ContainerSpec, ExecOutput
from harbor.errors import (
    InfrastructureError,
    NotFoundError,
    ResourceLimitError,
    SecurityViolationError,
    TimeoutExceededError,
    ValidationError,
)
from harbor.managers.container import (
    CommandDenylist,
    ContainerOrchestrator,
    ContainerRegistry,
    is_command_safe,
)
from harbor.models.container import ContainerStatus
from tests.fakes import FakeDriver


class StartFailDriver(FakeDriver):
    async def start(self, container_id: str) -> None:
        raise DockerError(500, {"message": "boom"})


class StopFailDriver(FakeDriver):
    async def stop(self, container_id: str, *, timeout: int = 10) -> None:
        self.stop_calls.append((container_id, timeout))
        raise DockerError(500, {"message": "stuck"})


class UnreachableDriver(FakeDriver):
    async def ensure_image(self, image: str) -> bool:
        raise ConnectionRefusedError("docker.sock")


class TestDenylist:
    @pytest.mark.parametrize(
        "command",
        [
            "rm -rf /",
            "RM -RF /tmp",
            "dd if=/dev/zero of=/dev/sda",
            "mkfs.ext4 /dev/sda1",
            "fdisk -l",
            "mount /dev/sda1 /mnt",
            "chmod 777 /etc",
            "chown root file",
            "cd .. && ls",
            "sudo ls",
            "sudoedit /etc/hosts",
            "sudo-rs ls",
            "su-exec root sh",
            "umount /mnt",
            "cat sudoers.txt.bak",
            "echo ok; su -",
            "passwd",
            "useradd bob",
            "userdel bob",
            "groupadd devs",
            "groupdel devs",
            "shutdown now",
            "reboot",
            "halt",
            "poweroff",
        ],
    )
    def test_denied(self, command: str):
        assert is_command_safe(command) is False

    @pytest.mark.parametrize(
        "command",
        ["npm run submit", "echo results", "ls -la", "npm install", "cat asphalt.txt"],
    )
    def test_allowed(self, command: str):
        assert is_command_safe(command) is True

    def test_extra_entries(self):
        denylist = CommandDenylist(["curl", "nc -l"])
        assert denylist.match("curl http://x") == "curl"
        assert denylist.match("nc -l 80") == "nc -l"
        assert denylist.is_safe("curling")


class TestContainerRegistry:
    async def test_allocation_skips_held_ports(self):
        registry = ContainerRegistry(base_port=3000, max_port=3010)

        first = await registry.allocate_ports("a", 2)
        second = await registry.allocate_ports("b", 2)

        assert first == [3000, 3001]
        assert second == [3002, 3003]

    async def test_released_ports_are_reused(self):
        registry = ContainerRegistry(base_port=3000, max_port=3010)
        await registry.allocate_ports("a", 2)
        await registry.allocate_ports("b", 1)

        await registry.release_ports("a")

        assert await registry.allocate_ports("c", 2) == [3000, 3001]

    async def test_exhaustion(self):
        registry = ContainerRegistry(base_port=3000, max_port=3002)
        await registry.allocate_ports("a", 2)

        with pytest.raises(ResourceLimitError):
            await registry.allocate_ports("b", 2)
        assert registry.port_owners() == {3000: "a", 3001: "a"}


class TestCreateContainer:
    async def test_spec_matches_configuration(
        self, orchestrator: ContainerOrchestrator, driver: FakeDriver, test_settings: Settings
    ):
        handle = await orchestrator.create_container("s1")

        spec: ContainerSpec = driver.create_specs[0]
        assert spec.name == "ai-assistant-s1"
        assert spec.image == "node:18-alpine"
        assert spec.command == ["tail", "-f", "/dev/null"]
        assert spec.working_dir == "/app"
        assert list(spec.binds.values()) == ["/app"]
        assert spec.memory == 512 * 1024 * 1024
        assert spec.memory_swap == 1024 * 1024 * 1024
        assert spec.cpu_shares == 512
        assert spec.cap_drop == ["ALL"]
        assert spec.security_opt == ["no-new-privileges"]
        assert spec.labels["ai-assistant.session"] == "s1"
        assert "ai-assistant.created" in spec.labels
        assert spec.ports == {3000: 3000, 5173: 3001}

        assert handle.status == ContainerStatus.RUNNING
        assert handle.ports == {3000: 3000, 5173: 3001}
        assert driver.pulled == ["node:18-alpine"]

    async def test_workspace_layout_is_seeded(
        self, orchestrator: ContainerOrchestrator, test_settings: Settings
    ):
        await orchestrator.create_container("s1")

        same = test_settings.session_path("s1") / ".same"
        assert sorted(p.name for p in same.iterdir()) == [
            "history.md",
            "logs.md",
            "settings.json",
            "todos.md",
            "wiki.md",
        ]

    async def test_existing_metadata_is_not_overwritten(
        self, orchestrator: ContainerOrchestrator, test_settings: Settings
    ):
        same = test_settings.session_path("s1") / ".same"
        same.mkdir(parents=True)
        (same / "todos.md").write_text("keep me")

        await orchestrator.create_container("s1")

        assert (same / "todos.md").read_text() == "keep me"

    async def test_idempotent(self, orchestrator: ContainerOrchestrator, driver: FakeDriver):
        first = await orchestrator.create_container("s1")
        second = await orchestrator.create_container("s1")

        assert first is second
        assert len(driver.create_specs) == 1

    async def test_concurrent_creates_for_one_session(
        self, orchestrator: ContainerOrchestrator, driver: FakeDriver
    ):
        handles = await asyncio.gather(*(orchestrator.create_container("s1") for _ in range(5)))

        assert len({h.id for h in handles}) == 1
        assert len(driver.create_specs) == 1

    async def test_host_ports_never_shared(self, orchestrator: ContainerOrchestrator):
        handles = await asyncio.gather(
            *(orchestrator.create_container(f"s{i}") for i in range(6))
        )

        all_ports = [p for h in handles for p in h.ports.values()]
        assert len(all_ports) == len(set(all_ports))

    async def test_start_failure_cleans_up(self, test_settings: Settings):
        driver = StartFailDriver()
        orchestrator = ContainerOrchestrator(driver, test_settings)

        with pytest.raises(InfrastructureError):
            await orchestrator.create_container("s1")

        assert driver.destroy_calls == ["fake-1"]
        assert orchestrator.registry.port_owners() == {}
        assert orchestrator.get_handle("s1") is None

    async def test_unreachable_runtime(self, test_settings: Settings):
        orchestrator = ContainerOrchestrator(UnreachableDriver(), test_settings)

        with pytest.raises(InfrastructureError):
            await orchestrator.create_container("s1")
        assert orchestrator.registry.port_owners() == {}

    async def test_tool_install_failures_become_warnings(self, test_settings: Settings):
        settings = test_settings.model_copy(deep=True)
        settings.container.install_tools = True
        settings.container.tool_commands = ["apk update", "npm install -g bun"]
        driver = FakeDriver()
        driver.exec_results["npm install -g bun"] = ExecOutput(exit_code=1, stderr="no network")
        orchestrator = ContainerOrchestrator(driver, settings)

        handle = await orchestrator.create_container("s1")

        assert handle.status == ContainerStatus.RUNNING
        assert len(handle.warnings) == 1
        assert "npm install -g bun" in handle.warnings[0]
        assert "no network" in handle.warnings[0]


class TestExecuteCommand:
    async def test_echo(self, orchestrator: ContainerOrchestrator, driver: FakeDriver):
        await orchestrator.create_container("s1")

        result = await orchestrator.execute_command("s1", "echo hi")

        assert result.success is True
        assert result.stdout == "hi\n"
        assert result.exit_code == 0
        assert driver.exec_calls[-1] == ("fake-1", ["sh", "-c", "echo hi"], "/app")

    async def test_non_zero_exit_is_a_result(self, orchestrator: ContainerOrchestrator):
        await orchestrator.create_container("s1")

        result = await orchestrator.execute_command("s1", "exit 3")

        assert result.success is False
        assert result.exit_code == 3

    @pytest.mark.parametrize(
        "command", ["sudo rm x", "sudoedit /etc/hosts", "rm -rf /", "cd .. && cat x", "reboot"]
    )
    async def test_denied_commands_never_reach_runtime(
        self, orchestrator: ContainerOrchestrator, driver: FakeDriver, command: str
    ):
        await orchestrator.create_container("s1")
        calls_before = driver.runtime_calls

        with pytest.raises(SecurityViolationError):
            await orchestrator.execute_command("s1", command)
        assert driver.runtime_calls == calls_before

    async def test_denied_before_session_lookup(self, orchestrator: ContainerOrchestrator):
        with pytest.raises(SecurityViolationError):
            await orchestrator.execute_command("unknown", "sudo ls")

    async def test_unknown_session(self, orchestrator: ContainerOrchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.execute_command("unknown", "ls")

    async def test_timeout(self, orchestrator: ContainerOrchestrator, driver: FakeDriver):
        await orchestrator.create_container("s1")
        driver.exec_delay = 1.0

        with pytest.raises(TimeoutExceededError):
            await orchestrator.execute_command("s1", "sleep 5", timeout=0.05)

    async def test_timeout_is_logged(
        self, orchestrator: ContainerOrchestrator, driver: FakeDriver, test_settings: Settings
    ):
        await orchestrator.create_container("s1")
        driver.exec_delay = 1.0

        with pytest.raises(TimeoutExceededError):
            await orchestrator.execute_command("s1", "sleep 5", timeout=0.05)

        log = (test_settings.session_path("s1") / ".same" / "logs.md").read_text()
        assert "**Command:** `sleep 5`" in log
        assert "**Timed Out:** after 0.05s" in log

    async def test_zero_timeout_is_not_replaced_by_default(
        self, orchestrator: ContainerOrchestrator, driver: FakeDriver
    ):
        await orchestrator.create_container("s1")
        driver.exec_delay = 0.2

        with pytest.raises(TimeoutExceededError) as exc_info:
            await orchestrator.execute_command("s1", "echo slow", timeout=0)
        assert exc_info.value.details["timeout"] == 0

    async def test_command_is_logged(
        self, orchestrator: ContainerOrchestrator, test_settings: Settings
    ):
        await orchestrator.create_container("s1")
        await orchestrator.execute_command("s1", "echo logged")

        log = (test_settings.session_path("s1") / ".same" / "logs.md").read_text()
        assert "**Command:** `echo logged`" in log
        assert "**Exit Code:** 0" in log


class TestObservation:
    async def test_status_of_unknown_session(self, orchestrator: ContainerOrchestrator):
        status = await orchestrator.get_status("nope")
        assert status.status == "not_found"
        assert status.running is False

    async def test_status_running(self, orchestrator: ContainerOrchestrator):
        await orchestrator.create_container("s1")

        status = await orchestrator.get_status("s1")

        assert status.status == "running"
        assert status.running is True
        assert status.ports == {3000: 3000, 5173: 3001}

    async def test_list_containers(self, orchestrator: ContainerOrchestrator):
        await orchestrator.create_container("s1")
        await orchestrator.create_container("s2")

        assert sorted(s.session_id for s in await orchestrator.list_containers()) == ["s1", "s2"]

    @pytest.mark.parametrize("method", ["get_container_logs", "restart_container", "get_resource_usage"])
    async def test_unknown_session_is_not_found(self, orchestrator: ContainerOrchestrator, method: str):
        with pytest.raises(NotFoundError):
            await getattr(orchestrator, method)("nope")

    async def test_logs_and_restart(self, orchestrator: ContainerOrchestrator, driver: FakeDriver):
        await orchestrator.create_container("s1")

        assert await orchestrator.get_container_logs("s1") == "fake-1 ready\n"
        await orchestrator.restart_container("s1")
        assert driver.restart_calls == ["fake-1"]

    async def test_resource_usage(self, orchestrator: ContainerOrchestrator):
        await orchestrator.create_container("s1")

        usage = await orchestrator.get_resource_usage("s1")

        assert usage.cpu_percent == 40.0
        assert usage.memory_usage == 128 * 1024 * 1024
        assert usage.memory_percent == 25.0
        assert usage.network_rx_bytes == 101
        assert usage.network_tx_bytes == 52


class TestCleanup:
    async def test_full_teardown(
        self, orchestrator: ContainerOrchestrator, driver: FakeDriver, test_settings: Settings
    ):
        await orchestrator.create_container("s1")

        result = await orchestrator.cleanup_container("s1")

        assert result.success is True
        assert result.warnings == []
        assert result.steps == ["stop", "remove", "delete_workspace", "deregister"]
        assert driver.stop_calls == [("fake-1", 10)]
        assert driver.destroy_calls == ["fake-1"]
        assert not test_settings.session_path("s1").exists()
        assert orchestrator.registry.port_owners() == {}

    async def test_failures_become_warnings_and_later_steps_run(self, test_settings: Settings):
        driver = StopFailDriver()
        orchestrator = ContainerOrchestrator(driver, test_settings)
        await orchestrator.create_container("s1")

        result = await orchestrator.cleanup_container("s1")

        assert result.success is False
        assert len(result.warnings) == 1
        assert "stuck" in result.warnings[0]
        assert driver.destroy_calls == ["fake-1"]
        assert not Path(test_settings.session_path("s1")).exists()
        assert orchestrator.get_handle("s1") is None

    async def test_cleanup_all(self, orchestrator: ContainerOrchestrator, driver: FakeDriver):
        for sid in ("s1", "s2", "s3"):
            await orchestrator.create_container(sid)

        results = await orchestrator.cleanup_all()

        assert len(results) == 3
        assert all(r.success for r in results)
        assert len(orchestrator.registry) == 0
        assert sorted(driver.destroy_calls) == ["fake-1", "fake-2", "fake-3"]

    @pytest.mark.parametrize("session_id", ["", "..", ".", "../other", "a/b"])
    async def test_malformed_session_id_is_rejected(
        self, orchestrator: ContainerOrchestrator, test_settings: Settings, session_id: str
    ):
        keep = test_settings.session_path("other-session") / "keep.txt"
        keep.parent.mkdir(parents=True)
        keep.write_text("keep")

        with pytest.raises(ValidationError):
            await orchestrator.cleanup_container(session_id)

        assert keep.read_text() == "keep"
        assert test_settings.workspace_root.exists()


class TestSessionIdValidation:
    @pytest.mark.parametrize(
        "method", ["create_container", "get_status", "get_container_logs", "restart_container"]
    )
    async def test_operations_reject_path_like_ids(
        self, orchestrator: ContainerOrchestrator, driver: FakeDriver, method: str
    ):
        with pytest.raises(ValidationError):
            await getattr(orchestrator, method)("../escape")
        assert driver.create_specs == []

    async def test_execute_command_rejects_path_like_id(self, orchestrator: ContainerOrchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.execute_command("..", "ls")

    def test_session_path_rejects_empty_id(self, test_settings: Settings):
        with pytest.raises(ValidationError):
            test_settings.session_path("")
