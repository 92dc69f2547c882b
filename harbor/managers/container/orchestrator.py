"""ContainerOrchestrator - one resource-capped container per session.

Key responsibilities:
- create_container: idempotent provisioning under a per-session lock
- execute_command: denylist, bounded exec, command log
- cleanup_container: best-effort teardown, failures returned as warnings
"""

from __future__ import annotations

import asyncio
import shutil
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog
from aiodocker.exceptions import DockerError

from harbor.concurrency.locks import SessionLockRegistry
from harbor.config import Settings, get_settings
from harbor.drivers.base import ContainerSpec, Driver, ExecOutput, RuntimeStatus
from harbor.drivers.docker.docker import parse_memory
from harbor.errors import (
    HarborError,
    InfrastructureError,
    NotFoundError,
    SecurityViolationError,
    TimeoutExceededError,
    ValidationError,
)
from harbor.managers.container.denylist import CommandDenylist
from harbor.managers.container.registry import ContainerRegistry
from harbor.models.container import (
    CleanupResult,
    CommandResult,
    ContainerHandle,
    ContainerStatus,
    ContainerStatusInfo,
    ResourceUsage,
)
from harbor.services.journal import OperationJournal
from harbor.services.layout import ensure_workspace_layout
from harbor.utils.datetime import utcnow
from harbor.validators.path import validate_session_id

logger = structlog.get_logger()

SESSION_LABEL = "ai-assistant.session"
CREATED_LABEL = "ai-assistant.created"


@contextmanager
def runtime_errors(action: str, session_id: str) -> Iterator[None]:
    """Translate container runtime failures into Harbor errors."""
    try:
        yield
    except DockerError as e:
        if e.status == 404:
            raise NotFoundError(
                f"Container not found for session: {session_id}",
                details={"session_id": session_id, "action": action},
            ) from e
        raise InfrastructureError(
            f"Container runtime error during {action}: {e.message}",
            details={"session_id": session_id, "action": action, "status": e.status},
        ) from e
    except OSError as e:
        raise InfrastructureError(
            f"Container runtime unreachable during {action}: {e}",
            details={"session_id": session_id, "action": action},
        ) from e


def summarize_stats(raw: dict[str, Any]) -> dict[str, Any]:
    """Reduce a Docker stats sample to cpu/memory/network figures."""
    cpu_stats = raw.get("cpu_stats") or {}
    precpu_stats = raw.get("precpu_stats") or {}
    cpu_total = (cpu_stats.get("cpu_usage") or {}).get("total_usage", 0)
    precpu_total = (precpu_stats.get("cpu_usage") or {}).get("total_usage", 0)
    cpu_delta = cpu_total - precpu_total
    system_delta = cpu_stats.get("system_cpu_usage", 0) - precpu_stats.get(
        "system_cpu_usage", 0
    )
    online_cpus = cpu_stats.get("online_cpus") or len(
        (cpu_stats.get("cpu_usage") or {}).get("percpu_usage") or []
    ) or 1

    cpu_percent = 0.0
    if system_delta > 0 and cpu_delta > 0:
        cpu_percent = cpu_delta / system_delta * online_cpus * 100.0

    memory_stats = raw.get("memory_stats") or {}
    memory_usage = memory_stats.get("usage", 0)
    memory_limit = memory_stats.get("limit", 0)
    memory_percent = memory_usage / memory_limit * 100.0 if memory_limit else 0.0

    rx = tx = 0
    for iface in (raw.get("networks") or {}).values():
        rx += iface.get("rx_bytes", 0)
        tx += iface.get("tx_bytes", 0)

    return {
        "cpu_percent": round(cpu_percent, 2),
        "memory_usage": memory_usage,
        "memory_limit": memory_limit,
        "memory_percent": round(memory_percent, 2),
        "network_rx_bytes": rx,
        "network_tx_bytes": tx,
    }


class ContainerOrchestrator:
    """Provisions, drives and tears down session containers."""

    def __init__(
        self,
        driver: Driver,
        settings: Settings | None = None,
        *,
        registry: ContainerRegistry | None = None,
        locks: SessionLockRegistry | None = None,
    ) -> None:
        self._driver = driver
        self._settings = settings or get_settings()
        config = self._settings.container
        self._registry = registry or ContainerRegistry(
            base_port=config.base_host_port,
            max_port=config.max_host_port,
        )
        self._locks = locks or SessionLockRegistry()
        self._denylist = CommandDenylist(config.extra_denylist)
        self._log = logger.bind(manager="container")

    @property
    def registry(self) -> ContainerRegistry:
        return self._registry

    @property
    def denylist(self) -> CommandDenylist:
        return self._denylist

    def get_handle(self, session_id: str) -> ContainerHandle | None:
        return self._registry.get(session_id)

    def _require_handle(self, session_id: str) -> ContainerHandle:
        validate_session_id(session_id)
        handle = self._registry.get(session_id)
        if handle is None:
            raise NotFoundError(
                f"No container for session: {session_id}",
                details={"session_id": session_id},
            )
        return handle

    # Lifecycle

    async def create_container(self, session_id: str) -> ContainerHandle:
        """Provision the session's container, or return the existing one.

        Raises:
            InfrastructureError: runtime unreachable or create/start failed
            ResourceLimitError: no free host ports
        """
        validate_session_id(session_id)
        lock = await self._locks.get(session_id)
        async with lock:
            existing = self._registry.get(session_id)
            if existing is not None:
                self._log.info(
                    "container.create.exists",
                    session_id=session_id,
                    container_id=existing.id,
                )
                return existing
            return await self._provision(session_id)

    async def _provision(self, session_id: str) -> ContainerHandle:
        config = self._settings.container
        workspace = self._settings.session_path(session_id)
        await ensure_workspace_layout(workspace)

        host_ports = await self._registry.allocate_ports(
            session_id, len(config.expected_ports)
        )
        port_map = dict(zip(config.expected_ports, host_ports))
        created_at = utcnow()
        memory = parse_memory(config.memory)

        spec = ContainerSpec(
            name=f"{config.name_prefix}{session_id}",
            image=config.image,
            command=["tail", "-f", "/dev/null"],
            working_dir=config.mount_path,
            binds={str(workspace.resolve()): config.mount_path},
            env=dict(config.env),
            labels={
                SESSION_LABEL: session_id,
                CREATED_LABEL: created_at.isoformat(),
            },
            memory=memory,
            memory_swap=parse_memory(config.memory_swap),
            cpu_shares=config.cpu_shares,
            cap_drop=list(config.cap_drop),
            security_opt=list(config.security_opt),
            ports=port_map,
            network=self._settings.docker.network,
        )

        self._log.info(
            "container.create",
            session_id=session_id,
            image=config.image,
            ports=port_map,
        )

        container_id: str | None = None
        try:
            with runtime_errors("create", session_id):
                await self._driver.ensure_image(config.image)
                container_id = await self._driver.create(spec)
                await self._driver.start(container_id)
        except HarborError as exc:
            self._log.error(
                "container.create.failed",
                session_id=session_id,
                error=exc.message,
            )
            await self._registry.release_ports(session_id)
            if container_id is not None:
                await self._discard_partial(session_id, container_id)
            if isinstance(exc, NotFoundError):
                raise InfrastructureError(exc.message, details=exc.details) from exc
            raise

        handle = ContainerHandle(
            id=container_id,
            name=spec.name,
            session_id=session_id,
            status=ContainerStatus.RUNNING,
            workspace_path=str(workspace),
            ports=port_map,
            memory_limit=memory,
            cpu_shares=config.cpu_shares,
            cap_drop=spec.cap_drop,
            security_opt=spec.security_opt,
            created_at=created_at,
        )

        if config.install_tools:
            handle.warnings.extend(await self._install_tools(session_id, container_id))

        await self._registry.register(handle)
        self._log.info(
            "container.created",
            session_id=session_id,
            container_id=container_id,
            warnings=len(handle.warnings),
        )
        return handle

    async def _discard_partial(self, session_id: str, container_id: str) -> None:
        try:
            await self._driver.destroy(container_id)
        except Exception as exc:
            self._log.warning(
                "container.create.discard_failed",
                session_id=session_id,
                container_id=container_id,
                error=str(exc),
            )

    async def _install_tools(self, session_id: str, container_id: str) -> list[str]:
        """Best-effort baseline tooling; each failure becomes a warning."""
        config = self._settings.container
        warnings: list[str] = []
        for command in config.tool_commands:
            try:
                output = await asyncio.wait_for(
                    self._driver.exec(
                        container_id,
                        ["sh", "-c", command],
                        workdir=config.mount_path,
                    ),
                    timeout=config.tool_install_timeout,
                )
            except asyncio.TimeoutError:
                warnings.append(f"tool install timed out: {command}")
                continue
            except Exception as exc:
                warnings.append(f"tool install failed: {command}: {exc}")
                continue

            if output.exit_code != 0:
                detail = (output.stderr or output.stdout).strip()
                warnings.append(
                    f"tool install failed: {command} (exit {output.exit_code}) {detail}".rstrip()
                )

        for warning in warnings:
            self._log.warning("container.tools.warning", session_id=session_id, warning=warning)
        return warnings

    # Execution

    async def execute_command(
        self,
        session_id: str,
        command: str,
        *,
        timeout: int | float | None = None,
    ) -> CommandResult:
        """Run ``command`` via ``sh -c`` in the session container.

        Raises:
            SecurityViolationError: command hits the denylist
            NotFoundError: session has no container
            TimeoutExceededError: command ran past ``timeout`` seconds
        """
        validate_session_id(session_id)
        if not isinstance(command, str) or not command.strip():
            raise ValidationError("field 'command' must be a non-empty string")

        matched = self._denylist.match(command)
        if matched is not None:
            self._log.warning(
                "container.exec.denied",
                session_id=session_id,
                command=command,
                pattern=matched,
            )
            raise SecurityViolationError(
                "Command contains potentially dangerous operations",
                details={"command": command, "pattern": matched},
            )

        handle = self._require_handle(session_id)
        config = self._settings.container
        if timeout is None:
            timeout = config.exec_timeout
        journal = OperationJournal(Path(handle.workspace_path))

        self._log.info("container.exec", session_id=session_id, command=command)
        started = time.monotonic()
        try:
            output = await asyncio.wait_for(
                self._exec(session_id, handle.id, command),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self._log.warning(
                "container.exec.timeout",
                session_id=session_id,
                command=command,
                timeout=timeout,
            )
            await journal.record_timeout(command, timeout)
            raise TimeoutExceededError(
                f"Command timed out after {timeout}s",
                details={"command": command, "timeout": timeout},
            ) from None

        duration_ms = int((time.monotonic() - started) * 1000)
        await journal.record_command(command, output.exit_code, output.stdout, output.stderr)

        return CommandResult(
            success=output.exit_code == 0,
            command=command,
            stdout=output.stdout,
            stderr=output.stderr,
            exit_code=output.exit_code,
            duration_ms=duration_ms,
        )

    async def _exec(self, session_id: str, container_id: str, command: str) -> ExecOutput:
        with runtime_errors("exec", session_id):
            return await self._driver.exec(
                container_id,
                ["sh", "-c", command],
                workdir=self._settings.container.mount_path,
            )

    # Observation

    async def get_status(self, session_id: str) -> ContainerStatusInfo:
        validate_session_id(session_id)
        handle = self._registry.get(session_id)
        if handle is None:
            return ContainerStatusInfo(session_id=session_id, status="not_found")

        try:
            with runtime_errors("status", session_id):
                info = await self._driver.status(handle.id)
        except HarborError as exc:
            return ContainerStatusInfo(
                session_id=session_id,
                status="error",
                container_id=handle.id,
                name=handle.name,
                ports=handle.ports,
                created_at=handle.created_at,
                workspace_path=handle.workspace_path,
                error=exc.message,
            )

        return ContainerStatusInfo(
            session_id=session_id,
            status=info.status.value,
            container_id=handle.id,
            name=handle.name,
            running=info.status == RuntimeStatus.RUNNING,
            ports=handle.ports,
            created_at=handle.created_at,
            workspace_path=handle.workspace_path,
        )

    async def list_containers(self) -> list[ContainerStatusInfo]:
        return [await self.get_status(sid) for sid in self._registry.session_ids()]

    async def get_container_logs(self, session_id: str, tail: int = 100) -> str:
        handle = self._require_handle(session_id)
        with runtime_errors("logs", session_id):
            return await self._driver.logs(handle.id, tail=tail)

    async def restart_container(self, session_id: str) -> ContainerHandle:
        handle = self._require_handle(session_id)
        self._log.info("container.restart", session_id=session_id, container_id=handle.id)
        with runtime_errors("restart", session_id):
            await self._driver.restart(
                handle.id, timeout=self._settings.container.stop_grace_seconds
            )
        handle.status = ContainerStatus.RUNNING
        return handle

    async def get_resource_usage(self, session_id: str) -> ResourceUsage:
        handle = self._require_handle(session_id)
        with runtime_errors("stats", session_id):
            raw = await self._driver.stats(handle.id)
        return ResourceUsage(session_id=session_id, raw=raw, **summarize_stats(raw))

    # Teardown

    async def cleanup_container(self, session_id: str) -> CleanupResult:
        """Stop, force-remove, delete workspace, deregister.

        Every step runs even when earlier ones fail.
        """
        validate_session_id(session_id)
        lock = await self._locks.get(session_id)
        async with lock:
            result = await self._teardown(session_id)
        await self._locks.discard(session_id)
        return result

    async def _teardown(self, session_id: str) -> CleanupResult:
        steps: list[str] = []
        warnings: list[str] = []
        handle = self._registry.get(session_id)
        workspace = (
            Path(handle.workspace_path)
            if handle is not None
            else self._settings.session_path(session_id)
        )
        self._log.info(
            "container.cleanup",
            session_id=session_id,
            container_id=handle.id if handle else None,
        )

        if handle is not None:
            try:
                await self._driver.stop(
                    handle.id, timeout=self._settings.container.stop_grace_seconds
                )
                handle.status = ContainerStatus.STOPPED
                steps.append("stop")
            except Exception as exc:
                warnings.append(f"stop failed: {exc}")

            try:
                await self._driver.destroy(handle.id)
                handle.status = ContainerStatus.REMOVED
                steps.append("remove")
            except Exception as exc:
                warnings.append(f"remove failed: {exc}")

        if workspace.exists():
            try:
                await asyncio.to_thread(shutil.rmtree, workspace)
                steps.append("delete_workspace")
            except OSError as exc:
                warnings.append(f"workspace delete failed: {exc}")

        await self._registry.deregister(session_id)
        steps.append("deregister")

        for warning in warnings:
            self._log.warning("container.cleanup.warning", session_id=session_id, warning=warning)

        return CleanupResult(
            success=not warnings,
            session_id=session_id,
            steps=steps,
            warnings=warnings,
        )

    async def cleanup_all(self) -> list[CleanupResult]:
        """Tear down every registered container concurrently."""
        session_ids = self._registry.session_ids()
        if not session_ids:
            return []
        self._log.info("container.cleanup_all", count=len(session_ids))
        return list(
            await asyncio.gather(*(self.cleanup_container(sid) for sid in session_ids))
        )
