"""Docker driver implementation using aiodocker.

Supports:
- Running Harbor inside a container with mounted docker.sock
- Running Harbor on host with direct docker.sock access
"""

from __future__ import annotations

from typing import Any

import aiodocker
import structlog
from aiodocker.exceptions import DockerError

from harbor.config import DockerConfig
from harbor.drivers.base import (
    ContainerInfo,
    ContainerSpec,
    Driver,
    ExecOutput,
    RuntimeStatus,
)

logger = structlog.get_logger()

_STDERR = 2


def parse_memory(memory_str: str) -> int:
    """Parse memory string (e.g., '1g', '512m') to bytes."""
    memory_str = memory_str.lower().strip()
    multipliers = {
        "k": 1024,
        "m": 1024 * 1024,
        "g": 1024 * 1024 * 1024,
    }
    if memory_str[-1] in multipliers:
        return int(float(memory_str[:-1]) * multipliers[memory_str[-1]])
    return int(memory_str)


def build_container_config(spec: ContainerSpec) -> dict[str, Any]:
    """Translate a ContainerSpec into a Docker Engine create payload."""
    host_config: dict[str, Any] = {
        "Binds": [f"{host}:{target}:rw" for host, target in spec.binds.items()],
        "Memory": spec.memory,
        "MemorySwap": spec.memory_swap,
        "CpuShares": spec.cpu_shares,
        "CapDrop": list(spec.cap_drop),
        "SecurityOpt": list(spec.security_opt),
        "PortBindings": {
            f"{container_port}/tcp": [{"HostPort": str(host_port)}]
            for container_port, host_port in spec.ports.items()
        },
    }
    if spec.network:
        host_config["NetworkMode"] = spec.network

    return {
        "Image": spec.image,
        "Cmd": list(spec.command),
        "WorkingDir": spec.working_dir,
        "Env": [f"{k}={v}" for k, v in spec.env.items()],
        "Labels": dict(spec.labels),
        "ExposedPorts": {f"{port}/tcp": {} for port in spec.ports},
        "HostConfig": host_config,
    }


class DockerDriver(Driver):
    """Docker driver implementation using aiodocker."""

    def __init__(self, config: DockerConfig | None = None) -> None:
        config = config or DockerConfig()
        # Parse socket URL
        socket_url = config.socket
        if "://" in socket_url:
            self._socket = socket_url
        else:
            self._socket = f"unix://{socket_url}"

        self._network = config.network
        self._log = logger.bind(driver="docker")
        self._client: aiodocker.Docker | None = None

    async def _get_client(self) -> aiodocker.Docker:
        """Get or create the aiodocker client."""
        if self._client is None:
            self._client = aiodocker.Docker(url=self._socket)
        return self._client

    async def close(self) -> None:
        """Close the docker client."""
        if self._client is not None:
            await self._client.close()
            self._client = None

    async def ensure_image(self, image: str) -> bool:
        client = await self._get_client()
        try:
            await client.images.inspect(image)
            return False
        except DockerError as e:
            if e.status != 404:
                raise

        self._log.info("docker.pull", image=image)
        await client.images.pull(from_image=image)
        self._log.info("docker.pulled", image=image)
        return True

    async def create(self, spec: ContainerSpec) -> str:
        """Create a container without starting it."""
        client = await self._get_client()
        if spec.network is None:
            spec.network = self._network

        self._log.info(
            "docker.create",
            name=spec.name,
            image=spec.image,
            ports=spec.ports,
        )

        container = await client.containers.create(
            config=build_container_config(spec),
            name=spec.name,
        )

        container_id = container.id
        self._log.info("docker.created", container_id=container_id)
        return container_id

    async def start(self, container_id: str) -> None:
        client = await self._get_client()
        self._log.info("docker.start", container_id=container_id)

        container = client.containers.container(container_id)
        await container.start()

    async def stop(self, container_id: str, *, timeout: int = 10) -> None:
        """Stop a running container."""
        client = await self._get_client()
        self._log.info("docker.stop", container_id=container_id, grace=timeout)

        try:
            container = client.containers.container(container_id)
            await container.stop(t=timeout)
        except DockerError as e:
            if e.status == 404:
                self._log.warning("docker.stop.not_found", container_id=container_id)
            else:
                raise

    async def destroy(self, container_id: str) -> None:
        """Destroy (remove) a container."""
        client = await self._get_client()
        self._log.info("docker.destroy", container_id=container_id)

        try:
            container = client.containers.container(container_id)
            await container.delete(force=True)
        except DockerError as e:
            if e.status == 404:
                self._log.warning("docker.destroy.not_found", container_id=container_id)
            else:
                raise

    async def restart(self, container_id: str, *, timeout: int = 10) -> None:
        client = await self._get_client()
        self._log.info("docker.restart", container_id=container_id)

        container = client.containers.container(container_id)
        await container.restart(timeout=timeout)

    async def status(self, container_id: str) -> ContainerInfo:
        """Get container status."""
        client = await self._get_client()

        try:
            container = client.containers.container(container_id)
            info = await container.show()
        except DockerError as e:
            if e.status == 404:
                return ContainerInfo(
                    container_id=container_id,
                    status=RuntimeStatus.NOT_FOUND,
                )
            raise

        state = info.get("State", {})
        docker_status = state.get("Status", "unknown")

        if docker_status == "running":
            status = RuntimeStatus.RUNNING
        elif docker_status == "created":
            status = RuntimeStatus.CREATED
        elif docker_status == "removing":
            status = RuntimeStatus.REMOVING
        else:
            status = RuntimeStatus.EXITED

        return ContainerInfo(
            container_id=container_id,
            status=status,
            name=info.get("Name", "").lstrip("/") or None,
            exit_code=state.get("ExitCode"),
            started_at=state.get("StartedAt"),
        )

    async def logs(self, container_id: str, tail: int = 100) -> str:
        """Get container logs."""
        client = await self._get_client()

        container = client.containers.container(container_id)
        logs = await container.log(stdout=True, stderr=True, tail=tail)
        return "".join(logs)

    async def exec(
        self,
        container_id: str,
        cmd: list[str],
        *,
        workdir: str | None = None,
    ) -> ExecOutput:
        client = await self._get_client()
        container = client.containers.container(container_id)

        exec_ = await container.exec(
            cmd=cmd,
            stdout=True,
            stderr=True,
            workdir=workdir,
        )

        stdout: list[bytes] = []
        stderr: list[bytes] = []
        async with exec_.start(detach=False) as stream:
            while True:
                message = await stream.read_out()
                if message is None:
                    break
                if message.stream == _STDERR:
                    stderr.append(message.data)
                else:
                    stdout.append(message.data)

        inspect = await exec_.inspect()
        exit_code = inspect.get("ExitCode")
        return ExecOutput(
            exit_code=exit_code if exit_code is not None else -1,
            stdout=b"".join(stdout).decode("utf-8", errors="replace"),
            stderr=b"".join(stderr).decode("utf-8", errors="replace"),
        )

    async def stats(self, container_id: str) -> dict[str, Any]:
        client = await self._get_client()
        container = client.containers.container(container_id)

        stats = await container.stats(stream=False)
        # aiodocker returns a list of samples for non-streaming calls
        if isinstance(stats, list):
            return stats[0] if stats else {}
        return stats
