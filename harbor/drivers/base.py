"""Driver base class - container runtime abstraction.

Driver is responsible ONLY for talking to the container runtime.
It does NOT handle:
- Port allocation or the container registry
- Command denylisting
- Timeouts (callers bound exec with asyncio.wait_for)
- Workspace files
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RuntimeStatus(str, Enum):
    """Container status from the driver's perspective."""

    CREATED = "created"
    RUNNING = "running"
    EXITED = "exited"
    REMOVING = "removing"
    NOT_FOUND = "not_found"


@dataclass
class ContainerInfo:
    """Container information from driver."""

    container_id: str
    status: RuntimeStatus
    name: str | None = None
    exit_code: int | None = None
    started_at: str | None = None


@dataclass
class ContainerSpec:
    """Everything the runtime needs to create one session container."""

    name: str
    image: str
    command: list[str]
    working_dir: str
    # host path -> container path
    binds: dict[str, str]
    env: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    memory: int = 0
    memory_swap: int = 0
    cpu_shares: int = 0
    cap_drop: list[str] = field(default_factory=list)
    security_opt: list[str] = field(default_factory=list)
    # container port -> host port
    ports: dict[int, int] = field(default_factory=dict)
    network: str | None = None


@dataclass
class ExecOutput:
    """Captured output of one exec."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""


class Driver(ABC):
    """Abstract driver interface for container lifecycle management.

    All containers created by a driver MUST carry the labels in
    ``ContainerSpec.labels`` (``ai-assistant.session`` and
    ``ai-assistant.created``).
    """

    @abstractmethod
    async def ensure_image(self, image: str) -> bool:
        """Pull ``image`` if it is not present locally.

        Returns:
            True if the image was pulled, False if it was already present
        """
        ...

    @abstractmethod
    async def create(self, spec: ContainerSpec) -> str:
        """Create a container without starting it.

        Returns:
            Container ID
        """
        ...

    @abstractmethod
    async def start(self, container_id: str) -> None:
        ...

    @abstractmethod
    async def stop(self, container_id: str, *, timeout: int = 10) -> None:
        """Stop a running container, waiting ``timeout`` seconds before SIGKILL."""
        ...

    @abstractmethod
    async def destroy(self, container_id: str) -> None:
        """Force-remove a container."""
        ...

    @abstractmethod
    async def restart(self, container_id: str, *, timeout: int = 10) -> None:
        ...

    @abstractmethod
    async def status(self, container_id: str) -> ContainerInfo:
        ...

    @abstractmethod
    async def logs(self, container_id: str, tail: int = 100) -> str:
        ...

    @abstractmethod
    async def exec(
        self,
        container_id: str,
        cmd: list[str],
        *,
        workdir: str | None = None,
    ) -> ExecOutput:
        """Run ``cmd`` inside the container and wait for it to finish."""
        ...

    @abstractmethod
    async def stats(self, container_id: str) -> dict[str, Any]:
        """One-shot raw resource statistics."""
        ...

    async def close(self) -> None:
        """Release runtime client resources."""
        return None
