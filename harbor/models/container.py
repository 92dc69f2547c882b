"""Container data models.

ContainerHandle is the registry's view of a session container.
- 1 Session = at most 1 Container
- Ports map container port -> host port
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from harbor.utils.datetime import utcnow


class ContainerStatus(str, Enum):
    """Container lifecycle status."""

    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"
    REMOVED = "removed"


class ContainerHandle(BaseModel):
    """A registered session container."""

    id: str
    name: str
    session_id: str
    status: ContainerStatus = ContainerStatus.CREATED
    workspace_path: str
    ports: dict[int, int] = Field(default_factory=dict)

    # Resource limits and security options applied at create time
    memory_limit: int
    cpu_shares: int
    cap_drop: list[str] = Field(default_factory=list)
    security_opt: list[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    # Non-fatal provisioning problems (e.g. tool install failures)
    warnings: list[str] = Field(default_factory=list)

    @property
    def host_ports(self) -> set[int]:
        return set(self.ports.values())


class CommandResult(BaseModel):
    """Result of a command executed inside a session container.

    A non-zero exit code is a normal result: ``success`` is False and
    ``exit_code`` carries the code.
    """

    success: bool
    command: str
    stdout: str = ""
    stderr: str = ""
    exit_code: int
    duration_ms: int = 0
    timestamp: datetime = Field(default_factory=utcnow)


class ContainerStatusInfo(BaseModel):
    """Runtime status of a session container."""

    session_id: str
    status: str
    container_id: str | None = None
    name: str | None = None
    running: bool = False
    ports: dict[int, int] = Field(default_factory=dict)
    created_at: datetime | None = None
    workspace_path: str | None = None
    error: str | None = None


class ResourceUsage(BaseModel):
    """Point-in-time resource usage of a container."""

    success: bool = True
    session_id: str
    cpu_percent: float = 0.0
    memory_usage: int = 0
    memory_limit: int = 0
    memory_percent: float = 0.0
    network_rx_bytes: int = 0
    network_tx_bytes: int = 0
    raw: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class CleanupResult(BaseModel):
    """Outcome of a best-effort teardown.

    Every step runs regardless of earlier failures; failed steps are
    reported in ``warnings``.
    """

    success: bool
    session_id: str
    steps: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
