"""Driver layer - container runtime abstraction."""

from harbor.drivers.base import (
    ContainerInfo,
    ContainerSpec,
    Driver,
    ExecOutput,
    RuntimeStatus,
)
from harbor.drivers.docker import DockerDriver

__all__ = [
    "ContainerInfo",
    "ContainerSpec",
    "DockerDriver",
    "Driver",
    "ExecOutput",
    "RuntimeStatus",
]
