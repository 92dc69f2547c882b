"""Docker driver."""

from harbor.drivers.docker.docker import DockerDriver, parse_memory

__all__ = ["DockerDriver", "parse_memory"]
