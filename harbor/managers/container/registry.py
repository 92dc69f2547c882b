"""ContainerRegistry - in-process map of session containers and host ports.

Handles and the host port map are mutated together under one lock so no
two registered containers ever hold the same host port.
"""

from __future__ import annotations

import asyncio

import structlog

from harbor.errors import ResourceLimitError
from harbor.models.container import ContainerHandle

logger = structlog.get_logger()


class ContainerRegistry:
    """Registered container handles plus host port reservations."""

    def __init__(self, base_port: int = 3000, max_port: int = 3999) -> None:
        self._base_port = base_port
        self._max_port = max_port
        self._handles: dict[str, ContainerHandle] = {}
        # host port -> owning session
        self._ports: dict[int, str] = {}
        self._lock = asyncio.Lock()
        self._log = logger.bind(component="container_registry")

    async def allocate_ports(self, session_id: str, count: int) -> list[int]:
        """Reserve ``count`` free host ports for a session.

        Scans upward from the base port, skipping ports held by other
        sessions. Ports already reserved by ``session_id`` are reused.
        """
        async with self._lock:
            allocated = sorted(p for p, owner in self._ports.items() if owner == session_id)
            port = self._base_port
            while len(allocated) < count:
                if port > self._max_port:
                    for p in allocated:
                        self._ports.pop(p, None)
                    raise ResourceLimitError(
                        "No free host ports available",
                        details={
                            "session_id": session_id,
                            "base_port": self._base_port,
                            "max_port": self._max_port,
                        },
                    )
                if port not in self._ports:
                    self._ports[port] = session_id
                    allocated.append(port)
                port += 1

            self._log.debug("registry.ports_allocated", session_id=session_id, ports=allocated)
            return allocated[:count]

    async def release_ports(self, session_id: str) -> list[int]:
        async with self._lock:
            return self._release_locked(session_id)

    def _release_locked(self, session_id: str) -> list[int]:
        released = [p for p, owner in self._ports.items() if owner == session_id]
        for port in released:
            del self._ports[port]
        return released

    async def register(self, handle: ContainerHandle) -> None:
        async with self._lock:
            self._handles[handle.session_id] = handle
            for host_port in handle.ports.values():
                self._ports[host_port] = handle.session_id

    async def deregister(self, session_id: str) -> ContainerHandle | None:
        """Remove a session's handle and release its ports."""
        async with self._lock:
            handle = self._handles.pop(session_id, None)
            self._release_locked(session_id)
            return handle

    def get(self, session_id: str) -> ContainerHandle | None:
        return self._handles.get(session_id)

    def list(self) -> list[ContainerHandle]:
        return list(self._handles.values())

    def session_ids(self) -> list[str]:
        return list(self._handles)

    def port_owners(self) -> dict[int, str]:
        """Snapshot of host port -> session."""
        return dict(self._ports)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)
