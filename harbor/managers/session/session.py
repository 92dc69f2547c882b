"""SessionManager - registry of live sessions.

Key responsibility: a session's workspace, file store and version store
are created on first use and torn down together with its container.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime

import structlog

from harbor.config import Settings, get_settings
from harbor.errors import ConflictError, NotFoundError
from harbor.managers.container import ContainerOrchestrator
from harbor.managers.version import VersionStore
from harbor.managers.workspace import WorkspaceFileStore
from harbor.models.container import CleanupResult, ContainerHandle
from harbor.models.session import Session
from harbor.services.layout import ensure_workspace_layout
from harbor.utils.datetime import utcnow
from harbor.validators.path import validate_session_id

logger = structlog.get_logger()


class SessionManager:
    """Manages session lifecycle."""

    def __init__(
        self,
        orchestrator: ContainerOrchestrator,
        settings: Settings | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._settings = settings or get_settings()
        self._sessions: dict[str, Session] = {}
        self._file_stores: dict[str, WorkspaceFileStore] = {}
        self._version_stores: dict[str, VersionStore] = {}
        self._lock = asyncio.Lock()
        self._log = logger.bind(manager="session")

    @property
    def orchestrator(self) -> ContainerOrchestrator:
        return self._orchestrator

    async def create(self, session_id: str | None = None) -> Session:
        """Create a session and its workspace layout.

        Raises:
            ValidationError: malformed session id
            ConflictError: session already exists
        """
        session_id = session_id or f"sess-{uuid.uuid4().hex[:12]}"
        validate_session_id(session_id)

        async with self._lock:
            if session_id in self._sessions:
                raise ConflictError(
                    f"Session already exists: {session_id}",
                    details={"session_id": session_id},
                )
            return await self._create_locked(session_id)

    async def _create_locked(self, session_id: str) -> Session:
        workspace = self._settings.session_path(session_id)
        self._log.info("session.create", session_id=session_id, workspace=str(workspace))

        await ensure_workspace_layout(workspace)
        versions = VersionStore(workspace, self._settings)
        await versions.initialize()

        session = Session(id=session_id, workspace_path=str(workspace))
        self._sessions[session_id] = session
        self._file_stores[session_id] = WorkspaceFileStore(workspace, self._settings)
        self._version_stores[session_id] = versions
        return session

    async def ensure(self, session_id: str) -> Session:
        """Get a session, creating it on first use."""
        validate_session_id(session_id)
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = await self._create_locked(session_id)
        session.last_active_at = utcnow()
        return session

    async def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(
                f"Session not found: {session_id}", details={"session_id": session_id}
            )
        return session

    async def list(self) -> list[Session]:
        return sorted(self._sessions.values(), key=lambda s: s.created_at)

    async def touch(self, session_id: str) -> Session:
        session = await self.get(session_id)
        session.last_active_at = utcnow()
        return session

    async def files(self, session_id: str) -> WorkspaceFileStore:
        await self.touch(session_id)
        return self._file_stores[session_id]

    async def versions(self, session_id: str) -> VersionStore:
        await self.touch(session_id)
        return self._version_stores[session_id]

    async def start_container(self, session_id: str) -> ContainerHandle:
        """Provision (or return) the session's container."""
        session = await self.touch(session_id)
        handle = await self._orchestrator.create_container(session_id)
        session.container = handle
        return handle

    async def delete(self, session_id: str) -> CleanupResult:
        """Tear down container and workspace, then forget the session."""
        await self.get(session_id)
        self._log.info("session.delete", session_id=session_id)

        result = await self._orchestrator.cleanup_container(session_id)
        async with self._lock:
            self._sessions.pop(session_id, None)
            self._file_stores.pop(session_id, None)
            self._version_stores.pop(session_id, None)

        if result.warnings:
            self._log.warning(
                "session.delete.warnings", session_id=session_id, warnings=result.warnings
            )
        return result

    async def reap_idle(self, now: datetime | None = None) -> list[str]:
        """Delete sessions idle longer than ``session.idle_timeout``.

        Returns:
            IDs of the deleted sessions
        """
        now = now or utcnow()
        timeout = self._settings.session.idle_timeout
        idle = [
            s.id for s in list(self._sessions.values()) if s.idle_seconds(now) > timeout
        ]

        reaped: list[str] = []
        for session_id in idle:
            try:
                await self.delete(session_id)
                reaped.append(session_id)
            except NotFoundError:
                continue
        if reaped:
            self._log.info("session.reaped", sessions=reaped)
        return reaped
