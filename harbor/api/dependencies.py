"""FastAPI dependencies.

Services are built once by ``create_app`` and kept on ``app.state``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Path, Request

from harbor.managers.container import ContainerOrchestrator
from harbor.managers.session import SessionManager
from harbor.managers.version import VersionStore
from harbor.managers.workspace import WorkspaceFileStore
from harbor.validators.path import validate_session_id


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_orchestrator(request: Request) -> ContainerOrchestrator:
    return request.app.state.orchestrator


def validated_session_id(
    session_id: str = Path(..., description="Session ID"),
) -> str:
    """Dependency to validate the session_id path parameter."""
    return validate_session_id(session_id)


SessionManagerDep = Annotated[SessionManager, Depends(get_session_manager)]
OrchestratorDep = Annotated[ContainerOrchestrator, Depends(get_orchestrator)]
SessionIdDep = Annotated[str, Depends(validated_session_id)]


async def get_file_store(
    session_id: SessionIdDep,
    sessions: SessionManagerDep,
) -> WorkspaceFileStore:
    """File store of a session, creating the session on first use."""
    await sessions.ensure(session_id)
    return await sessions.files(session_id)


async def get_version_store(
    session_id: SessionIdDep,
    sessions: SessionManagerDep,
) -> VersionStore:
    """Version store of a session, creating the session on first use."""
    await sessions.ensure(session_id)
    return await sessions.versions(session_id)


FileStoreDep = Annotated[WorkspaceFileStore, Depends(get_file_store)]
VersionStoreDep = Annotated[VersionStore, Depends(get_version_store)]
