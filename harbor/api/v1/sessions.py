"""Sessions and session container endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from harbor.api.dependencies import OrchestratorDep, SessionIdDep, SessionManagerDep
from harbor.errors import NotFoundError
from harbor.models.container import (
    CleanupResult,
    CommandResult,
    ContainerHandle,
    ContainerStatusInfo,
    ResourceUsage,
)
from harbor.models.session import Session

router = APIRouter()


# Request/Response Models


class CreateSessionRequest(BaseModel):
    """Request to create a session."""

    session_id: str | None = None


class SessionResponse(BaseModel):
    """Session response model."""

    success: bool = True
    id: str
    workspace_path: str
    container: ContainerHandle | None
    created_at: datetime
    last_active_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            workspace_path=session.workspace_path,
            container=session.container,
            created_at=session.created_at,
            last_active_at=session.last_active_at,
        )


class SessionListResponse(BaseModel):
    success: bool = True
    items: list[SessionResponse]
    count: int


class ContainerResponse(BaseModel):
    success: bool = True
    container: ContainerHandle


class ExecRequest(BaseModel):
    """Request to execute a shell command in the session container."""

    command: str = Field(min_length=1)
    timeout: int | None = Field(default=None, ge=1, le=3600)


class LogsResponse(BaseModel):
    success: bool = True
    session_id: str
    logs: str
    tail: int


# Sessions


@router.post("", response_model=SessionResponse, status_code=201)
async def create_session(
    request: CreateSessionRequest,
    sessions: SessionManagerDep,
) -> SessionResponse:
    session = await sessions.create(request.session_id)
    return SessionResponse.from_session(session)


@router.get("", response_model=SessionListResponse)
async def list_sessions(sessions: SessionManagerDep) -> SessionListResponse:
    items = [SessionResponse.from_session(s) for s in await sessions.list()]
    return SessionListResponse(items=items, count=len(items))


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: SessionIdDep, sessions: SessionManagerDep) -> SessionResponse:
    return SessionResponse.from_session(await sessions.get(session_id))


@router.delete("/{session_id}", response_model=CleanupResult)
async def delete_session(session_id: SessionIdDep, sessions: SessionManagerDep) -> CleanupResult:
    """Stop and remove the container, delete the workspace, forget the session."""
    return await sessions.delete(session_id)


# Container


@router.post("/{session_id}/container", response_model=ContainerResponse, status_code=201)
async def create_container(
    session_id: SessionIdDep,
    sessions: SessionManagerDep,
) -> ContainerResponse:
    """Provision the session container; idempotent."""
    await sessions.ensure(session_id)
    handle = await sessions.start_container(session_id)
    return ContainerResponse(container=handle)


@router.get("/{session_id}/container", response_model=ContainerStatusInfo)
async def get_container_status(
    session_id: SessionIdDep,
    orchestrator: OrchestratorDep,
) -> ContainerStatusInfo:
    return await orchestrator.get_status(session_id)


@router.delete("/{session_id}/container", response_model=CleanupResult)
async def cleanup_container(
    session_id: SessionIdDep,
    sessions: SessionManagerDep,
    orchestrator: OrchestratorDep,
) -> CleanupResult:
    """Tear down the container together with its workspace."""
    try:
        return await sessions.delete(session_id)
    except NotFoundError:
        return await orchestrator.cleanup_container(session_id)


@router.post("/{session_id}/container/exec", response_model=CommandResult)
async def execute_command(
    request: ExecRequest,
    session_id: SessionIdDep,
    sessions: SessionManagerDep,
    orchestrator: OrchestratorDep,
) -> CommandResult:
    """Run a shell command; a non-zero exit is returned, not raised."""
    result = await orchestrator.execute_command(
        session_id, request.command, timeout=request.timeout
    )
    await sessions.touch(session_id)
    return result


@router.get("/{session_id}/container/logs", response_model=LogsResponse)
async def get_container_logs(
    session_id: SessionIdDep,
    orchestrator: OrchestratorDep,
    tail: int = Query(100, ge=1, le=10000),
) -> LogsResponse:
    logs = await orchestrator.get_container_logs(session_id, tail=tail)
    return LogsResponse(session_id=session_id, logs=logs, tail=tail)


@router.post("/{session_id}/container/restart", response_model=ContainerResponse)
async def restart_container(
    session_id: SessionIdDep,
    orchestrator: OrchestratorDep,
) -> ContainerResponse:
    return ContainerResponse(container=await orchestrator.restart_container(session_id))


@router.get("/{session_id}/container/stats", response_model=ResourceUsage)
async def get_resource_usage(
    session_id: SessionIdDep,
    orchestrator: OrchestratorDep,
) -> ResourceUsage:
    return await orchestrator.get_resource_usage(session_id)
