"""Container listing endpoint."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from harbor.api.dependencies import OrchestratorDep
from harbor.models.container import ContainerStatusInfo

router = APIRouter()


class ContainerListResponse(BaseModel):
    success: bool = True
    items: list[ContainerStatusInfo]
    count: int


@router.get("", response_model=ContainerListResponse)
async def list_containers(orchestrator: OrchestratorDep) -> ContainerListResponse:
    """Status of every registered session container."""
    items = await orchestrator.list_containers()
    return ContainerListResponse(items=items, count=len(items))
