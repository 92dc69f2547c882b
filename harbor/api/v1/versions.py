"""Version history endpoints.

Version records are rendered with the same camelCase keys as
``versions.json`` (``fileCount``).
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from harbor.api.dependencies import VersionStoreDep
from harbor.models.version import (
    DiffResult,
    ExportResult,
    RestoreResult,
    Version,
    VersionStats,
)

router = APIRouter()


# Request/Response Models


class CreateSnapshotRequest(BaseModel):
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class VersionResponse(BaseModel):
    success: bool = True
    version: Version


class VersionListResponse(BaseModel):
    success: bool = True
    versions: list[Version]
    count: int


class ExportRequest(BaseModel):
    format: Literal["zip", "tar.gz"] | None = None


class CleanupRequest(BaseModel):
    max_versions: int | None = None


class CleanupResponse(BaseModel):
    success: bool = True
    deleted: int


# Endpoints


@router.post("", response_model=VersionResponse, status_code=201)
async def create_snapshot(
    request: CreateSnapshotRequest,
    store: VersionStoreDep,
) -> VersionResponse:
    version = await store.create_snapshot(request.description, request.metadata)
    return VersionResponse(version=version)


@router.get("", response_model=VersionListResponse)
async def list_versions(store: VersionStoreDep) -> VersionListResponse:
    """All versions, newest first."""
    versions = await store.list_versions()
    return VersionListResponse(versions=versions, count=len(versions))


@router.get("/compare", response_model=DiffResult)
async def compare_versions(
    store: VersionStoreDep,
    a: str = Query(..., description="Base version"),
    b: str = Query(..., description="Target version"),
) -> DiffResult:
    return await store.compare_versions(a, b)


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_old_versions(
    request: CleanupRequest,
    store: VersionStoreDep,
) -> CleanupResponse:
    return CleanupResponse(deleted=await store.cleanup_old_versions(request.max_versions))


@router.get("/stats", response_model=VersionStats)
async def get_version_stats(store: VersionStoreDep) -> VersionStats:
    return await store.get_version_stats()


@router.get("/{version_id}", response_model=VersionResponse)
async def get_version(version_id: str, store: VersionStoreDep) -> VersionResponse:
    return VersionResponse(version=await store.get_version(version_id))


@router.delete("/{version_id}", response_model=VersionResponse)
async def delete_version(version_id: str, store: VersionStoreDep) -> VersionResponse:
    return VersionResponse(version=await store.delete_version(version_id))


@router.post("/{version_id}/restore", response_model=RestoreResult)
async def restore_version(version_id: str, store: VersionStoreDep) -> RestoreResult:
    """Restore a version; the current tree is snapshotted first."""
    return await store.restore_version(version_id)


@router.post("/{version_id}/export", response_model=ExportResult)
async def export_version(
    version_id: str,
    store: VersionStoreDep,
    request: ExportRequest | None = None,
) -> ExportResult:
    fmt = request.format if request is not None else None
    return await store.export_version(version_id, fmt)
