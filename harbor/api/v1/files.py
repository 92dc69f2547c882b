"""Workspace file endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel

from harbor.api.dependencies import FileStoreDep
from harbor.models.file import (
    CreateFileResult,
    DeleteFileResult,
    EditFileResult,
    FileEntry,
    LintResult,
    ListFilesResult,
    ReadFileResult,
    SearchFilesResult,
    TransferResult,
)

router = APIRouter()


# Request/Response Models


class CreateFileRequest(BaseModel):
    path: str
    content: str = ""
    encoding: str = "utf-8"


class EditFileRequest(BaseModel):
    """Edit request.

    ``operation`` is one of ``replace``, ``append``, ``prepend``,
    ``insert_line``, ``insert_offset``, ``regex_replace`` or ``delete_line``,
    selected by its ``type`` field.
    """

    path: str
    operation: dict[str, Any]


class TransferRequest(BaseModel):
    source: str
    destination: str


class FileStatsResponse(BaseModel):
    success: bool = True
    file: FileEntry


# Endpoints


@router.get("", response_model=ReadFileResult)
async def read_file(
    store: FileStoreDep,
    path: str = Query(..., description="File path relative to the workspace"),
    start_line: int | None = Query(None),
    end_line: int | None = Query(None),
    encoding: str = Query("utf-8"),
) -> ReadFileResult:
    return await store.read_file(path, start_line=start_line, end_line=end_line, encoding=encoding)


@router.post("", response_model=CreateFileResult, status_code=201)
async def create_file(request: CreateFileRequest, store: FileStoreDep) -> CreateFileResult:
    return await store.create_file(request.path, request.content, request.encoding)


@router.put("", response_model=EditFileResult)
async def edit_file(request: EditFileRequest, store: FileStoreDep) -> EditFileResult:
    return await store.edit_file(request.path, request.operation)


@router.delete("", response_model=DeleteFileResult)
async def delete_file(
    store: FileStoreDep,
    path: str = Query(..., description="File path relative to the workspace"),
) -> DeleteFileResult:
    return await store.delete_file(path)


@router.get("/list", response_model=ListFilesResult)
async def list_files(
    store: FileStoreDep,
    pattern: str = Query("**/*"),
    include_hidden: bool = Query(False),
    max_depth: int | None = Query(None, ge=1, le=64),
) -> ListFilesResult:
    return await store.list_files(pattern, include_hidden=include_hidden, max_depth=max_depth)


@router.get("/search", response_model=SearchFilesResult)
async def search_files(
    store: FileStoreDep,
    query: str = Query(...),
    pattern: str = Query("**/*"),
    case_sensitive: bool = Query(False),
    regex: bool = Query(False),
) -> SearchFilesResult:
    return await store.search_files(
        query, pattern=pattern, case_sensitive=case_sensitive, regex=regex
    )


@router.get("/stats", response_model=FileStatsResponse)
async def get_file_stats(
    store: FileStoreDep,
    path: str = Query(...),
) -> FileStatsResponse:
    return FileStatsResponse(file=await store.get_file_stats(path))


@router.post("/copy", response_model=TransferResult)
async def copy_file(request: TransferRequest, store: FileStoreDep) -> TransferResult:
    return await store.copy_file(request.source, request.destination)


@router.post("/move", response_model=TransferResult)
async def move_file(request: TransferRequest, store: FileStoreDep) -> TransferResult:
    return await store.move_file(request.source, request.destination)


@router.post("/lint", response_model=LintResult)
async def run_linter(store: FileStoreDep) -> LintResult:
    return await store.run_linter()
