"""Workspace file models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from harbor.utils.datetime import utcnow


class FileEntry(BaseModel):
    """A file or directory inside a session workspace.

    ``path`` is the normalized POSIX path relative to the workspace root.
    """

    name: str
    path: str
    is_directory: bool
    size: int
    modified_at: datetime
    permissions: str


class ReadFileResult(BaseModel):
    success: bool = True
    file: str
    content: str
    size: int
    lines: int
    encoding: str
    start_line: int | None = None
    end_line: int | None = None
    modified_at: datetime
    timestamp: datetime = Field(default_factory=utcnow)


class EditFileResult(BaseModel):
    success: bool = True
    file: str
    operation: str
    created: bool = False
    original_size: int
    new_size: int
    changes: int
    timestamp: datetime = Field(default_factory=utcnow)


class CreateFileResult(BaseModel):
    success: bool = True
    file: str
    size: int
    encoding: str
    timestamp: datetime = Field(default_factory=utcnow)


class DeleteFileResult(BaseModel):
    success: bool = True
    file: str
    deleted_size: int
    is_directory: bool = False
    timestamp: datetime = Field(default_factory=utcnow)


class TransferResult(BaseModel):
    """Result of a copy or move."""

    success: bool = True
    operation: Literal["copy", "move"]
    source: str
    destination: str
    timestamp: datetime = Field(default_factory=utcnow)


class ListFilesResult(BaseModel):
    success: bool = True
    files: list[FileEntry]
    count: int
    pattern: str
    timestamp: datetime = Field(default_factory=utcnow)


class SearchMatch(BaseModel):
    match: str
    index: int
    line: int
    column: int


class FileSearchResult(BaseModel):
    file: str
    matches: list[SearchMatch]
    total_matches: int


class SearchFilesResult(BaseModel):
    success: bool = True
    query: str
    results: list[FileSearchResult]
    total_files: int
    timestamp: datetime = Field(default_factory=utcnow)


class LintIssue(BaseModel):
    file: str
    line: int
    column: int
    message: str
    type: Literal["error", "warning"]


class LintResult(BaseModel):
    success: bool
    command: str | None = None
    issues: list[LintIssue] = Field(default_factory=list)
    total_issues: int = 0
    errors: int = 0
    warnings: int = 0
    exit_code: int | None = None
    output: str = ""
    stderr: str = ""
    error: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)

    @classmethod
    def failed(cls, error: str, **kwargs: Any) -> "LintResult":
        return cls(success=False, error=error, **kwargs)
