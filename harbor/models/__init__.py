"""Pydantic data models."""

from harbor.models.container import (
    CleanupResult,
    CommandResult,
    ContainerHandle,
    ContainerStatus,
    ContainerStatusInfo,
    ResourceUsage,
)
from harbor.models.file import FileEntry, LintIssue, LintResult
from harbor.models.session import Session
from harbor.models.version import DiffResult, ModifiedFile, Version, VersionCatalog

__all__ = [
    "CleanupResult",
    "CommandResult",
    "ContainerHandle",
    "ContainerStatus",
    "ContainerStatusInfo",
    "DiffResult",
    "FileEntry",
    "LintIssue",
    "LintResult",
    "ModifiedFile",
    "ResourceUsage",
    "Session",
    "Version",
    "VersionCatalog",
]
