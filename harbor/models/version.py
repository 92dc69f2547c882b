"""Version history models.

``VersionCatalog`` is persisted as ``.versions/versions.json`` with camelCase
keys:

    {"versions": [...], "currentVersion": "<id>|null", "lastSnapshot": "<iso>|null"}
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from harbor.utils.datetime import utcnow


class CatalogModel(BaseModel):
    """Base for models serialized into versions.json."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Version(CatalogModel):
    """An immutable full-tree snapshot."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str
    description: str = ""
    timestamp: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
    file_count: int = 0
    size: int = 0
    author: str | None = None
    tags: list[str] = Field(default_factory=list)

    @property
    def is_backup(self) -> bool:
        return self.metadata.get("type") == "backup"


class VersionCatalog(CatalogModel):
    """Ordered version list (oldest first) plus the current pointer."""

    versions: list[Version] = Field(default_factory=list)
    current_version: str | None = None
    last_snapshot: datetime | None = None

    def find(self, version_id: str) -> Version | None:
        for version in self.versions:
            if version.id == version_id:
                return version
        return None

    def ids(self) -> list[str]:
        return [v.id for v in self.versions]


class ModifiedFile(BaseModel):
    path: str
    old_hash: str
    new_hash: str
    old_size: int
    new_size: int


class DiffSummary(BaseModel):
    added: int = 0
    removed: int = 0
    modified: int = 0
    unchanged: int = 0
    file_count_diff: int = 0
    size_diff: int = 0


class DiffResult(BaseModel):
    """Partition of the union of two snapshots' relative paths."""

    success: bool = True
    version_a: str
    version_b: str
    hash_algorithm: str
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    modified: list[ModifiedFile] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    summary: DiffSummary = Field(default_factory=DiffSummary)


class RestoreResult(BaseModel):
    success: bool = True
    version: Version
    backup: Version
    restored_files: int
    timestamp: datetime = Field(default_factory=utcnow)


class ExportResult(BaseModel):
    success: bool = True
    version_id: str
    format: str
    path: str
    size: int


class VersionStats(BaseModel):
    success: bool = True
    total_versions: int
    total_size: int
    average_size: float
    oldest_version: Version | None = None
    newest_version: Version | None = None
    current_version: str | None = None
    last_snapshot: datetime | None = None


class ConsistencyReport(BaseModel):
    """Catalog entries vs. version directories."""

    consistent: bool
    orphan_directories: list[str] = Field(default_factory=list)
    missing_directories: list[str] = Field(default_factory=list)
