"""VersionStore - immutable full-tree snapshots of a session workspace.

Storage lives under ``<session>/.versions/``:

    versions.json     catalog (source of truth for version existence)
    <uuid4>/          one directory per version
    exports/          zip / tar.gz exports

Catalog mutations are serialized by an instance lock; a store is bound to
one session tree.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tarfile
import uuid
import zipfile
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
import structlog
from pydantic import ValidationError as PydanticValidationError

from harbor.config import Settings, get_settings
from harbor.errors import (
    ConflictError,
    HarborError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from harbor.managers.version.hashing import hash_tree
from harbor.models.version import (
    ConsistencyReport,
    DiffResult,
    DiffSummary,
    ExportResult,
    ModifiedFile,
    RestoreResult,
    Version,
    VersionCatalog,
    VersionStats,
)
from harbor.services.journal import OperationJournal
from harbor.services.layout import VERSIONS_DIR
from harbor.utils.datetime import utcnow

logger = structlog.get_logger()

CATALOG_FILE = "versions.json"
EXPORTS_DIR = "exports"
EXPORT_FORMATS = ("zip", "tar.gz")


def _is_version_dir_name(name: str) -> bool:
    try:
        uuid.UUID(name)
    except ValueError:
        return False
    return True


def _copy_tree(src: Path, dst: Path, excluded: frozenset[str]) -> tuple[int, int]:
    """Copy ``src`` into ``dst`` skipping excluded names; return (files, bytes)."""

    def ignore(_dir: str, names: list[str]) -> list[str]:
        return [n for n in names if n in excluded]

    shutil.copytree(src, dst, ignore=ignore, symlinks=True, dirs_exist_ok=True)
    return _measure(dst)


def _measure(root: Path) -> tuple[int, int]:
    files = 0
    size = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            path = Path(dirpath) / name
            files += 1
            size += path.lstat().st_size
    return files, size


def _clear_tracked(root: Path, excluded: frozenset[str]) -> None:
    """Delete what ``_copy_tree`` would copy; excluded names survive at any depth."""
    for entry in root.iterdir():
        if entry.name in excluded:
            continue
        if entry.is_dir() and not entry.is_symlink():
            _clear_tracked(entry, excluded)
            if not any(entry.iterdir()):
                entry.rmdir()
        else:
            entry.unlink()


def _write_archive(source: Path, target: Path, fmt: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "zip":
        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for dirpath, _dirnames, filenames in os.walk(source):
                for name in filenames:
                    path = Path(dirpath) / name
                    zf.write(path, arcname=path.relative_to(source).as_posix())
    else:
        with tarfile.open(target, "w:gz") as tf:
            for entry in sorted(source.iterdir()):
                tf.add(entry, arcname=entry.name)


class VersionStore:
    """Snapshot history for one session tree."""

    def __init__(
        self,
        root: Path,
        settings: Settings | None = None,
        *,
        journal: OperationJournal | None = None,
    ) -> None:
        self._root = Path(root)
        self._settings = settings or get_settings()
        self._config = self._settings.versions
        self._excluded = frozenset(self._config.excluded_dirs) | {VERSIONS_DIR}
        self._journal = journal or OperationJournal(self._root)
        self._lock = asyncio.Lock()
        self._ready = False
        self._log = logger.bind(manager="version", workspace=str(self._root))

    @property
    def versions_dir(self) -> Path:
        return self._root / VERSIONS_DIR

    @property
    def catalog_path(self) -> Path:
        return self.versions_dir / CATALOG_FILE

    @property
    def exports_dir(self) -> Path:
        return self.versions_dir / EXPORTS_DIR

    def version_path(self, version_id: str) -> Path:
        return self.versions_dir / version_id

    # Catalog

    async def initialize(self) -> None:
        """Create ``.versions/`` and an empty catalog if absent."""
        await aiofiles.os.makedirs(self.versions_dir, exist_ok=True)
        if not await aiofiles.os.path.exists(self.catalog_path):
            await self._save_catalog(VersionCatalog())
            self._log.info("version.initialized")
        self._ready = True

    async def _ensure_ready(self) -> None:
        if not self._ready:
            await self.initialize()

    async def _load_catalog(self) -> VersionCatalog:
        await self._ensure_ready()
        try:
            async with aiofiles.open(self.catalog_path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            self._ready = False
            await self.initialize()
            return VersionCatalog()
        except OSError as e:
            raise InfrastructureError(f"Cannot read version catalog: {e}") from e

        try:
            return VersionCatalog.model_validate_json(raw)
        except PydanticValidationError as e:
            raise ConflictError(
                "Version catalog is corrupt",
                details={"path": str(self.catalog_path)},
            ) from e

    async def _save_catalog(self, catalog: VersionCatalog) -> None:
        tmp = self.catalog_path.with_suffix(".json.tmp")
        try:
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(catalog.model_dump_json(by_alias=True, indent=2))
            await aiofiles.os.replace(tmp, self.catalog_path)
        except OSError as e:
            raise InfrastructureError(f"Cannot write version catalog: {e}") from e

    # Snapshots

    async def create_snapshot(
        self,
        description: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> Version:
        """Copy the tracked subtree into a new immutable version."""
        async with self._lock:
            return await self._snapshot(description, metadata)

    async def _snapshot(
        self,
        description: str,
        metadata: dict[str, Any] | None,
    ) -> Version:
        catalog = await self._load_catalog()
        metadata = dict(metadata or {})
        version_id = str(uuid.uuid4())
        target = self.version_path(version_id)

        try:
            file_count, size = await asyncio.to_thread(
                _copy_tree, self._root, target, self._excluded
            )
        except (OSError, shutil.Error) as e:
            await asyncio.to_thread(shutil.rmtree, target, ignore_errors=True)
            self._log.error("version.snapshot.failed", version_id=version_id, error=str(e))
            raise InfrastructureError(
                f"Failed to create snapshot: {e}", details={"version_id": version_id}
            ) from e

        tags = metadata.get("tags") or []
        version = Version(
            id=version_id,
            description=description,
            timestamp=utcnow(),
            metadata=metadata,
            file_count=file_count,
            size=size,
            author=metadata.get("author"),
            tags=list(tags) if isinstance(tags, (list, tuple)) else [str(tags)],
        )
        catalog.versions.append(version)
        catalog.last_snapshot = version.timestamp
        await self._save_catalog(catalog)

        self._log.info(
            "version.snapshot",
            version_id=version_id,
            files=file_count,
            size=size,
        )
        await self._journal.record(
            "snapshot",
            None,
            {"version_id": version_id, "description": description, "files": file_count},
        )
        return version

    async def list_versions(self) -> list[Version]:
        """All versions, newest first."""
        catalog = await self._load_catalog()
        return list(reversed(catalog.versions))

    async def get_version(self, version_id: str) -> Version:
        """Raises NotFoundError if uncatalogued, ConflictError if its directory is gone."""
        catalog = await self._load_catalog()
        return await self._require(catalog, version_id)

    async def _require(self, catalog: VersionCatalog, version_id: str) -> Version:
        version = catalog.find(version_id)
        if version is None:
            raise NotFoundError(
                f"Version not found: {version_id}", details={"version_id": version_id}
            )
        if not await aiofiles.os.path.isdir(self.version_path(version_id)):
            raise ConflictError(
                f"Version directory missing: {version_id}",
                details={"version_id": version_id},
            )
        return version

    # Restore

    async def restore_version(self, version_id: str) -> RestoreResult:
        """Replace the tracked tree with a version, backing up the current state first."""
        async with self._lock:
            catalog = await self._load_catalog()
            version = await self._require(catalog, version_id)

            try:
                backup = await self._snapshot(
                    f"Backup before restoring {version_id}",
                    {"type": "backup", "restored_from": version_id},
                )
            except HarborError:
                self._log.error("version.restore.backup_failed", version_id=version_id)
                raise

            self._log.info("version.restore", version_id=version_id, backup_id=backup.id)
            try:
                await asyncio.to_thread(_clear_tracked, self._root, self._excluded)
                await asyncio.to_thread(
                    shutil.copytree,
                    self.version_path(version_id),
                    self._root,
                    symlinks=True,
                    dirs_exist_ok=True,
                )
            except (OSError, shutil.Error) as e:
                self._log.error(
                    "version.restore.failed",
                    version_id=version_id,
                    backup_id=backup.id,
                    error=str(e),
                )
                raise InfrastructureError(
                    f"Restore failed, backup {backup.id} holds the previous state: {e}",
                    details={"version_id": version_id, "backup_id": backup.id},
                ) from e

            catalog = await self._load_catalog()
            catalog.current_version = version_id
            await self._save_catalog(catalog)

        await self._journal.record(
            "restore", None, {"version_id": version_id, "backup_id": backup.id}
        )
        return RestoreResult(version=version, backup=backup, restored_files=version.file_count)

    # Diff

    async def compare_versions(self, version_a: str, version_b: str) -> DiffResult:
        """Partition the union of both versions' paths by content hash."""
        catalog = await self._load_catalog()
        a = await self._require(catalog, version_a)
        b = await self._require(catalog, version_b)
        algorithm = self._config.hash_algorithm

        files_a, files_b = await asyncio.gather(
            asyncio.to_thread(hash_tree, self.version_path(version_a), algorithm),
            asyncio.to_thread(hash_tree, self.version_path(version_b), algorithm),
        )

        paths_a = set(files_a)
        paths_b = set(files_b)
        modified: list[ModifiedFile] = []
        unchanged: list[str] = []
        for path in sorted(paths_a & paths_b):
            old_hash, old_size = files_a[path]
            new_hash, new_size = files_b[path]
            if old_hash != new_hash or old_size != new_size:
                modified.append(
                    ModifiedFile(
                        path=path,
                        old_hash=old_hash,
                        new_hash=new_hash,
                        old_size=old_size,
                        new_size=new_size,
                    )
                )
            else:
                unchanged.append(path)

        added = sorted(paths_b - paths_a)
        removed = sorted(paths_a - paths_b)
        return DiffResult(
            version_a=version_a,
            version_b=version_b,
            hash_algorithm=algorithm,
            added=added,
            removed=removed,
            modified=modified,
            unchanged=unchanged,
            summary=DiffSummary(
                added=len(added),
                removed=len(removed),
                modified=len(modified),
                unchanged=len(unchanged),
                file_count_diff=b.file_count - a.file_count,
                size_diff=b.size - a.size,
            ),
        )

    # Export

    async def export_version(
        self,
        version_id: str,
        format: str | None = None,
        destination: Path | None = None,
    ) -> ExportResult:
        fmt = format or self._config.export_format
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(
                f"Unsupported export format: {fmt}",
                details={"format": fmt, "supported": list(EXPORT_FORMATS)},
            )
        version = await self.get_version(version_id)
        target_dir = Path(destination) if destination is not None else self.exports_dir
        target = target_dir / f"{version.id}.{fmt}"

        try:
            await asyncio.to_thread(_write_archive, self.version_path(version.id), target, fmt)
            size = (await aiofiles.os.stat(target)).st_size
        except OSError as e:
            raise InfrastructureError(
                f"Export failed: {e}", details={"version_id": version_id}
            ) from e

        self._log.info("version.export", version_id=version_id, format=fmt, size=size)
        await self._journal.record(
            "export", None, {"version_id": version_id, "format": fmt, "path": str(target)}
        )
        return ExportResult(version_id=version.id, format=fmt, path=str(target), size=size)

    # Deletion and retention

    async def delete_version(self, version_id: str) -> Version:
        async with self._lock:
            catalog = await self._load_catalog()
            version = await self._delete(catalog, version_id)
            await self._save_catalog(catalog)
        await self._journal.record("delete_version", None, {"version_id": version_id})
        return version

    async def _delete(self, catalog: VersionCatalog, version_id: str) -> Version:
        """Remove a version directory, then its catalog entry (caller saves)."""
        version = catalog.find(version_id)
        if version is None:
            raise NotFoundError(
                f"Version not found: {version_id}", details={"version_id": version_id}
            )

        path = self.version_path(version_id)
        if await aiofiles.os.path.exists(path):
            try:
                await asyncio.to_thread(shutil.rmtree, path)
            except OSError as e:
                self._log.error("version.delete.failed", version_id=version_id, error=str(e))
                raise InfrastructureError(
                    f"Failed to delete version directory: {e}",
                    details={"version_id": version_id},
                ) from e

        catalog.versions = [v for v in catalog.versions if v.id != version_id]
        if catalog.current_version == version_id:
            catalog.current_version = None
        self._log.info("version.delete", version_id=version_id)
        return version

    async def cleanup_old_versions(self, max_versions: int | None = None) -> int:
        """Keep the newest ``max_versions`` plus the current version.

        Returns:
            Number of versions deleted
        """
        if max_versions is None:
            max_versions = self._config.default_max_versions
        if max_versions < 0:
            raise ValidationError(
                "max_versions must be >= 0", details={"max_versions": max_versions}
            )

        async with self._lock:
            catalog = await self._load_catalog()
            keep = set(catalog.ids()[-max_versions:]) if max_versions else set()
            if catalog.current_version:
                keep.add(catalog.current_version)
            doomed = [vid for vid in catalog.ids() if vid not in keep]

            deleted = 0
            try:
                for version_id in doomed:
                    await self._delete(catalog, version_id)
                    deleted += 1
            finally:
                if deleted:
                    await self._save_catalog(catalog)

        if deleted:
            self._log.info("version.cleanup", deleted=deleted, kept=len(keep))
            await self._journal.record(
                "cleanup", None, {"deleted": deleted, "max_versions": max_versions}
            )
        return deleted

    # Introspection

    async def get_version_stats(self) -> VersionStats:
        catalog = await self._load_catalog()
        versions = catalog.versions
        total_size = sum(v.size for v in versions)
        return VersionStats(
            total_versions=len(versions),
            total_size=total_size,
            average_size=total_size / len(versions) if versions else 0.0,
            oldest_version=versions[0] if versions else None,
            newest_version=versions[-1] if versions else None,
            current_version=catalog.current_version,
            last_snapshot=catalog.last_snapshot,
        )

    async def check_consistency(self) -> ConsistencyReport:
        """Compare catalog entries with version directories.

        Raises:
            ConflictError: orphan or missing directories were found
        """
        catalog = await self._load_catalog()
        names = await aiofiles.os.listdir(self.versions_dir)
        directories = {
            name
            for name in names
            if _is_version_dir_name(name) and (self.versions_dir / name).is_dir()
        }
        ids = set(catalog.ids())
        report = ConsistencyReport(
            consistent=directories == ids,
            orphan_directories=sorted(directories - ids),
            missing_directories=sorted(ids - directories),
        )
        if not report.consistent:
            self._log.warning(
                "version.inconsistent",
                orphans=report.orphan_directories,
                missing=report.missing_directories,
            )
            raise ConflictError(
                "Version catalog and directories disagree",
                details=report.model_dump(),
            )
        return report
