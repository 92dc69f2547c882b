"""WorkspaceFileStore - containment-checked file operations on a session tree.

Every path is relative to the workspace root; anything that escapes the
root raises SecurityViolationError before the filesystem is touched.
Mutations, reads and lint runs are journaled to ``.same/history.md``.
"""

from __future__ import annotations

import asyncio
import os
import re
import shutil
import stat
from datetime import datetime, timezone
from pathlib import Path

import aiofiles
import aiofiles.os
import structlog

from harbor.config import Settings, get_settings
from harbor.errors import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
    ResourceLimitError,
    SecurityViolationError,
    ValidationError,
)
from harbor.managers.workspace.linter import Linter
from harbor.managers.workspace.operations import EditOperation, parse_edit_operation
from harbor.models.file import (
    CreateFileResult,
    DeleteFileResult,
    EditFileResult,
    FileEntry,
    FileSearchResult,
    LintResult,
    ListFilesResult,
    ReadFileResult,
    SearchFilesResult,
    SearchMatch,
    TransferResult,
)
from harbor.services.journal import OperationJournal
from harbor.services.layout import JOURNAL_FILES, METADATA_DIR, VERSIONS_DIR
from harbor.validators.path import (
    glob_to_regex,
    resolve_in_workspace,
    to_relative,
    validate_glob_pattern,
)

logger = structlog.get_logger()

ALWAYS_HIDDEN = frozenset({VERSIONS_DIR})
HIDDEN_NAMES = frozenset({"node_modules"})

_BINARY_SNIFF_BYTES = 8192


def _entry_for(root: Path, path: Path) -> FileEntry:
    st = path.stat()
    return FileEntry(
        name=path.name,
        path=to_relative(root, path),
        is_directory=stat.S_ISDIR(st.st_mode),
        size=st.st_size,
        modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        permissions=format(stat.S_IMODE(st.st_mode), "o"),
    )


def _is_hidden(name: str) -> bool:
    return name.startswith(".") or name in HIDDEN_NAMES


class WorkspaceFileStore:
    """File interface scoped to one session tree."""

    def __init__(self, root: Path, settings: Settings | None = None) -> None:
        self._root = Path(root)
        self._settings = settings or get_settings()
        self._config = self._settings.workspace
        self._journal = OperationJournal(self._root)
        self._log = logger.bind(manager="workspace", workspace=str(self._root))

    @property
    def root(self) -> Path:
        return self._root

    @property
    def journal(self) -> OperationJournal:
        return self._journal

    def resolve(self, path: str) -> Path:
        """Absolute host path for a workspace-relative ``path``."""
        return resolve_in_workspace(self._root, path)

    def _relative(self, absolute: Path) -> str:
        return to_relative(self._root, absolute)

    def _resolve_mutable(self, path: str) -> Path:
        """Like ``resolve``, but refuses version storage and the journal files."""
        target = self.resolve(path)
        parts = Path(self._relative(target)).parts
        if parts[:1] == (VERSIONS_DIR,):
            raise SecurityViolationError(
                "invalid path: version storage is read-only", details={"path": path}
            )
        if parts == (METADATA_DIR,) or (
            len(parts) == 2 and parts[0] == METADATA_DIR and parts[1] in JOURNAL_FILES
        ):
            raise SecurityViolationError(
                "invalid path: the operation journal is append-only", details={"path": path}
            )
        return target

    # Read

    async def read_file(
        self,
        path: str,
        start_line: int | None = None,
        end_line: int | None = None,
        encoding: str = "utf-8",
    ) -> ReadFileResult:
        """Read a file, optionally restricted to an inclusive 1-indexed line range.

        Raises:
            NotFoundError: file does not exist
            ValidationError: path is a directory, bad range or undecodable
            ResourceLimitError: file exceeds the size limit
        """
        target = self.resolve(path)
        st = await self._stat(target, path)
        if stat.S_ISDIR(st.st_mode):
            raise ValidationError(f"Path is a directory: {path}", details={"path": path})
        if st.st_size > self._config.max_file_size:
            raise ResourceLimitError(
                f"File too large: {path}",
                details={
                    "path": path,
                    "size": st.st_size,
                    "max_size": self._config.max_file_size,
                },
            )

        try:
            async with aiofiles.open(target, "r", encoding=encoding, newline="") as f:
                content = await f.read()
        except (UnicodeDecodeError, LookupError) as e:
            raise ValidationError(
                f"Cannot decode {path} as {encoding}",
                details={"path": path, "encoding": encoding},
            ) from e

        lines = content.split("\n")
        line_count = len(lines)
        if start_line is not None or end_line is not None:
            start = start_line if start_line is not None else 1
            end = end_line if end_line is not None else line_count
            if not 1 <= start <= end <= line_count:
                raise ValidationError(
                    "Invalid line range",
                    details={"start_line": start, "end_line": end, "line_count": line_count},
                )
            content = "\n".join(lines[start - 1 : end])
            start_line, end_line = start, end

        await self._journal.record(
            "read", self._relative(target), {"size": st.st_size, "lines": line_count}
        )
        return ReadFileResult(
            file=self._relative(target),
            content=content,
            size=st.st_size,
            lines=line_count,
            encoding=encoding,
            start_line=start_line,
            end_line=end_line,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    async def get_file_stats(self, path: str) -> FileEntry:
        target = self.resolve(path)
        await self._stat(target, path)
        return await asyncio.to_thread(_entry_for, self._root.resolve(), target)

    async def _stat(self, target: Path, path: str) -> os.stat_result:
        try:
            return await aiofiles.os.stat(target)
        except FileNotFoundError:
            raise NotFoundError(f"File not found: {path}", details={"path": path}) from None

    # Mutations

    async def edit_file(self, path: str, operation: EditOperation | dict) -> EditFileResult:
        """Apply an edit operation, creating the file and its parents if needed."""
        op = parse_edit_operation(operation)
        target = self._resolve_mutable(path)

        created = not await aiofiles.os.path.exists(target)
        prior = ""
        if not created:
            if await aiofiles.os.path.isdir(target):
                raise ValidationError(f"Path is a directory: {path}", details={"path": path})
            try:
                async with aiofiles.open(target, "r", encoding="utf-8", newline="") as f:
                    prior = await f.read()
            except UnicodeDecodeError as e:
                raise ValidationError(
                    f"Cannot edit non UTF-8 file: {path}", details={"path": path}
                ) from e

        new_content, changes = op.apply(prior)
        if len(new_content.encode("utf-8")) > self._config.max_file_size:
            raise ResourceLimitError(
                f"Edited content too large: {path}",
                details={"path": path, "max_size": self._config.max_file_size},
            )

        await self._write(target, new_content)
        relative = self._relative(target)
        self._log.info("workspace.edit", file=relative, operation=op.type)
        await self._journal.record(
            "edit",
            relative,
            {
                "operation": op.type,
                "original_size": len(prior),
                "new_size": len(new_content),
                "delta": len(new_content) - len(prior),
            },
        )
        return EditFileResult(
            file=relative,
            operation=op.type,
            created=created,
            original_size=len(prior),
            new_size=len(new_content),
            changes=changes,
        )

    async def create_file(
        self,
        path: str,
        content: str = "",
        encoding: str = "utf-8",
    ) -> CreateFileResult:
        target = self._resolve_mutable(path)
        if await aiofiles.os.path.exists(target):
            raise ConflictError(f"File already exists: {path}", details={"path": path})
        if len(content.encode(encoding)) > self._config.max_file_size:
            raise ResourceLimitError(
                f"Content too large: {path}",
                details={"path": path, "max_size": self._config.max_file_size},
            )

        await self._write(target, content, encoding)
        relative = self._relative(target)
        self._log.info("workspace.create", file=relative)
        await self._journal.record("create", relative, {"size": len(content)})
        return CreateFileResult(file=relative, size=len(content), encoding=encoding)

    async def delete_file(self, path: str) -> DeleteFileResult:
        """Delete a file, or a directory recursively."""
        target = self._resolve_mutable(path)
        if target == self._root.resolve():
            raise ValidationError("Refusing to delete the workspace root")
        st = await self._stat(target, path)
        is_directory = stat.S_ISDIR(st.st_mode)

        try:
            if is_directory:
                await asyncio.to_thread(shutil.rmtree, target)
            else:
                await aiofiles.os.remove(target)
        except OSError as e:
            raise InfrastructureError(
                f"Failed to delete {path}: {e}", details={"path": path}
            ) from e

        relative = self._relative(target)
        self._log.info("workspace.delete", file=relative, directory=is_directory)
        await self._journal.record(
            "delete", relative, {"size": st.st_size, "is_directory": is_directory}
        )
        return DeleteFileResult(
            file=relative, deleted_size=st.st_size, is_directory=is_directory
        )

    async def copy_file(self, source: str, destination: str) -> TransferResult:
        """Copy a file or directory; an existing destination is overwritten."""
        src, dst = self._transfer_paths(source, destination)
        await self._stat(src, source)
        await aiofiles.os.makedirs(dst.parent, exist_ok=True)

        if src.is_dir():
            await asyncio.to_thread(shutil.copytree, src, dst, dirs_exist_ok=True)
        else:
            await asyncio.to_thread(shutil.copy2, src, dst)

        return await self._finish_transfer("copy", src, dst)

    async def move_file(self, source: str, destination: str) -> TransferResult:
        """Move a file or directory; the destination must not exist."""
        src, dst = self._transfer_paths(source, destination, moving=True)
        await self._stat(src, source)
        if await aiofiles.os.path.exists(dst):
            raise ConflictError(
                f"Destination already exists: {destination}",
                details={"destination": destination},
            )
        await aiofiles.os.makedirs(dst.parent, exist_ok=True)
        await asyncio.to_thread(shutil.move, str(src), str(dst))

        return await self._finish_transfer("move", src, dst)

    def _transfer_paths(
        self, source: str, destination: str, *, moving: bool = False
    ) -> tuple[Path, Path]:
        src = self._resolve_mutable(source) if moving else self.resolve(source)
        dst = self._resolve_mutable(destination)
        root = self._root.resolve()
        if src == root or dst == root:
            raise ValidationError("Cannot copy or move the workspace root")
        if src == dst or src in dst.parents:
            raise ValidationError(
                "Destination must not be the source or inside it",
                details={"source": source, "destination": destination},
            )
        return src, dst

    async def _finish_transfer(self, operation: str, src: Path, dst: Path) -> TransferResult:
        source = self._relative(src)
        destination = self._relative(dst)
        self._log.info(f"workspace.{operation}", source=source, destination=destination)
        await self._journal.record(operation, source, {"destination": destination})
        return TransferResult(operation=operation, source=source, destination=destination)

    async def _write(self, target: Path, content: str, encoding: str = "utf-8") -> None:
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, "w", encoding=encoding, newline="") as f:
            await f.write(content)

    # Listing and search

    async def list_files(
        self,
        pattern: str = "**/*",
        include_hidden: bool = False,
        max_depth: int | None = None,
    ) -> ListFilesResult:
        """Recursive glob-filtered listing, directories first then by path."""
        validate_glob_pattern(pattern)
        depth = max_depth if max_depth is not None else self._config.max_list_depth
        entries = await asyncio.to_thread(self._walk, pattern, include_hidden, depth)
        return ListFilesResult(files=entries, count=len(entries), pattern=pattern)

    def _walk(self, pattern: str, include_hidden: bool, max_depth: int) -> list[FileEntry]:
        root = self._root.resolve()
        if not root.is_dir():
            return []
        matcher = glob_to_regex(pattern)
        entries: list[FileEntry] = []

        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            depth = len(current.relative_to(root).parts)

            kept_dirs = []
            for name in dirnames:
                if name in ALWAYS_HIDDEN or (not include_hidden and _is_hidden(name)):
                    continue
                kept_dirs.append(name)
            dirnames[:] = kept_dirs if depth + 1 < max_depth else []

            names = kept_dirs + [
                n for n in filenames if include_hidden or not _is_hidden(n)
            ]
            for name in names:
                path = current / name
                relative = path.relative_to(root).as_posix()
                if not matcher.match(relative):
                    continue
                try:
                    resolved = path.resolve()
                    if resolved != root and root not in resolved.parents:
                        continue
                    entries.append(_entry_for(root, path))
                except OSError:
                    continue

        entries.sort(key=lambda e: (not e.is_directory, e.path))
        return entries

    async def search_files(
        self,
        query: str,
        pattern: str = "**/*",
        case_sensitive: bool = False,
        regex: bool = False,
    ) -> SearchFilesResult:
        """Search file contents; each file reports at most N matches."""
        if not query:
            raise ValidationError("field 'query' must be a non-empty string")
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            compiled = re.compile(query if regex else re.escape(query), flags)
        except re.error as e:
            raise ValidationError(
                f"Invalid regular expression: {e}", details={"query": query}
            ) from e

        listing = await self.list_files(pattern)
        files = [e.path for e in listing.files if not e.is_directory]
        results = await asyncio.to_thread(self._search, compiled, files)
        return SearchFilesResult(query=query, results=results, total_files=len(results))

    def _search(self, compiled: re.Pattern[str], files: list[str]) -> list[FileSearchResult]:
        root = self._root.resolve()
        cap = self._config.max_search_matches
        results: list[FileSearchResult] = []

        for relative in files:
            path = root / relative
            try:
                if path.stat().st_size > self._config.max_file_size:
                    continue
                data = path.read_bytes()
            except OSError:
                continue
            if b"\x00" in data[:_BINARY_SNIFF_BYTES]:
                continue
            try:
                content = data.decode("utf-8")
            except UnicodeDecodeError:
                continue

            matches: list[SearchMatch] = []
            total = 0
            for m in compiled.finditer(content):
                if m.end() == m.start():
                    continue
                total += 1
                if len(matches) < cap:
                    line_start = content.rfind("\n", 0, m.start()) + 1
                    matches.append(
                        SearchMatch(
                            match=m.group(0),
                            index=m.start(),
                            line=content.count("\n", 0, m.start()) + 1,
                            column=m.start() - line_start + 1,
                        )
                    )
            if total:
                results.append(
                    FileSearchResult(file=relative, matches=matches, total_matches=total)
                )
        return results

    # Lint

    async def run_linter(self) -> LintResult:
        linter = Linter(self._root, timeout=self._config.lint_timeout)
        result = await linter.run()
        await self._journal.record(
            "lint",
            None,
            {
                "command": result.command,
                "success": result.success,
                "issues": result.total_issues,
                "error": result.error,
            },
        )
        return result
