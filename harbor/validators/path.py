"""Workspace path containment and glob handling."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path, PurePosixPath

from harbor.errors import SecurityViolationError, ValidationError

# Session ID format: alphanumeric + hyphens + underscores, 1-128 chars
_SESSION_ID_RE = re.compile(r"^[a-zA-Z0-9_-]{1,128}$")


def validate_session_id(session_id: str) -> str:
    """Validate session_id format to prevent path injection."""
    if not isinstance(session_id, str) or not _SESSION_ID_RE.match(session_id):
        raise ValidationError(
            "invalid session_id format: must be 1-128 alphanumeric/hyphen/underscore characters",
            details={"session_id": session_id},
        )
    return session_id


def resolve_in_workspace(root: Path, path: str) -> Path:
    """Resolve a workspace-relative path to an absolute host path.

    Rejects absolute paths, ``..`` components, NUL bytes, and anything that
    resolves (following symlinks) outside ``root``.

    Raises:
        SecurityViolationError: the path escapes the workspace root.
        ValidationError: the path is empty.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValidationError("field 'path' must be a non-empty string")
    if "\x00" in path:
        raise SecurityViolationError(
            "invalid path: null bytes not allowed", details={"path": path}
        )

    normalized = path.replace("\\", "/")
    if normalized.startswith("/") or PurePosixPath(normalized).is_absolute():
        raise SecurityViolationError(
            "invalid path: absolute paths are not allowed", details={"path": path}
        )
    if re.match(r"^[A-Za-z]:", normalized):
        raise SecurityViolationError(
            "invalid path: absolute paths are not allowed", details={"path": path}
        )
    parts = [p for p in normalized.split("/") if p not in ("", ".")]
    if any(p == ".." for p in parts):
        raise SecurityViolationError(
            "invalid path: path traversal ('..') is not allowed",
            details={"path": path},
        )

    root_resolved = root.resolve()
    candidate = root_resolved.joinpath(*parts).resolve()
    if candidate != root_resolved and root_resolved not in candidate.parents:
        raise SecurityViolationError(
            "invalid path: resolves outside the workspace", details={"path": path}
        )
    return candidate


def to_relative(root: Path, absolute: Path) -> str:
    """Normalized POSIX path of ``absolute`` relative to ``root``."""
    return absolute.relative_to(root.resolve()).as_posix()


def validate_glob_pattern(pattern: str) -> str:
    if "\x00" in pattern or pattern.startswith("/") or ".." in pattern.split("/"):
        raise SecurityViolationError(
            "invalid pattern: must stay inside the workspace",
            details={"pattern": pattern},
        )
    return pattern


@lru_cache(maxsize=128)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a workspace glob into an anchored regex.

    ``**/`` matches zero or more directories, ``**`` anything, ``*`` anything
    but ``/`` and ``?`` a single non-``/`` character.
    """
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")
