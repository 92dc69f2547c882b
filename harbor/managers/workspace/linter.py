"""Project linting.

The lint command comes from ``package.json`` scripts (``lint``, ``eslint``,
``check``) or, failing that, the first installed of ESLint, ``tsc --noEmit``
and ``prettier --check .``. Output is parsed into issues from ESLint
unix/compact and TypeScript formats.
"""

from __future__ import annotations

import asyncio
import json
import re
import shutil
from collections.abc import Callable
from pathlib import Path

import structlog

from harbor.errors import TimeoutExceededError
from harbor.models.file import LintIssue, LintResult

logger = structlog.get_logger()

SCRIPT_NAMES = ("lint", "eslint", "check")

_FALLBACKS: tuple[tuple[str, list[str]], ...] = (
    ("eslint", ["eslint", ".", "--format", "unix"]),
    ("tsc", ["tsc", "--noEmit"]),
    ("prettier", ["prettier", "--check", "."]),
)

# src/app.ts(3,5): error TS2304: Cannot find name 'foo'.
_TSC_RE = re.compile(r"^(?P<file>.+?)\((?P<line>\d+),(?P<col>\d+)\):\s*(?P<type>error|warning)\s+(?P<msg>.+)$")
# src/app.js: line 3, col 5, Error - 'foo' is not defined. (no-undef)
_COMPACT_RE = re.compile(
    r"^(?P<file>.+?): line (?P<line>\d+), col (?P<col>\d+), (?P<type>Error|Warning) - (?P<msg>.+)$"
)
# src/app.js:3:5: 'foo' is not defined. [Error/no-undef]
_UNIX_RE = re.compile(r"^(?P<file>[^\s:][^:]*):(?P<line>\d+):(?P<col>\d+):\s*(?P<msg>.+)$")
_UNIX_SEVERITY_RE = re.compile(r"\[(Error|Warning)(?:/[^\]]*)?\]\s*$", re.IGNORECASE)


def parse_lint_output(output: str) -> list[LintIssue]:
    """Extract issues from linter output; unrecognized lines are ignored."""
    issues: list[LintIssue] = []
    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue

        match = _TSC_RE.match(line) or _COMPACT_RE.match(line)
        if match:
            issues.append(
                LintIssue(
                    file=match["file"],
                    line=int(match["line"]),
                    column=int(match["col"]),
                    message=match["msg"].strip(),
                    type="warning" if match["type"].lower() == "warning" else "error",
                )
            )
            continue

        match = _UNIX_RE.match(line)
        if match:
            message = match["msg"].strip()
            severity = _UNIX_SEVERITY_RE.search(message)
            issue_type = "error"
            if severity:
                issue_type = severity.group(1).lower()
                message = message[: severity.start()].strip()
            issues.append(
                LintIssue(
                    file=match["file"],
                    line=int(match["line"]),
                    column=int(match["col"]),
                    message=message,
                    type=issue_type,
                )
            )
    return issues


def select_lint_command(
    root: Path,
    which: Callable[[str], str | None] = shutil.which,
) -> list[str] | None:
    """Pick the lint command for a project, or None when nothing applies."""
    package_json = root / "package.json"
    try:
        scripts = json.loads(package_json.read_text(encoding="utf-8")).get("scripts") or {}
    except (OSError, ValueError, AttributeError):
        scripts = {}

    for name in SCRIPT_NAMES:
        if name in scripts:
            return ["npm", "run", name]

    local_bin = root / "node_modules" / ".bin"
    for tool, command in _FALLBACKS:
        if (local_bin / tool).exists():
            return [str(local_bin / tool), *command[1:]]
        if which(tool):
            return list(command)
    return None


class Linter:
    """Runs a project's linter on the host under a timeout."""

    def __init__(
        self,
        root: Path,
        *,
        timeout: float = 30,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self._root = root
        self._timeout = timeout
        self._which = which
        self._log = logger.bind(component="linter", workspace=str(root))

    async def run(self) -> LintResult:
        if not (self._root / "package.json").exists():
            return LintResult.failed("No package.json found")

        command = select_lint_command(self._root, self._which)
        if command is None:
            return LintResult.failed("No linter available")

        display = " ".join(command)
        self._log.info("workspace.lint", command=display)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self._root),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            return LintResult.failed(f"Linter not executable: {e}", command=display)

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            self._log.warning("workspace.lint.timeout", command=display, timeout=self._timeout)
            raise TimeoutExceededError(
                f"Linter timed out after {self._timeout}s",
                details={"command": display, "timeout": self._timeout},
            ) from None

        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        issues = parse_lint_output(f"{out}\n{err}")
        errors = sum(1 for issue in issues if issue.type == "error")

        return LintResult(
            success=proc.returncode == 0,
            command=display,
            issues=issues,
            total_issues=len(issues),
            errors=errors,
            warnings=len(issues) - errors,
            exit_code=proc.returncode,
            output=out,
            stderr=err,
        )
