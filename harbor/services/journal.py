"""Append-only markdown journals under ``.same/``.

Entries look like::

    ## 2024-01-01T00:00:00+00:00

    **Operation:** edit
    **File:** src/app.js
    **Details:** {...}

    ---
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
import structlog

from harbor.services.layout import COMMAND_LOG_FILE, HISTORY_FILE, METADATA_DIR
from harbor.utils.datetime import utcnow

logger = structlog.get_logger()


class OperationJournal:
    """Appends human-readable entries to a session's ``.same`` logs.

    Journal writes are auxiliary: a failed append is logged and does not
    fail the operation being journaled.
    """

    def __init__(self, workspace: Path) -> None:
        self._dir = workspace / METADATA_DIR
        self._log = logger.bind(component="journal", workspace=str(workspace))

    @property
    def history_path(self) -> Path:
        return self._dir / HISTORY_FILE

    @property
    def command_log_path(self) -> Path:
        return self._dir / COMMAND_LOG_FILE

    async def record(
        self,
        operation: str,
        file: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Append a file/version operation to ``history.md``."""
        lines = [f"## {utcnow().isoformat()}", "", f"**Operation:** {operation}"]
        if file is not None:
            lines.append(f"**File:** {file}")
        if details:
            lines.append(f"**Details:** {json.dumps(details, indent=2, default=str)}")
        lines.extend(["", "---", "", ""])
        await self._append(self.history_path, "\n".join(lines))

    async def record_command(
        self,
        command: str,
        exit_code: int,
        stdout: str,
        stderr: str,
    ) -> None:
        """Append an executed command to ``logs.md``."""
        entry = (
            f"## {utcnow().isoformat()}\n\n"
            f"**Command:** `{command}`\n\n"
            f"**Exit Code:** {exit_code}\n\n"
            f"**Output:**\n```\n{stdout}\n```\n\n"
            f"**Errors:**\n```\n{stderr}\n```\n\n"
            "---\n\n"
        )
        await self._append(self.command_log_path, entry)

    async def record_timeout(self, command: str, timeout: float) -> None:
        """Append a command that was cut off by its timeout to ``logs.md``."""
        entry = (
            f"## {utcnow().isoformat()}\n\n"
            f"**Command:** `{command}`\n\n"
            f"**Timed Out:** after {timeout}s\n\n"
            "---\n\n"
        )
        await self._append(self.command_log_path, entry)

    async def _append(self, path: Path, text: str) -> None:
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "a", encoding="utf-8") as f:
                await f.write(text)
        except OSError as exc:
            self._log.warning("journal.append_failed", path=str(path), error=str(exc))
