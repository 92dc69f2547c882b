"""Session workspace layout.

    <workspace_root>/<session_id>/
        .same/        todos.md, wiki.md, history.md, logs.md, settings.json
        .versions/    owned by VersionStore
        ...           project tree
"""

from __future__ import annotations

import json
from pathlib import Path

import aiofiles
import aiofiles.os
import structlog

logger = structlog.get_logger()

METADATA_DIR = ".same"
VERSIONS_DIR = ".versions"
HISTORY_FILE = "history.md"
COMMAND_LOG_FILE = "logs.md"
JOURNAL_FILES = (HISTORY_FILE, COMMAND_LOG_FILE)

_SEED_FILES: dict[str, str] = {
    "todos.md": "# Project Tasks\n\n## Done\n\n## Pending\n\n",
    "wiki.md": "# Project Guide\n\n## Project Information\n\n## Instructions\n\n",
    HISTORY_FILE: "# Change History\n\n",
    COMMAND_LOG_FILE: "# Execution Log\n\n",
    "settings.json": json.dumps(
        {
            "language": "en",
            "projectType": "nextjs",
            "integrations": {},
            "preferences": {},
        },
        indent=2,
    ),
}


async def ensure_workspace_layout(workspace: Path) -> list[str]:
    """Create the workspace and seed missing ``.same`` files.

    Existing files are never overwritten.

    Returns:
        Names of the files that were created
    """
    metadata_dir = workspace / METADATA_DIR
    await aiofiles.os.makedirs(metadata_dir, exist_ok=True)

    created: list[str] = []
    for name, content in _SEED_FILES.items():
        path = metadata_dir / name
        if await aiofiles.os.path.exists(path):
            continue
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(content)
        created.append(name)

    if created:
        logger.debug("workspace.seeded", workspace=str(workspace), files=created)
    return created
