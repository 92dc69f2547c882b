"""Session data model.

Session represents one user's isolated working context.
- 1 Session = 1 workspace directory
- At most 1 container, created on demand
- Torn down on explicit delete or idle timeout
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from harbor.models.container import ContainerHandle
from harbor.utils.datetime import utcnow


class Session(BaseModel):
    """A live session."""

    id: str
    workspace_path: str
    container: ContainerHandle | None = None

    created_at: datetime = Field(default_factory=utcnow)
    last_active_at: datetime = Field(default_factory=utcnow)

    @property
    def has_container(self) -> bool:
        return self.container is not None

    def idle_seconds(self, now: datetime | None = None) -> float:
        now = now or utcnow()
        return (now - self.last_active_at).total_seconds()
