"""Managers - business logic layer."""

from harbor.managers.container import ContainerOrchestrator
from harbor.managers.session import IdleSessionReaper, SessionManager
from harbor.managers.version import VersionStore
from harbor.managers.workspace import WorkspaceFileStore

__all__ = [
    "ContainerOrchestrator",
    "IdleSessionReaper",
    "SessionManager",
    "VersionStore",
    "WorkspaceFileStore",
]
