"""Test configuration and fixtures."""

from pathlib import Path

import pytest

from harbor.config import Settings
from harbor.managers.container import ContainerOrchestrator
from harbor.managers.session import SessionManager
from harbor.managers.version import VersionStore
from harbor.managers.workspace import WorkspaceFileStore
from harbor.services.layout import ensure_workspace_layout
from tests.fakes import FakeDriver


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory, tool install disabled."""
    return Settings(
        workspace={"root_path": str(tmp_path / "workspaces")},
        container={"install_tools": False},
    )


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def orchestrator(driver: FakeDriver, test_settings: Settings) -> ContainerOrchestrator:
    return ContainerOrchestrator(driver, test_settings)


@pytest.fixture
def session_manager(
    orchestrator: ContainerOrchestrator, test_settings: Settings
) -> SessionManager:
    return SessionManager(orchestrator, test_settings)


@pytest.fixture
async def workspace(test_settings: Settings) -> Path:
    path = test_settings.session_path("test-session")
    await ensure_workspace_layout(path)
    return path


@pytest.fixture
def file_store(workspace: Path, test_settings: Settings) -> WorkspaceFileStore:
    return WorkspaceFileStore(workspace, test_settings)


@pytest.fixture
def version_store(workspace: Path, test_settings: Settings) -> VersionStore:
    return VersionStore(workspace, test_settings)
