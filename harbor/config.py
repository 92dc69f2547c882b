"""Harbor configuration management.

Configuration sources (in priority order):
1. Environment variables (HARBOR_ prefix)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from harbor.validators.path import validate_session_id


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000


class DockerConfig(BaseModel):
    """Docker driver configuration."""

    socket: str = "unix:///var/run/docker.sock"
    network: str = "bridge"


class ContainerConfig(BaseModel):
    """Per-session container specification."""

    image: str = "node:18-alpine"
    name_prefix: str = "ai-assistant-"
    memory: str = "512m"
    memory_swap: str = "1g"
    cpu_shares: int = 512
    cap_drop: list[str] = Field(default_factory=lambda: ["ALL"])
    security_opt: list[str] = Field(default_factory=lambda: ["no-new-privileges"])
    # Fixed mount point inside the container
    mount_path: str = "/app"
    env: dict[str, str] = Field(default_factory=lambda: {"NODE_ENV": "development"})

    # Dev-server ports exposed inside the container
    expected_ports: list[int] = Field(default_factory=lambda: [3000, 5173])
    base_host_port: int = 3000
    max_host_port: int = 3999

    stop_grace_seconds: int = 10
    exec_timeout: int = 30

    install_tools: bool = True
    tool_commands: list[str] = Field(
        default_factory=lambda: [
            "apk update",
            "apk add --no-cache git curl wget unzip",
            "npm install -g bun",
            "npm install -g @types/node typescript",
        ]
    )
    tool_install_timeout: int = 300

    # Appended to the built-in command denylist
    extra_denylist: list[str] = Field(default_factory=list)


class WorkspaceConfig(BaseModel):
    """Workspace storage configuration."""

    # Host path; never exposed to the runtime
    root_path: str = "/var/lib/harbor/workspaces"
    max_file_size: int = 10 * 1024 * 1024
    max_search_matches: int = 10
    max_list_depth: int = 10
    lint_timeout: int = 30


class VersionConfig(BaseModel):
    """Snapshot history configuration."""

    # adler32 is a rolling checksum: fast, NOT collision resistant.
    hash_algorithm: Literal["adler32", "sha256"] = "adler32"
    excluded_dirs: list[str] = Field(
        default_factory=lambda: [".versions", ".same", ".git", "node_modules"]
    )
    default_max_versions: int = 50
    export_format: Literal["zip", "tar.gz"] = "zip"


class SessionConfig(BaseModel):
    """Session lifecycle configuration."""

    idle_timeout: int = 1800  # 30 minutes
    reap_interval_seconds: int = 60


class LoggingConfig(BaseModel):
    """structlog output configuration."""

    level: str = "INFO"
    json_logs: bool = False


class Settings(BaseSettings):
    """Harbor application settings."""

    model_config = SettingsConfigDict(
        env_prefix="HARBOR_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    container: ContainerConfig = Field(default_factory=ContainerConfig)
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    versions: VersionConfig = Field(default_factory=VersionConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Env vars win over values passed in from the YAML file
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def workspace_root(self) -> Path:
        return Path(self.workspace.root_path)

    def session_path(self, session_id: str) -> Path:
        """Host path of a session's project tree."""
        validate_session_id(session_id)
        return self.workspace_root / session_id


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. HARBOR_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/harbor/config.yaml
    """
    config_paths = [
        os.environ.get("HARBOR_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/harbor/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Configuration is loaded from:
    1. YAML config file (if exists)
    2. Environment variables (override)
    3. Defaults
    """
    file_config = _load_config_file()
    return Settings(**file_config)
