"""Container orchestration."""

from harbor.managers.container.denylist import CommandDenylist, is_command_safe
from harbor.managers.container.orchestrator import ContainerOrchestrator
from harbor.managers.container.registry import ContainerRegistry

__all__ = [
    "CommandDenylist",
    "ContainerOrchestrator",
    "ContainerRegistry",
    "is_command_safe",
]
