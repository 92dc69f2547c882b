"""Command denylist.

Matching is case-insensitive. Destructive patterns (``sudo``, ``mount``,
``rm -rf /``) match anywhere in the command, so ``sudoedit`` and ``umount``
are rejected too. ``su`` and the power-state commands match only where a
command name can start, so ``su -`` and ``su-exec`` are rejected while
``npm run submit`` and ``asphalt`` are not.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

DEFAULT_SUBSTRINGS: tuple[str, ...] = (
    "rm -rf /",
    "dd if=",
    "mkfs",
    "fdisk",
    "mount",
    "chmod 777",
    "chown root",
    "cd ..",
    "sudo",
    "passwd",
    "useradd",
    "userdel",
    "groupadd",
    "groupdel",
)

DEFAULT_COMMANDS: tuple[str, ...] = (
    "su",
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
)

_WORD_RE = re.compile(r"^[a-z0-9_]+$")


def _command_pattern(name: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![\w.-]){re.escape(name)}(?![a-z0-9_])")


class CommandDenylist:
    """Fixed set of command patterns treated as unsafe."""

    def __init__(self, extra: Iterable[str] = ()) -> None:
        substrings = list(DEFAULT_SUBSTRINGS)
        commands = list(DEFAULT_COMMANDS)
        for entry in extra:
            entry = entry.strip().lower()
            if not entry:
                continue
            if _WORD_RE.match(entry):
                commands.append(entry)
            else:
                substrings.append(entry)

        self._substrings = tuple(substrings)
        self._commands = tuple((name, _command_pattern(name)) for name in commands)

    def match(self, command: str) -> str | None:
        """Return the pattern ``command`` hits, or None."""
        lowered = command.lower()
        for pattern in self._substrings:
            if pattern in lowered:
                return pattern
        for name, regex in self._commands:
            if regex.search(lowered):
                return name
        return None

    def is_safe(self, command: str) -> bool:
        return self.match(command) is None


def is_command_safe(command: str) -> bool:
    """Check ``command`` against the built-in denylist."""
    return CommandDenylist().is_safe(command)
