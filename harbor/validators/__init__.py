"""Input validation helpers."""

from harbor.validators.path import (
    glob_to_regex,
    resolve_in_workspace,
    to_relative,
    validate_glob_pattern,
    validate_session_id,
)

__all__ = [
    "glob_to_regex",
    "resolve_in_workspace",
    "to_relative",
    "validate_glob_pattern",
    "validate_session_id",
]
