"""Workspace file store."""

from harbor.managers.workspace.linter import Linter, parse_lint_output, select_lint_command
from harbor.managers.workspace.operations import (
    AppendOperation,
    DeleteLineOperation,
    EditOperation,
    InsertLineOperation,
    InsertOffsetOperation,
    PrependOperation,
    RegexReplaceOperation,
    ReplaceOperation,
    parse_edit_operation,
)
from harbor.managers.workspace.store import WorkspaceFileStore

__all__ = [
    "AppendOperation",
    "DeleteLineOperation",
    "EditOperation",
    "InsertLineOperation",
    "InsertOffsetOperation",
    "Linter",
    "PrependOperation",
    "RegexReplaceOperation",
    "ReplaceOperation",
    "WorkspaceFileStore",
    "parse_edit_operation",
    "parse_lint_output",
    "select_lint_command",
]
