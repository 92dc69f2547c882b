"""Edit operations.

A closed tagged union decoded once at the boundary with
``parse_edit_operation``; every variant computes new content from the
prior content of the file (empty when the file does not exist yet).
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from harbor.errors import ValidationError


class _EditOperation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def apply(self, prior: str) -> tuple[str, int]:
        """Return ``(new_content, changes)``."""
        raise NotImplementedError


class ReplaceOperation(_EditOperation):
    type: Literal["replace"] = "replace"
    content: str

    def apply(self, prior: str) -> tuple[str, int]:
        return self.content, 1


class AppendOperation(_EditOperation):
    type: Literal["append"] = "append"
    content: str

    def apply(self, prior: str) -> tuple[str, int]:
        if not prior:
            return self.content, 1
        return f"{prior}\n{self.content}", 1


class PrependOperation(_EditOperation):
    type: Literal["prepend"] = "prepend"
    content: str

    def apply(self, prior: str) -> tuple[str, int]:
        if not prior:
            return self.content, 1
        return f"{self.content}\n{prior}", 1


class InsertLineOperation(_EditOperation):
    """Insert ``content`` as a new line before 1-indexed ``line``."""

    type: Literal["insert_line"] = "insert_line"
    content: str
    line: int

    def apply(self, prior: str) -> tuple[str, int]:
        lines = prior.split("\n")
        if self.line < 1 or self.line > len(lines) + 1:
            raise ValidationError(
                "Invalid line number for insert operation",
                details={"line": self.line, "line_count": len(lines)},
            )
        lines.insert(self.line - 1, self.content)
        return "\n".join(lines), 1


class InsertOffsetOperation(_EditOperation):
    """Insert ``content`` at character offset ``position``."""

    type: Literal["insert_offset"] = "insert_offset"
    content: str
    position: int

    def apply(self, prior: str) -> tuple[str, int]:
        if self.position < 0 or self.position > len(prior):
            raise ValidationError(
                "Invalid position for insert operation",
                details={"position": self.position, "length": len(prior)},
            )
        return prior[: self.position] + self.content + prior[self.position :], 1


class RegexReplaceOperation(_EditOperation):
    """Replace every match of ``search``.

    ``replace`` uses Python ``re.sub`` syntax (``\\1``, ``\\g<name>``).
    """

    type: Literal["regex_replace"] = "regex_replace"
    search: str = Field(min_length=1)
    replace: str

    def apply(self, prior: str) -> tuple[str, int]:
        try:
            pattern = re.compile(self.search)
            return pattern.subn(self.replace, prior)
        except re.error as e:
            raise ValidationError(
                f"Invalid regular expression: {e}",
                details={"search": self.search},
            ) from e


class DeleteLineOperation(_EditOperation):
    type: Literal["delete_line"] = "delete_line"
    line: int

    def apply(self, prior: str) -> tuple[str, int]:
        lines = prior.split("\n")
        if self.line < 1 or self.line > len(lines):
            raise ValidationError(
                "Invalid line number for delete operation",
                details={"line": self.line, "line_count": len(lines)},
            )
        del lines[self.line - 1]
        return "\n".join(lines), 1


EditOperation = Annotated[
    Union[
        ReplaceOperation,
        AppendOperation,
        PrependOperation,
        InsertLineOperation,
        InsertOffsetOperation,
        RegexReplaceOperation,
        DeleteLineOperation,
    ],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[EditOperation] = TypeAdapter(EditOperation)


def parse_edit_operation(raw: Any) -> EditOperation:
    """Decode a raw mapping into an EditOperation.

    Raises:
        ValidationError: unknown ``type`` or missing/invalid fields
    """
    if isinstance(raw, _EditOperation):
        return raw
    try:
        return _adapter.validate_python(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid edit operation",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        ) from e
