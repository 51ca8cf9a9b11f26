# tools/actions.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union

from clio_ai.errors import ErrorKind


@dataclass(frozen=True)
class Hunk:
    """One search/replace edit; `search` must match the current file exactly once."""

    search: str
    replace: str


@dataclass(frozen=True)
class CreateFile:
    path: str
    content: str = ""
    overwrite: bool = False
    name = "create_file"


@dataclass(frozen=True)
class CreateDirectory:
    path: str
    name = "create_folder"


@dataclass(frozen=True)
class EditFile:
    """Full replacement when `content` is set, otherwise apply `patch` hunks in order."""

    path: str
    content: Optional[str] = None
    patch: Tuple[Hunk, ...] = ()
    name = "edit_file"

    @property
    def is_patch(self) -> bool:
        return self.content is None


@dataclass(frozen=True)
class DeleteFile:
    path: str
    name = "delete"


@dataclass(frozen=True)
class ReadFile:
    path: str
    name = "read_file"


@dataclass(frozen=True)
class ListDirectory:
    path: str = "."
    name = "list_dir"


Action = Union[CreateFile, CreateDirectory, EditFile, DeleteFile, ReadFile, ListDirectory]

READ_ONLY_ACTIONS = (ReadFile, ListDirectory)


def describe(action: Action) -> str:
    return f"{action.name} {action.path}"


@dataclass(frozen=True)
class Skipped:
    """A directive the parser recognised but could not turn into an Action."""

    reason: str
    excerpt: str = ""
    kind: ErrorKind = ErrorKind.SKIPPED


@dataclass(frozen=True)
class ExecutionResult:
    action: Action
    ok: bool
    message: str
    error: Optional[ErrorKind] = None
    output: Optional[str] = field(default=None, repr=False)

    @classmethod
    def success(cls, action: Action, message: str, output: Optional[str] = None) -> "ExecutionResult":
        return cls(action=action, ok=True, message=message, output=output)

    @classmethod
    def failure(cls, action: Action, error: ErrorKind, message: str) -> "ExecutionResult":
        return cls(action=action, ok=False, message=message, error=error)

    def to_dict(self) -> dict:
        """Wire shape sent back to the model as tool results."""
        d = {
            "action": self.action.name,
            "path": self.action.path,
            "success": self.ok,
            "result": self.output if (self.ok and self.output is not None) else self.message,
        }
        if self.error:
            d["error"] = str(self.error)
        return d

    def __str__(self) -> str:
        if self.ok:
            return f"✓ {describe(self.action)}: {self.message}"
        return f"✗ {describe(self.action)} [{self.error}]: {self.message}"
