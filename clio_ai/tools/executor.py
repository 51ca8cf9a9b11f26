# tools/executor.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List

from loguru import logger

from clio_ai.errors import ErrorKind
from clio_ai.logging_decorators import log_call
from clio_ai.tools.actions import (
    Action,
    CreateDirectory,
    CreateFile,
    DeleteFile,
    EditFile,
    ExecutionResult,
    ListDirectory,
    ReadFile,
    describe,
)

MAX_OUTPUT_CHARS = 20000


class _ActionFailed(Exception):
    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


def _summarize(ret: ExecutionResult) -> dict:
    return {"ok": ret.ok, "error": str(ret.error) if ret.error else None}


class ToolExecutor:
    """
    Applies Actions to the filesystem, confined to `root`.

    Every path is checked before any I/O happens; failures come back as
    ExecutionResult values, never as exceptions.
    """
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        if not self.root.is_dir():
            raise NotADirectoryError(f"Sandbox root is not a directory: {self.root}")
        logger.info("ToolExecutor init → root='{}'", str(self.root))

    # ---------------- path confinement ----------------

    def _rel(self, p: Path) -> str:
        rel = p.relative_to(self.root)
        return str(rel) if str(rel) != "." else "."

    def resolve(self, path: str) -> Path:
        """
        Map a model-supplied path onto the sandbox.

        `.`/`..` are collapsed lexically first, then symlinks are resolved;
        both results must stay under root. Absolute paths are accepted only
        when they already point inside root; `~` is an ordinary name segment.
        """
        raw = (path or "").strip() or "."
        candidate = Path(raw)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        lexical = Path(os.path.normpath(str(candidate)))
        if lexical != self.root and self.root not in lexical.parents:
            raise _ActionFailed(ErrorKind.PATH_ESCAPE, f"'{path}' resolves outside the project directory")
        real = lexical.resolve()
        if real != self.root and self.root not in real.parents:
            raise _ActionFailed(ErrorKind.PATH_ESCAPE, f"'{path}' points outside the project directory via a symlink")
        return lexical

    def _not_root(self, p: Path, path: str) -> None:
        if p == self.root:
            raise _ActionFailed(ErrorKind.PATH_ESCAPE, f"refusing to modify the project directory itself ('{path}')")

    # ---------------- dispatch ----------------

    @log_call("execute", slow_ms=1000, summarize=_summarize)
    def execute(self, action: Action) -> ExecutionResult:
        try:
            target = self.resolve(action.path)
            if isinstance(action, CreateFile):
                return self._create_file(action, target)
            if isinstance(action, CreateDirectory):
                return self._create_directory(action, target)
            if isinstance(action, EditFile):
                return self._edit_file(action, target)
            if isinstance(action, DeleteFile):
                return self._delete(action, target)
            if isinstance(action, ReadFile):
                return self._read_file(action, target)
            if isinstance(action, ListDirectory):
                return self._list_dir(action, target)
            raise _ActionFailed(ErrorKind.IO_FAILURE, f"unsupported action {type(action).__name__}")
        except _ActionFailed as e:
            logger.warning("✗ {}: {} {}", describe(action), e.kind, e.message)
            return ExecutionResult.failure(action, e.kind, e.message)
        except UnicodeDecodeError:
            logger.warning("✗ {}: not a UTF-8 text file", describe(action))
            return ExecutionResult.failure(action, ErrorKind.IO_FAILURE, f"'{action.path}' is not a UTF-8 text file")
        except OSError as e:
            logger.error("✗ {}: {}", describe(action), e)
            return ExecutionResult.failure(action, ErrorKind.IO_FAILURE, f"{action.path}: {e.strerror or e}")
        except Exception as e:
            logger.exception("✗ {}: unexpected error", describe(action))
            return ExecutionResult.failure(action, ErrorKind.IO_FAILURE, f"{action.path}: {e}")

    def execute_all(self, actions: Iterable[Action]) -> List[ExecutionResult]:
        """Run actions one after another, in order; a failure never stops the rest."""
        results = [self.execute(a) for a in actions]
        ok = sum(1 for r in results if r.ok)
        logger.info("execute_all: {} action(s), {} ok, {} failed", len(results), ok, len(results) - ok)
        return results

    # ---------------- actions ----------------

    def _create_file(self, action: CreateFile, p: Path) -> ExecutionResult:
        self._not_root(p, action.path)
        existed = p.exists()
        if p.is_dir():
            raise _ActionFailed(ErrorKind.ALREADY_EXISTS, f"'{action.path}' already exists as a directory")
        if existed and not action.overwrite:
            raise _ActionFailed(
                ErrorKind.ALREADY_EXISTS,
                f"'{action.path}' already exists (not overwritten; ask to overwrite or edit it)",
            )
        if not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)
            logger.info("create_file: created parent directory '{}'", self._rel(p.parent))
        p.write_text(action.content, encoding="utf-8")
        size = len(action.content.encode("utf-8"))
        verb = "Overwrote" if existed else "Created"
        logger.info("create_file: '{}' bytes={} overwrote={}", self._rel(p), size, existed)
        return ExecutionResult.success(action, f"{verb} file with {size} bytes")

    def _create_directory(self, action: CreateDirectory, p: Path) -> ExecutionResult:
        if p.exists() and not p.is_dir():
            raise _ActionFailed(ErrorKind.ALREADY_EXISTS, f"'{action.path}' already exists as a file")
        if p.is_dir():
            return ExecutionResult.success(action, "Folder already exists")
        p.mkdir(parents=True)
        logger.info("create_folder: '{}'", self._rel(p))
        return ExecutionResult.success(action, "Folder created")

    def _edit_file(self, action: EditFile, p: Path) -> ExecutionResult:
        self._not_root(p, action.path)
        if not p.exists():
            raise _ActionFailed(ErrorKind.NOT_FOUND, f"'{action.path}' does not exist")
        if not p.is_file():
            raise _ActionFailed(ErrorKind.IO_FAILURE, f"'{action.path}' is not a file")

        if not action.is_patch:
            p.write_text(action.content, encoding="utf-8")
            logger.info("edit_file: '{}' replaced ({} chars)", self._rel(p), len(action.content))
            return ExecutionResult.success(action, f"Replaced content ({len(action.content)} chars)")

        text = p.read_text(encoding="utf-8")
        for n, hunk in enumerate(action.patch, start=1):
            count = text.count(hunk.search)
            if count == 0:
                raise _ActionFailed(
                    ErrorKind.PATCH_MISMATCH,
                    f"hunk {n} of {len(action.patch)} not found in '{action.path}'; file left unchanged",
                )
            if count > 1:
                raise _ActionFailed(
                    ErrorKind.PATCH_MISMATCH,
                    f"hunk {n} of {len(action.patch)} matches {count} places in '{action.path}'; file left unchanged",
                )
            text = text.replace(hunk.search, hunk.replace, 1)
        p.write_text(text, encoding="utf-8")
        logger.info("edit_file: '{}' patched hunks={}", self._rel(p), len(action.patch))
        return ExecutionResult.success(action, f"Applied {len(action.patch)} edit(s)")

    def _delete(self, action: DeleteFile, p: Path) -> ExecutionResult:
        self._not_root(p, action.path)
        if not p.exists() and not p.is_symlink():
            raise _ActionFailed(ErrorKind.NOT_FOUND, f"'{action.path}' does not exist")
        if p.is_dir() and not p.is_symlink():
            if any(p.iterdir()):
                raise _ActionFailed(ErrorKind.IO_FAILURE, f"'{action.path}' is a non-empty directory; not deleted")
            p.rmdir()
            logger.info("delete: removed empty directory '{}'", self._rel(p))
            return ExecutionResult.success(action, "Deleted empty folder")
        p.unlink()
        logger.info("delete: '{}'", self._rel(p))
        return ExecutionResult.success(action, "Deleted")

    def _read_file(self, action: ReadFile, p: Path) -> ExecutionResult:
        if not p.exists():
            raise _ActionFailed(ErrorKind.NOT_FOUND, f"'{action.path}' does not exist")
        if not p.is_file():
            raise _ActionFailed(ErrorKind.IO_FAILURE, f"'{action.path}' is not a file")
        text = p.read_text(encoding="utf-8", errors="replace")
        size = len(text)
        if size > MAX_OUTPUT_CHARS:
            text = text[:MAX_OUTPUT_CHARS] + f"\n... (truncated, {size - MAX_OUTPUT_CHARS} more chars)"
        logger.info("read_file: '{}' chars={}", self._rel(p), size)
        return ExecutionResult.success(action, f"Read {size} chars", output=text)

    def _list_dir(self, action: ListDirectory, p: Path) -> ExecutionResult:
        if not p.exists():
            raise _ActionFailed(ErrorKind.NOT_FOUND, f"'{action.path}' does not exist")
        if not p.is_dir():
            raise _ActionFailed(ErrorKind.IO_FAILURE, f"'{action.path}' is not a directory")
        entries = sorted(
            (e.name + "/" if e.is_dir() else e.name) for e in p.iterdir()
        )
        logger.info("list_dir: '{}' → {} entr(ies)", self._rel(p), len(entries))
        return ExecutionResult.success(action, f"{len(entries)} entries", output="\n".join(entries))


def execute(action: Action, sandbox_root: str | Path) -> ExecutionResult:
    """One-off form of ToolExecutor(sandbox_root).execute(action)."""
    return ToolExecutor(sandbox_root).execute(action)
