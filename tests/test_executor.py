from __future__ import annotations

import os

import pytest

from clio_ai.errors import ErrorKind
from clio_ai.tools.actions import (
    CreateDirectory,
    CreateFile,
    DeleteFile,
    EditFile,
    Hunk,
    ListDirectory,
    ReadFile,
)
from clio_ai.tools.executor import MAX_OUTPUT_CHARS, ToolExecutor, execute


@pytest.fixture
def executor(tmp_path) -> ToolExecutor:
    return ToolExecutor(tmp_path)


def test_create_file_writes_exact_content(executor, tmp_path) -> None:
    result = executor.execute(CreateFile("hello.py", 'print("hello world")'))

    assert result.ok
    assert (tmp_path / "hello.py").read_text(encoding="utf-8") == 'print("hello world")'


def test_create_twice_keeps_first_content(executor, tmp_path) -> None:
    first = executor.execute(CreateFile("a.txt", "one"))
    second = executor.execute(CreateFile("a.txt", "two"))

    assert first.ok
    assert not second.ok
    assert second.error is ErrorKind.ALREADY_EXISTS
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "one"


def test_create_with_overwrite_replaces(executor, tmp_path) -> None:
    executor.execute(CreateFile("a.txt", "one"))

    result = executor.execute(CreateFile("a.txt", "two", overwrite=True))

    assert result.ok
    assert "Overwrote" in result.message
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "two"


def test_nested_create_makes_parents(executor, tmp_path) -> None:
    result = executor.execute(CreateFile("src/pkg/mod.py", "x = 1\n"))

    assert result.ok
    assert (tmp_path / "src" / "pkg" / "mod.py").is_file()


@pytest.mark.parametrize("path", ["../escape.txt", "src/../../escape.txt", "/etc/passwd"])
def test_escaping_paths_are_refused(executor, tmp_path, path: str) -> None:
    result = executor.execute(CreateFile(path, "x"))

    assert not result.ok
    assert result.error is ErrorKind.PATH_ESCAPE
    assert not (tmp_path.parent / "escape.txt").exists()


def test_absolute_path_inside_root_is_accepted(executor, tmp_path) -> None:
    result = executor.execute(CreateFile(str(tmp_path.resolve() / "abs.txt"), "ok"))

    assert result.ok
    assert (tmp_path / "abs.txt").read_text(encoding="utf-8") == "ok"


@pytest.mark.parametrize("path", ["~notes.txt", "~no_such_user_here.txt", "~/notes.txt"])
def test_tilde_is_an_ordinary_relative_name(executor, tmp_path, path: str) -> None:
    result = executor.execute(CreateFile(path, "x"))

    assert result.ok
    assert (tmp_path / path).read_text(encoding="utf-8") == "x"


def test_unexpected_error_becomes_io_failure(executor, monkeypatch) -> None:
    def boom(action, p):
        raise RuntimeError("disk gremlins")

    monkeypatch.setattr(executor, "_create_file", boom)

    result = executor.execute(CreateFile("a.txt", "x"))

    assert not result.ok
    assert result.error is ErrorKind.IO_FAILURE
    assert "disk gremlins" in result.message


def test_symlink_pointing_outside_is_refused(tmp_path) -> None:
    root = tmp_path / "root"
    outside = tmp_path / "outside"
    root.mkdir()
    outside.mkdir()
    os.symlink(outside, root / "link")

    result = execute(CreateFile("link/evil.txt", "x"), root)

    assert result.error is ErrorKind.PATH_ESCAPE
    assert not (outside / "evil.txt").exists()


def test_root_itself_cannot_be_deleted(executor, tmp_path) -> None:
    result = executor.execute(DeleteFile("."))

    assert result.error is ErrorKind.PATH_ESCAPE
    assert tmp_path.is_dir()


def test_edit_missing_file_is_not_found_and_creates_nothing(executor, tmp_path) -> None:
    result = executor.execute(EditFile("missing.py", content="x"))

    assert result.error is ErrorKind.NOT_FOUND
    assert not (tmp_path / "missing.py").exists()


def test_patch_applies_all_hunks(executor, tmp_path) -> None:
    (tmp_path / "m.py").write_text("a = 1\nb = 2\n", encoding="utf-8")

    result = executor.execute(EditFile("m.py", patch=(Hunk("a = 1", "a = 10"), Hunk("b = 2", "b = 20"))))

    assert result.ok
    assert (tmp_path / "m.py").read_text(encoding="utf-8") == "a = 10\nb = 20\n"


def test_patch_mismatch_leaves_file_untouched(executor, tmp_path) -> None:
    (tmp_path / "m.py").write_text("a = 1\nb = 2\n", encoding="utf-8")

    result = executor.execute(EditFile("m.py", patch=(Hunk("a = 1", "a = 10"), Hunk("c = 3", "c = 30"))))

    assert result.error is ErrorKind.PATCH_MISMATCH
    assert (tmp_path / "m.py").read_text(encoding="utf-8") == "a = 1\nb = 2\n"


def test_ambiguous_patch_is_a_mismatch(executor, tmp_path) -> None:
    (tmp_path / "m.py").write_text("x\nx\n", encoding="utf-8")

    result = executor.execute(EditFile("m.py", patch=(Hunk("x", "y"),)))

    assert result.error is ErrorKind.PATCH_MISMATCH


def test_delete_file_and_empty_dir(executor, tmp_path) -> None:
    (tmp_path / "f.txt").write_text("x", encoding="utf-8")
    (tmp_path / "empty").mkdir()

    assert executor.execute(DeleteFile("f.txt")).ok
    assert executor.execute(DeleteFile("empty")).ok
    assert not (tmp_path / "f.txt").exists()
    assert not (tmp_path / "empty").exists()


def test_delete_non_empty_dir_is_refused(executor, tmp_path) -> None:
    (tmp_path / "full").mkdir()
    (tmp_path / "full" / "keep.txt").write_text("x", encoding="utf-8")

    result = executor.execute(DeleteFile("full"))

    assert result.error is ErrorKind.IO_FAILURE
    assert (tmp_path / "full" / "keep.txt").exists()


def test_delete_missing_is_not_found(executor) -> None:
    assert executor.execute(DeleteFile("nope")).error is ErrorKind.NOT_FOUND


def test_read_file_output_is_truncated(executor, tmp_path) -> None:
    (tmp_path / "big.txt").write_text("z" * (MAX_OUTPUT_CHARS + 50), encoding="utf-8")

    result = executor.execute(ReadFile("big.txt"))

    assert result.ok
    assert result.output.startswith("z" * 100)
    assert "truncated" in result.output
    assert result.to_dict()["result"] == result.output


def test_list_dir_sorted_with_dir_suffix(executor, tmp_path) -> None:
    (tmp_path / "b.txt").write_text("", encoding="utf-8")
    (tmp_path / "a").mkdir()

    result = executor.execute(ListDirectory("."))

    assert result.output.split("\n") == ["a/", "b.txt"]


def test_create_directory_is_idempotent(executor, tmp_path) -> None:
    assert executor.execute(CreateDirectory("src/deep")).ok
    assert executor.execute(CreateDirectory("src/deep")).ok
    assert (tmp_path / "src" / "deep").is_dir()


def test_execute_all_continues_after_failure(executor, tmp_path) -> None:
    results = executor.execute_all([
        EditFile("missing.py", content="x"),
        CreateFile("ok.txt", "fine"),
    ])

    assert [r.ok for r in results] == [False, True]
    assert str(results[0]).startswith("✗ edit_file missing.py [NotFound]")


def test_root_must_be_a_directory(tmp_path) -> None:
    f = tmp_path / "file.txt"
    f.write_text("x", encoding="utf-8")

    with pytest.raises(NotADirectoryError):
        ToolExecutor(f)
