from __future__ import annotations

import json

import pytest

from clio_ai import main as cli
from conftest import ScriptedAdapter


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("MODEL", "gemini-2.5-flash")
    monkeypatch.delenv("CLIO_MODELS_FILE", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _use_adapter(monkeypatch, adapter: ScriptedAdapter) -> None:
    monkeypatch.setattr(cli, "AdapterFactory", lambda settings: (lambda spec: adapter))


def test_parser_defaults() -> None:
    args = cli.build_parser().parse_args([])

    assert args.prompt is None
    assert args.root is None
    assert not args.no_stream


def test_one_shot_prompt_applies_actions(isolated, monkeypatch, capsys) -> None:
    reply = json.dumps({"tools": [{"action": "create_file", "path": "hello.py", "content": "print(1)"}]})
    _use_adapter(monkeypatch, ScriptedAdapter(reply))

    code = cli.main(["--root", str(isolated), "--no-stream", "--log-file", str(isolated / "logs"), "make hello.py"])

    out = capsys.readouterr().out
    assert code == 0
    assert (isolated / "hello.py").read_text(encoding="utf-8") == "print(1)"
    assert "✓ create_file hello.py" in out


def test_unknown_start_model_is_a_startup_error(isolated, capsys) -> None:
    code = cli.main(["--root", str(isolated), "--model", "ghost", "--log-file", str(isolated / "logs")])

    assert code == 2
    assert "ghost" in capsys.readouterr().err


def test_repl_handles_commands_until_quit(isolated, monkeypatch, capsys) -> None:
    _use_adapter(monkeypatch, ScriptedAdapter('{"response": "hello there"}'))
    lines = iter(["/models", "hi", "/quit"])
    monkeypatch.setattr("builtins.input", lambda _prompt="": next(lines))

    code = cli.main(["--root", str(isolated), "--no-stream", "--log-file", str(isolated / "logs")])

    out = capsys.readouterr().out
    assert code == 0
    assert out.startswith("clio-ai v0.1.0 | Model: gemini-2.5-flash | /help for commands")
    assert "Available models:" in out
    assert "hello there" in out


def test_repl_survives_an_interrupted_prompt(isolated, monkeypatch, capsys) -> None:
    _use_adapter(monkeypatch, ScriptedAdapter())
    lines = iter(["first", "/quit"])
    monkeypatch.setattr("builtins.input", lambda _prompt="": next(lines))

    def interrupted(manager, prompt, stream):
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "run_prompt", interrupted)

    code = cli.main(["--root", str(isolated), "--no-stream", "--log-file", str(isolated / "logs")])

    assert code == 0
    assert "Interrupted." in capsys.readouterr().out
