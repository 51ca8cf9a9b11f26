from __future__ import annotations

import pytest

from clio_ai.config_home import DEFAULT_MODEL, env_paths, resolve_settings
from clio_ai.errors import ConfigMissing, ErrorKind
from clio_ai.models import Provider


def _write_env(path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_defaults_when_nothing_is_configured(tmp_path) -> None:
    s = resolve_settings({}, cwd=tmp_path / "proj", home=tmp_path / "home")

    assert s.model == DEFAULT_MODEL
    assert s.ollama_url == "http://localhost:11434"
    assert s.timeout == 120.0
    assert s.max_retries == 3
    assert s.max_rounds == 5
    assert s.missing_key(Provider.GEMINI) == "GEMINI_API_KEY"
    assert s.missing_key(Provider.OLLAMA) is None


def test_environment_wins_over_env_files(tmp_path) -> None:
    cwd, home = tmp_path / "proj", tmp_path / "home"
    _write_env(cwd / ".env", "GEMINI_API_KEY=from-cwd\nMODEL=llama3.2\n")
    _write_env(home / ".clio-ai" / ".env", "GEMINI_API_KEY=from-home\nGROQ_API_KEY=groq-home\n")

    s = resolve_settings({"GEMINI_API_KEY": "from-env"}, cwd=cwd, home=home)

    assert s.gemini_api_key == "from-env"
    assert s.model == "llama3.2"
    assert s.groq_api_key == "groq-home"
    assert s.sources["GEMINI_API_KEY"] == "<environment>"
    assert s.sources["GROQ_API_KEY"] == str(home / ".clio-ai" / ".env")


def test_legacy_home_is_last_resort(tmp_path) -> None:
    cwd, home = tmp_path / "proj", tmp_path / "home"
    _write_env(home / ".ai-cli" / ".env", "GROQ_API_KEY=legacy\nOLLAMA_URL=http://box:11434/\n")

    s = resolve_settings({}, cwd=cwd, home=home)

    assert s.groq_api_key == "legacy"
    assert s.ollama_url == "http://box:11434"
    assert env_paths(cwd, home)[-1] == home / ".ai-cli" / ".env"


def test_invalid_numbers_fall_back_to_defaults(tmp_path) -> None:
    s = resolve_settings(
        {"CLIO_TIMEOUT": "soon", "CLIO_MAX_RETRIES": "-1", "CLIO_MAX_ROUNDS": "2"},
        cwd=tmp_path, home=tmp_path,
    )

    assert s.timeout == 120.0
    assert s.max_retries == 3
    assert s.max_rounds == 2


def test_require_api_key_raises_config_missing(tmp_path) -> None:
    s = resolve_settings({}, cwd=tmp_path, home=tmp_path)

    with pytest.raises(ConfigMissing) as exc:
        s.require_api_key(Provider.GROQ)

    assert exc.value.kind is ErrorKind.CONFIG_MISSING
    assert exc.value.key == "GROQ_API_KEY"


def test_describe_sources_lists_lookup_order(tmp_path) -> None:
    s = resolve_settings({"GEMINI_API_KEY": "k"}, cwd=tmp_path / "p", home=tmp_path / "h")

    report = "\n".join(s.describe_sources())

    assert "<environment>" in report
    assert ".clio-ai" in report
    assert "GEMINI_API_KEY ← <environment>" in report
    assert "GROQ_API_KEY not set" in report
