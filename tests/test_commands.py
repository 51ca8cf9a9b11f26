from __future__ import annotations

from clio_ai.commands import CommandRouter
from clio_ai.config_home import Settings
from clio_ai.conversation import ConversationManager
from clio_ai.errors import ErrorKind
from clio_ai.models import ModelRegistry
from clio_ai.tools.executor import ToolExecutor
from conftest import ScriptedAdapter


def _router(tmp_path, settings: Settings) -> CommandRouter:
    manager = ConversationManager(
        ModelRegistry(),
        lambda spec: ScriptedAdapter(),
        ToolExecutor(tmp_path),
        model_id="gemini-2.5-flash",
    )
    return CommandRouter(manager, settings)


def test_plain_text_and_unknown_commands_are_prompts(tmp_path, settings) -> None:
    router = _router(tmp_path, settings)

    assert router.route("create a file").is_prompt
    assert router.route("/etc/hosts looks odd").is_prompt


def test_help_lists_commands(tmp_path, settings) -> None:
    out = "\n".join(_router(tmp_path, settings).route("/help").output)

    for cmd in ("/models", "/model <name>", "/config", "/quit"):
        assert cmd in out


def test_models_marks_the_active_one(tmp_path, settings) -> None:
    lines = _router(tmp_path, settings).route("/models").output

    active = [ln for ln in lines if ln.startswith(" *")]
    assert len(active) == 1
    assert "gemini-2.5-flash " in active[0]


def test_model_ghost_is_not_found_and_keeps_active(tmp_path, settings) -> None:
    router = _router(tmp_path, settings)

    result = router.route("/model ghost")

    assert result.error is not None
    assert result.error.kind is ErrorKind.NOT_FOUND
    assert router.manager.active_model.id == "gemini-2.5-flash"


def test_model_switch_warns_about_missing_key(tmp_path) -> None:
    router = _router(tmp_path, Settings(gemini_api_key="g"))

    result = router.route("/model compound-beta")

    assert result.error is None
    assert router.manager.active_model.id == "compound-beta"
    assert any("GROQ_API_KEY is not set" in ln for ln in result.output)


def test_model_without_argument_shows_usage(tmp_path, settings) -> None:
    result = _router(tmp_path, settings).route("/model")

    assert result.output[0].startswith("Usage:")


def test_config_reports_sources(tmp_path, settings) -> None:
    out = _router(tmp_path, settings).route("/config").output

    assert out[0].startswith("Config lookup order")
    assert out[-1] == "Active model: gemini-2.5-flash"


def test_quit_and_exit(tmp_path, settings) -> None:
    router = _router(tmp_path, settings)

    assert router.route("/quit").quit
    assert router.route("/exit").quit
