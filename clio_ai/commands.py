# commands.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from loguru import logger

from clio_ai.config_home import Settings
from clio_ai.conversation import ConversationManager
from clio_ai.errors import BusyError, ClioError, ModelNotFound

HELP_LINES = [
    "Commands:",
    "  /models        - List available models",
    "  /model <name>  - Switch model",
    "  /config        - Show config sources",
    "  /quit, /exit   - Exit",
    "Anything else is sent to the model as a prompt.",
]


@dataclass
class CommandResult:
    """What the REPL should do with one input line."""

    output: List[str] = field(default_factory=list)
    is_prompt: bool = False
    quit: bool = False
    error: Optional[ClioError] = None


class CommandRouter:
    def __init__(self, manager: ConversationManager, settings: Settings):
        self.manager = manager
        self.settings = settings
        self._handlers: Dict[str, Callable[[str], CommandResult]] = {
            "/help": self._help,
            "/models": self._models,
            "/model": self._model,
            "/config": self._config,
            "/quit": self._quit,
            "/exit": self._quit,
        }

    def route(self, line: str) -> CommandResult:
        text = (line or "").strip()
        if not text.startswith("/"):
            return CommandResult(is_prompt=True)
        cmd, _, arg = text.partition(" ")
        handler = self._handlers.get(cmd.lower())
        if handler is None:
            # unknown slash words are ordinary prompts
            logger.debug("route: '{}' is not a command; treating as prompt", cmd)
            return CommandResult(is_prompt=True)
        logger.debug("route → {} arg='{}'", cmd, arg.strip())
        return handler(arg.strip())

    # ---------------- handlers ----------------

    def _help(self, arg: str) -> CommandResult:
        return CommandResult(output=list(HELP_LINES))

    def _models(self, arg: str) -> CommandResult:
        active = self.manager.active_model.id
        lines = ["Available models:"]
        for spec in self.manager.registry.list():
            marker = "*" if spec.id == active else " "
            note = ""
            missing = self.settings.missing_key(spec.provider)
            if missing:
                note = f"  [{missing} not set]"
            lines.append(f" {marker} {spec.id} - {spec.display_name} ({spec.provider}){note}")
        return CommandResult(output=lines)

    def _model(self, arg: str) -> CommandResult:
        if not arg:
            return CommandResult(output=["Usage: /model <model_id>", f"Current: {self.manager.active_model.id}"])
        try:
            spec = self.manager.switch_model(arg)
        except (ModelNotFound, BusyError) as e:
            logger.warning("/model {} ✗ {}", arg, e.message)
            return CommandResult(output=[f"Error: {e.message}"], error=e)
        lines = [f"Switched to: {spec.id} ({spec.display_name}, {spec.provider})"]
        missing = self.settings.missing_key(spec.provider)
        if missing:
            lines.append(f"Warning: {missing} is not set; requests to {spec.provider} will fail until it is.")
        return CommandResult(output=lines)

    def _config(self, arg: str) -> CommandResult:
        lines = self.settings.describe_sources()
        lines.append(f"Active model: {self.manager.active_model.id}")
        return CommandResult(output=lines)

    def _quit(self, arg: str) -> CommandResult:
        return CommandResult(quit=True)
