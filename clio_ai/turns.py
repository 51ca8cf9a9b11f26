# turns.py
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from clio_ai.prompts import TOOL_RESULTS_FOOTER
from clio_ai.tools.actions import Action, ExecutionResult, Skipped


class Role(str, Enum):
    USER = "user"
    MODEL = "model"
    TOOL_RESULT = "tool_result"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Turn:
    role: Role
    content: str
    actions: Tuple[Action, ...] = ()
    skipped: Tuple[Skipped, ...] = ()
    results: Tuple[ExecutionResult, ...] = ()
    model_id: Optional[str] = None
    context: Optional[str] = None
    partial: bool = False

    @classmethod
    def user(cls, prompt: str, context: Optional[str] = None) -> "Turn":
        return cls(Role.USER, prompt, context=context)

    @classmethod
    def model(cls, text: str, model_id: str, actions=(), skipped=(), partial: bool = False) -> "Turn":
        return cls(Role.MODEL, text, actions=tuple(actions), skipped=tuple(skipped),
                   model_id=model_id, partial=partial)

    @classmethod
    def tool_result(cls, results, skipped=()) -> "Turn":
        results = tuple(results)
        skipped = tuple(skipped)
        return cls(Role.TOOL_RESULT, _render_results(results, skipped), results=results, skipped=skipped)

    def render(self) -> str:
        """Text shown to a provider for this turn, identical across providers."""
        if self.role is Role.USER and self.context:
            return f"REPO CONTEXT:\n{self.context}\n\nUSER REQUEST: {self.content}"
        if self.role is Role.MODEL and self.partial:
            return f"{self.content}\n[response interrupted by the user]"
        return self.content


def _render_results(results: Tuple[ExecutionResult, ...], skipped: Tuple[Skipped, ...]) -> str:
    lines = [json.dumps(r.to_dict(), ensure_ascii=False) for r in results]
    for s in skipped:
        lines.append(json.dumps(
            {"action": "skipped", "success": False, "result": s.reason, "directive": s.excerpt},
            ensure_ascii=False,
        ))
    body = "\n".join(lines) if lines else "(no actions)"
    return f"Tool results:\n{body}\n\n{TOOL_RESULTS_FOOTER}"


class Conversation:
    """Append-only turn history. Turns are immutable once added."""

    def __init__(self):
        self._turns: List[Turn] = []

    def append(self, turn: Turn) -> Turn:
        self._turns.append(turn)
        return turn

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))
