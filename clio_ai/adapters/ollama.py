# adapters/ollama.py
from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List

from loguru import logger

from clio_ai.adapters.base import ProviderAdapter, ProviderRequest
from clio_ai.errors import ProviderRejected, ProviderUnavailable
from clio_ai.models import Provider
from clio_ai.turns import Role

DEFAULT_OLLAMA_URL = "http://localhost:11434"

_ROLES = {Role.USER: "user", Role.MODEL: "assistant", Role.TOOL_RESULT: "user"}


class OllamaAdapter(ProviderAdapter):
    """Local Ollama server via /api/chat; no auth, NDJSON streaming."""

    provider = Provider.OLLAMA
    display_name = "Ollama"

    def __init__(self, base_url: str = DEFAULT_OLLAMA_URL, *, temperature: float = 0.7, http: Any = None):
        super().__init__(http=http)
        self.base_url = (base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        self.temperature = temperature
        self.unreachable_hint = (
            f" Is the local inference server running at {self.base_url}?"
            " Start it with `ollama serve` or set OLLAMA_URL."
        )
        logger.info("OllamaAdapter init → base_url='{}'", self.base_url)

    def _url(self, request: ProviderRequest, stream: bool) -> str:
        return f"{self.base_url}/api/chat"

    def _status_hint(self, status: int) -> str:
        if status == 404:
            return " (is the model pulled? try `ollama pull <model>`)"
        return ""

    @staticmethod
    def messages(request: ProviderRequest) -> List[Dict[str, str]]:
        msgs: List[Dict[str, str]] = []
        if request.system_prompt:
            msgs.append({"role": "system", "content": request.system_prompt})
        for turn in request.turns:
            msgs.append({"role": _ROLES[turn.role], "content": turn.render()})
        return msgs

    def _payload(self, request: ProviderRequest, stream: bool) -> Dict[str, Any]:
        return {
            "model": request.model_id,
            "messages": self.messages(request),
            "stream": stream,
            "options": {"temperature": self.temperature},
        }

    def _extract_text(self, data: Any) -> str:
        if not isinstance(data, dict):
            raise ProviderRejected("Invalid Ollama response format", provider=str(self.provider))
        if data.get("error"):
            raise ProviderRejected(f"Ollama error: {data['error']}", provider=str(self.provider))
        message = data.get("message")
        text = message.get("content") if isinstance(message, dict) else None
        if not isinstance(text, str):
            raise ProviderRejected("Invalid Ollama response format", provider=str(self.provider))
        if not text:
            raise ProviderRejected("Ollama returned an empty response", provider=str(self.provider))
        return text

    def _iter_deltas(self, resp: Any) -> Iterator[str]:
        # NDJSON: one object per line, last one has "done": true
        for line in resp.iter_lines(decode_unicode=True):
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("OllamaAdapter: ignoring undecodable line")
                continue
            if not isinstance(obj, dict):
                logger.error("OllamaAdapter: stream line is not an object: {}", type(obj).__name__)
                raise ProviderRejected("Invalid Ollama stream format", provider=str(self.provider))
            if obj.get("error"):
                raise ProviderUnavailable(f"Ollama stream error: {obj['error']}", provider=str(self.provider))
            message = obj.get("message") or {}
            text = message.get("content") if isinstance(message, dict) else None
            if not isinstance(message, dict) or not isinstance(text, (str, type(None))):
                raise ProviderRejected("Invalid Ollama stream format", provider=str(self.provider))
            yield text or ""
            if obj.get("done"):
                break
