# adapters/openai_compat.py
from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional

from loguru import logger

from clio_ai.adapters.base import ProviderAdapter, ProviderRequest
from clio_ai.errors import ConfigMissing, ProviderRejected, ProviderUnavailable
from clio_ai.models import Provider
from clio_ai.turns import Role

GROQ_BASE_URL = "https://api.groq.com/openai/v1"

_ROLES = {Role.USER: "user", Role.MODEL: "assistant", Role.TOOL_RESULT: "user"}


class OpenAICompatAdapter(ProviderAdapter):
    """Any /chat/completions endpoint with bearer-token auth and SSE streaming."""

    api_key_env = "OPENAI_API_KEY"

    def __init__(self, api_key: Optional[str], *, endpoint: str, temperature: float = 0.7, http: Any = None):
        super().__init__(http=http)
        self.api_key = api_key
        self.endpoint = endpoint.rstrip("/")
        self.temperature = temperature
        self.credential_hint = f" Check {self.api_key_env}."
        logger.info(
            "OpenAICompatAdapter init → provider='{}' endpoint='{}' key_set={}",
            self.provider, self.endpoint, bool(api_key),
        )

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            logger.error("_headers: {} not set", self.api_key_env)
            raise ConfigMissing(self.api_key_env, provider=str(self.provider))
        return {"Content-Type": "application/json", "Authorization": f"Bearer {self.api_key}"}

    def _url(self, request: ProviderRequest, stream: bool) -> str:
        return self.endpoint + "/chat/completions"

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
            "temperature": self.temperature,
            "stream": stream,
        }

    @staticmethod
    def _first_choice(data: Any) -> Optional[Dict[str, Any]]:
        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices:
            return None
        return choices[0] if isinstance(choices[0], dict) else None

    def _extract_text(self, data: Any) -> str:
        choice = self._first_choice(data) or {}
        msg = choice.get("message")
        content = msg.get("content") if isinstance(msg, dict) else None
        if not isinstance(content, str) or not content:
            logger.error("openai_compat: no content in response")
            raise ProviderRejected(f"No response from {self.display_name}", provider=str(self.provider))
        return content

    def _iter_deltas(self, resp: Any) -> Iterator[str]:
        # SSE stream lines: each 'data: {...}' or 'data: [DONE]'
        for line in resp.iter_lines(decode_unicode=True):
            if not line or not line.startswith("data:"):
                continue
            data = line[5:].strip()
            if data == "[DONE]":
                break
            try:
                obj = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(obj, dict):
                logger.error("openai_compat: stream event is not an object: {}", type(obj).__name__)
                raise ProviderRejected(f"Invalid {self.display_name} stream format", provider=str(self.provider))
            if obj.get("error"):
                err = obj["error"]
                msg = err.get("message") if isinstance(err, dict) else str(err)
                raise ProviderUnavailable(f"{self.display_name} stream error: {msg}", provider=str(self.provider))
            if not obj.get("choices"):
                continue
            choice = self._first_choice(obj)
            delta = (choice.get("delta") or choice.get("message") or {}) if choice is not None else None
            if not isinstance(delta, dict) or not isinstance(delta.get("content"), (str, type(None))):
                raise ProviderRejected(f"Invalid {self.display_name} stream format", provider=str(self.provider))
            text = delta.get("content")
            if text:
                yield text


class GroqAdapter(OpenAICompatAdapter):
    provider = Provider.GROQ
    display_name = "Groq"
    api_key_env = "GROQ_API_KEY"

    def __init__(self, api_key: Optional[str], *, endpoint: str = GROQ_BASE_URL, **kwargs: Any):
        super().__init__(api_key, endpoint=endpoint, **kwargs)
