# adapters/gemini.py
from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional

from loguru import logger

from clio_ai.adapters.base import ProviderAdapter, ProviderRequest
from clio_ai.errors import ConfigMissing, ProviderRejected, ProviderUnavailable
from clio_ai.models import Provider
from clio_ai.turns import Role

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_ROLES = {Role.USER: "user", Role.MODEL: "model", Role.TOOL_RESULT: "user"}


class GeminiAdapter(ProviderAdapter):
    provider = Provider.GEMINI
    display_name = "Gemini"
    credential_hint = " Check GEMINI_API_KEY."

    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = GEMINI_BASE_URL,
        temperature: float = 0.7,
        http: Any = None,
    ):
        super().__init__(http=http)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        logger.info("GeminiAdapter init → base_url='{}' key_set={}", self.base_url, bool(api_key))

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            logger.error("GeminiAdapter: GEMINI_API_KEY not set")
            raise ConfigMissing("GEMINI_API_KEY", provider=str(self.provider))
        return {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

    def _url(self, request: ProviderRequest, stream: bool) -> str:
        if stream:
            return f"{self.base_url}/models/{request.model_id}:streamGenerateContent?alt=sse"
        return f"{self.base_url}/models/{request.model_id}:generateContent"

    @staticmethod
    def contents(request: ProviderRequest) -> List[Dict[str, Any]]:
        """Render turns as Gemini `contents`, merging consecutive same-role turns."""
        out: List[Dict[str, Any]] = []
        for turn in request.turns:
            role = _ROLES[turn.role]
            part = {"text": turn.render()}
            if out and out[-1]["role"] == role:
                out[-1]["parts"].append(part)
            else:
                out.append({"role": role, "parts": [part]})
        return out

    def _payload(self, request: ProviderRequest, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "contents": self.contents(request),
            "generationConfig": {"temperature": self.temperature},
        }
        if request.system_prompt:
            payload["system_instruction"] = {"parts": [{"text": request.system_prompt}]}
        return payload

    @staticmethod
    def _candidate_text(data: Dict[str, Any]) -> str:
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return ""
        return "".join(
            p["text"] for p in parts
            if isinstance(p, dict) and isinstance(p.get("text"), str) and not p.get("thought")
        )

    def _extract_text(self, data: Any) -> str:
        if not isinstance(data, dict):
            raise ProviderRejected("Gemini returned an unexpected response shape", provider=str(self.provider))
        if not data.get("candidates"):
            feedback = data.get("promptFeedback")
            block = feedback.get("blockReason") if isinstance(feedback, dict) else None
            reason = f"blocked the prompt ({block})" if block else "returned no candidates"
            logger.error("GeminiAdapter: {}", reason)
            raise ProviderRejected(f"Gemini {reason}", provider=str(self.provider))
        text = self._candidate_text(data)
        if not text:
            first = data["candidates"][0] if isinstance(data["candidates"], list) else None
            finish = first.get("finishReason") if isinstance(first, dict) else None
            raise ProviderRejected(f"Gemini returned no text (finishReason={finish})", provider=str(self.provider))
        return text

    def _iter_deltas(self, resp: Any) -> Iterator[str]:
        # SSE: each event is 'data: {GenerateContentResponse}'
        for line in resp.iter_lines(decode_unicode=True):
            if not line or not line.startswith("data:"):
                continue
            data = line[5:].strip()
            try:
                obj = json.loads(data)
            except json.JSONDecodeError:
                logger.debug("GeminiAdapter: ignoring undecodable SSE line")
                continue
            if isinstance(obj, dict) and obj.get("error"):
                err = obj["error"]
                msg = err.get("message", "stream error") if isinstance(err, dict) else str(err)
                raise ProviderUnavailable(f"Gemini stream error: {msg}", provider=str(self.provider))
            if isinstance(obj, dict):
                yield self._candidate_text(obj)
