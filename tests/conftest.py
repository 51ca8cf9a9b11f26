from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional

import pytest

from clio_ai.adapters.base import ProviderResponse, StreamChunk
from clio_ai.config_home import Settings
from clio_ai.models import Provider


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        json_data: Any = None,
        *,
        text: str = "",
        headers: Optional[Dict[str, str]] = None,
        lines: Iterable[Any] = (),
    ) -> None:
        self.status_code = status_code
        self._json = json_data
        self.text = text or (json.dumps(json_data) if json_data is not None else "")
        self.headers = headers or {}
        self._lines = list(lines)
        self.closed = False

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("body is not JSON")
        return self._json

    def iter_lines(self, decode_unicode: bool = False):
        for line in self._lines:
            if isinstance(line, Exception):
                raise line
            yield line

    def close(self) -> None:
        self.closed = True


class FakeHTTP:
    """Stands in for the requests module: returns scripted responses in order."""

    def __init__(self, *responses: Any) -> None:
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def post(self, url: str, *, headers=None, json=None, stream=False, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "stream": stream, "timeout": timeout})
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class ScriptedAdapter:
    """Adapter double: each call pops the next scripted reply (text or exception)."""

    provider = Provider.GEMINI

    def __init__(self, *replies: Any) -> None:
        self.replies: List[Any] = list(replies)
        self.requests: List[Any] = []

    def _next(self, request: Any) -> Any:
        self.requests.append(request)
        item = self.replies.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def send(self, request: Any, *, timeout: float) -> ProviderResponse:
        text = self._next(request)
        return ProviderResponse(text=text, model_id=request.model_id, provider=str(self.provider))

    def stream(self, request: Any, *, timeout: float):
        item = self._next(request)
        chunks = item if isinstance(item, list) else [item]
        for c in chunks:
            if isinstance(c, BaseException):
                raise c
            yield StreamChunk(c)
        yield StreamChunk("", done=True)


@pytest.fixture
def settings() -> Settings:
    return Settings(gemini_api_key="g-key", groq_api_key="q-key")


@pytest.fixture
def sse():
    def build(*objs: Any, done: bool = False) -> List[str]:
        lines = []
        for o in objs:
            lines.append("data: " + json.dumps(o))
            lines.append("")
        if done:
            lines.append("data: [DONE]")
        return lines

    return build
