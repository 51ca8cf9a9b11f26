# adapters/base.py
from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterator, Optional, Tuple

import requests
from loguru import logger

from clio_ai.errors import (
    AuthError,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
    ProviderUnreachable,
    RateLimited,
)
from clio_ai.logging_decorators import log_call
from clio_ai.models import Provider
from clio_ai.turns import Turn

ERROR_EXCERPT_CHARS = 300


@dataclass(frozen=True)
class ProviderRequest:
    model_id: str
    turns: Tuple[Turn, ...]
    system_prompt: str = ""


@dataclass(frozen=True)
class ProviderResponse:
    text: str
    model_id: str
    provider: str


@dataclass(frozen=True)
class StreamChunk:
    text: str
    done: bool = False


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After is either delta-seconds or an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class ProviderAdapter:
    """
    Uniform request/response contract over one inference backend.

    Subclasses supply the wire shape (_url/_headers/_payload/_extract_text/
    _iter_deltas); this class owns the HTTP call, the status → error mapping
    and the stream contract: zero or more text chunks, then exactly one
    terminal event, either a chunk with done=True or a raised ProviderError.
    No retries happen here.
    """

    provider: Provider
    display_name = "provider"
    supports_streaming = True
    unreachable_hint = ""
    credential_hint = ""

    def __init__(self, *, http: Any = None):
        # anything with a requests-compatible .post(); the module itself by default
        self.http = http or requests

    # ---------------- wire-shape hooks ----------------

    def _url(self, request: ProviderRequest, stream: bool) -> str:
        raise NotImplementedError

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _payload(self, request: ProviderRequest, stream: bool) -> Dict[str, Any]:
        raise NotImplementedError

    def _extract_text(self, data: Any) -> str:
        raise NotImplementedError

    def _iter_deltas(self, resp: Any) -> Iterator[str]:
        raise NotImplementedError

    def _status_hint(self, status: int) -> str:
        return ""

    # ---------------- public API ----------------

    @log_call("adapter.send", level="DEBUG", slow_ms=15000)
    def send(self, request: ProviderRequest, *, timeout: float) -> ProviderResponse:
        """Blocking call returning the full text."""
        headers = self._headers()
        url = self._url(request, stream=False)
        payload = self._payload(request, stream=False)
        logger.info("{}.send → url='{}' model='{}' turns={}",
                    self.provider, self._loggable(url), request.model_id, len(request.turns))
        t0 = time.time()
        with self._transport_errors(timeout):
            resp = self.http.post(url, headers=headers, json=payload, timeout=timeout)
        dt = (time.time() - t0) * 1000.0
        logger.info("{}.send ← status={} time_ms≈{:.0f}", self.provider, resp.status_code, dt)
        self._raise_for_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            logger.error("{}.send: undecodable body: {}", self.provider, e)
            raise ProviderRejected(f"{self.display_name} returned a response that is not JSON",
                                   provider=str(self.provider)) from e
        text = self._extract_text(data)
        logger.debug("{}.send: content_len={}", self.provider, len(text))
        return ProviderResponse(text=text, model_id=request.model_id, provider=str(self.provider))

    def stream(self, request: ProviderRequest, *, timeout: float) -> Iterator[StreamChunk]:
        """
        Yield text chunks as they arrive, then a final StreamChunk(done=True).
        `timeout` bounds the whole stream, not just each read.
        """
        if not self.supports_streaming:
            response = self.send(request, timeout=timeout)
            if response.text:
                yield StreamChunk(response.text)
            yield StreamChunk("", done=True)
            return

        deadline = time.monotonic() + timeout
        headers = self._headers()
        url = self._url(request, stream=True)
        payload = self._payload(request, stream=True)
        logger.info("{}.stream → url='{}' model='{}' turns={}",
                    self.provider, self._loggable(url), request.model_id, len(request.turns))
        t0 = time.time()
        with self._transport_errors(timeout):
            resp = self.http.post(url, headers=headers, json=payload, stream=True, timeout=timeout)
        try:
            self._raise_for_status(resp)
            deltas = self._iter_deltas(resp)
            chars = 0
            while True:
                with self._transport_errors(timeout):
                    delta = next(deltas, None)
                if delta is None:
                    break
                if time.monotonic() > deadline:
                    logger.error("{}.stream: deadline of {:.0f}s exceeded", self.provider, timeout)
                    raise ProviderTimeout(
                        f"{self.display_name} did not finish within {timeout:.0f}s",
                        provider=str(self.provider),
                    )
                if delta:
                    chars += len(delta)
                    yield StreamChunk(delta)
            dt = (time.time() - t0) * 1000.0
            logger.info("{}.stream ✓ chars={} time_ms≈{:.0f}", self.provider, chars, dt)
            yield StreamChunk("", done=True)
        finally:
            close = getattr(resp, "close", None)
            if close:
                close()

    # ---------------- helpers ----------------

    @staticmethod
    def _loggable(url: str) -> str:
        return url.split("?", 1)[0]

    @contextmanager
    def _transport_errors(self, timeout: float):
        prov = str(self.provider)
        try:
            yield
        except requests.Timeout as e:
            logger.error("{}: timed out after {:.0f}s: {}", prov, timeout, e)
            raise ProviderTimeout(f"{self.display_name} did not answer within {timeout:.0f}s",
                                  provider=prov) from e
        except requests.ConnectionError as e:
            logger.error("{}: connection failed: {}", prov, e)
            raise ProviderUnreachable(
                f"Could not connect to {self.display_name}.{self.unreachable_hint}", provider=prov
            ) from e
        except requests.RequestException as e:
            logger.error("{}: transport error: {}", prov, e)
            raise ProviderUnavailable(f"{self.display_name} transport error: {e}", provider=prov) from e

    def _error_excerpt(self, resp: Any) -> str:
        try:
            data = resp.json()
        except ValueError:
            data = None
        msg = None
        if isinstance(data, dict):
            err = data.get("error")
            if isinstance(err, dict):
                msg = err.get("message")
            elif isinstance(err, str):
                msg = err
        if not msg:
            msg = (getattr(resp, "text", "") or "").replace("\n", " ").strip()
        if len(msg) > ERROR_EXCERPT_CHARS:
            msg = msg[:ERROR_EXCERPT_CHARS] + "..."
        return msg

    def _raise_for_status(self, resp: Any) -> None:
        status = resp.status_code
        if status < 400:
            return
        prov = str(self.provider)
        excerpt = self._error_excerpt(resp)
        detail = f": {excerpt}" if excerpt else ""
        logger.error("{}: HTTP {}{}", prov, status, detail)
        if status in (401, 403):
            raise AuthError(
                f"{self.display_name} rejected the credentials (HTTP {status}){detail}.{self.credential_hint}",
                provider=prov, status=status,
            )
        if status == 429:
            headers = getattr(resp, "headers", None) or {}
            raise RateLimited(
                f"{self.display_name} rate limit hit (HTTP 429){detail}",
                provider=prov, retry_after=parse_retry_after(headers.get("Retry-After")),
            )
        if status >= 500:
            raise ProviderUnavailable(f"{self.display_name} is unavailable (HTTP {status}){detail}",
                                      provider=prov, status=status)
        raise ProviderRejected(
            f"{self.display_name} rejected the request (HTTP {status}){detail}{self._status_hint(status)}",
            provider=prov, status=status,
        )
