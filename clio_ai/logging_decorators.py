# logging_decorators.py
from __future__ import annotations

import functools
import inspect
import time
from typing import Any, Callable, Dict, Iterable

from loguru import logger

_REDACT_DEFAULT = {"api_key", "authorization", "x-goog-api-key", "password", "token", "secret"}


def _redact(obj: Any, redact_keys: set[str], max_len: int, max_items: int) -> Any:
    """Lightweight redaction + truncation for logs."""
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            if str(k).lower() in redact_keys:
                out[k] = "******"
            else:
                out[k] = _redact(v, redact_keys, max_len, max_items)
        return out
    if isinstance(obj, (list, tuple, set)):
        seq = list(obj)
        cut = min(len(seq), max_items)
        trimmed = [_redact(x, redact_keys, max_len, max_items) for x in seq[:cut]]
        if len(seq) > cut:
            trimmed.append(f"... (+{len(seq) - cut} more)")
        return trimmed if not isinstance(obj, tuple) else tuple(trimmed)
    if isinstance(obj, str):
        return obj if len(obj) <= max_len else (obj[:max_len] + f"...(+{len(obj) - max_len} chars)")
    text = repr(obj)
    return text if len(text) <= max_len else text[:max_len] + "..."


def _default_summary(ret: Any) -> Dict[str, Any]:
    """Summarize common return values: execution results, provider responses, lists."""
    if isinstance(ret, list):
        return {"items": len(ret)}
    if hasattr(ret, "ok") and hasattr(ret, "error"):
        return {"ok": ret.ok, "error": str(ret.error) if ret.error else None}
    if hasattr(ret, "text") and isinstance(getattr(ret, "text"), str):
        return {"chars": len(ret.text)}
    if isinstance(ret, dict):
        return {"keys": list(ret.keys())[:6]}
    return {"type": type(ret).__name__}


def log_call(
    name: str | Callable | None = None,
    *,
    level: str = "DEBUG",
    slow_ms: int = 800,                # warn if slower than this
    redact: Iterable[str] = _REDACT_DEFAULT,
    arg_max_len: int = 200,
    arg_max_items: int = 20,
    summarize: Callable[[Any], Dict[str, Any]] | None = None,
):
    """
    Decorator to log entry/exit, args, duration, and failures.
    Usable bare (``@log_call``) or configured (``@log_call("name", slow_ms=...)``).
    """
    redact_keys = {str(k).lower() for k in redact}
    summary_fn = summarize or _default_summary

    def decorator(fn: Callable):
        if getattr(fn, "__logged__", False):
            return fn  # already wrapped

        qual = name if isinstance(name, str) else fn.__qualname__

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                sig = inspect.signature(fn)
                ba = sig.bind_partial(*args, **kwargs)
                call_args = {k: v for k, v in ba.arguments.items() if k not in {"self", "cls"}}
                call_args = _redact(call_args, redact_keys, arg_max_len, arg_max_items)
            except (TypeError, ValueError):
                call_args = "<uninspectable>"

            lg = logger.opt(depth=1)  # keep correct file:line
            lg.log(level, "→ {} args={}", qual, call_args)

            t0 = time.perf_counter()
            try:
                ret = fn(*args, **kwargs)
            except Exception as e:
                dur_ms = (time.perf_counter() - t0) * 1000.0
                lg.log(level, "✗ {} failed in {:.0f}ms: {}", qual, dur_ms, e)
                raise
            dur_ms = (time.perf_counter() - t0) * 1000.0
            summary = summary_fn(ret)
            if dur_ms >= slow_ms:
                lg.warning("✓ {} done in {:.0f}ms (SLOW) summary={}", qual, dur_ms, summary)
            else:
                lg.log(level, "✓ {} done in {:.0f}ms summary={}", qual, dur_ms, summary)
            return ret

        wrapper.__logged__ = True
        return wrapper

    if callable(name) and not isinstance(name, str):
        fn, name = name, None
        return decorator(fn)
    return decorator
