# logging_setup.py
from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from clio_ai.config_home import default_log_file

# -----------------------------
# Globals
# -----------------------------
_SINK_IDS: list[int] = []
_LAST_CFG = {
    "console": False,
    "log_file": None,
    "rotation": "5 MB",
    "retention": 10,  # keep last 10 files
    "enqueue": False,
    "backtrace": False,
    "diagnose": False,
}
_DEFAULT_FMT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "{level:<7} | "
    "{name}:{line} | "
    "{message}"
)

_VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


# -----------------------------
# Helpers
# -----------------------------
def _resolve_level(level: Optional[str]) -> str:
    """Normalize level: prefer explicit arg, else env CLIO_LOG_LEVEL, else INFO."""
    val = (level or os.getenv("CLIO_LOG_LEVEL") or "INFO").strip().upper()
    if val not in _VALID_LEVELS:
        aliases = {"WARN": "WARNING"}
        val = aliases.get(val, val)
    return val if val in _VALID_LEVELS else "INFO"


def _normalize_retention(value: Union[int, str]) -> Union[int, str]:
    """
    Accept:
      - int  → number of files
      - "10 files" → coerced to 10
      - duration strings (e.g., "7 days") → passed through
    """
    if isinstance(value, str):
        m = re.match(r"^(\d+)\s*files?$", value.strip().lower())
        if m:
            return int(m.group(1))
    return value


def _coerce_log_file(path_like: Optional[Union[str, Path]]) -> str:
    """
    If None, default to ~/.clio-ai/logs/clio.log.
    A path without suffix is treated as a directory. Ensures the parent exists.
    """
    if path_like is None:
        log_path = default_log_file()
    else:
        log_path = Path(path_like).expanduser()
        if log_path.suffix == "":
            log_path = log_path / "clio.log"

    log_path.parent.mkdir(parents=True, exist_ok=True)
    return str(log_path)


def _remove_existing_sinks():
    global _SINK_IDS
    try:
        for sid in _SINK_IDS:
            logger.remove(sid)
    finally:
        _SINK_IDS = []


def _reconfigure(level: str):
    """(Re)create console & file sinks based on _LAST_CFG."""
    global _SINK_IDS
    _remove_existing_sinks()

    if _LAST_CFG.get("console"):
        _SINK_IDS.append(
            logger.add(
                sys.stderr,
                level=level,
                format=_DEFAULT_FMT,
                enqueue=_LAST_CFG.get("enqueue", False),
                backtrace=_LAST_CFG.get("backtrace", False),
                diagnose=_LAST_CFG.get("diagnose", False),
            )
        )

    try:
        log_file = _coerce_log_file(_LAST_CFG.get("log_file"))
    except OSError as e:
        # an unwritable home is not fatal; keep whatever console sink we have
        logger.warning("File logging disabled: {}", e)
        return

    _SINK_IDS.append(
        logger.add(
            log_file,
            level=level,
            format=_DEFAULT_FMT,
            rotation=_LAST_CFG.get("rotation", "5 MB"),
            retention=_normalize_retention(_LAST_CFG.get("retention", 10)),
            encoding="utf-8",
            enqueue=_LAST_CFG.get("enqueue", False),
            backtrace=_LAST_CFG.get("backtrace", False),
            diagnose=_LAST_CFG.get("diagnose", False),
        )
    )


# -----------------------------
# Public API
# -----------------------------
def configure_logging(
    level: Optional[str] = None,
    *,
    console: bool = False,
    log_file: Optional[Union[str, Path]] = None,
    rotation: str = "5 MB",
    retention: Union[int, str] = 10,
    enqueue: bool = False,
    backtrace: bool = False,
    diagnose: bool = False,
) -> None:
    """
    Configure Loguru once at app start.

    The REPL owns the terminal, so console logging is off unless asked for
    (``--verbose``); everything still goes to the rotating log file.

    Args:
        level: "DEBUG"/"INFO"/"WARNING"/... (env fallback: CLIO_LOG_LEVEL)
        console: also log to stderr
        log_file: file path or directory (directory -> writes 'clio.log' inside)
        rotation: Loguru rotation policy (e.g., "5 MB", "1 day")
        retention: number of files (int) or duration string (e.g., "7 days")
    """
    # drop loguru's default stderr handler so it doesn't fight the REPL
    logger.remove()
    _LAST_CFG.update(
        dict(
            console=console,
            log_file=log_file,
            rotation=rotation,
            retention=retention,
            enqueue=enqueue,
            backtrace=backtrace,
            diagnose=diagnose,
        )
    )
    _reconfigure(_resolve_level(level))


def set_level(level: str) -> None:
    """Change level at runtime."""
    _reconfigure(_resolve_level(level))


def current_config() -> dict:
    """Peek at the active base config (without dynamic sink IDs)."""
    return {
        **_LAST_CFG,
        "level": _resolve_level(None),
        "sinks": len(_SINK_IDS),
    }
