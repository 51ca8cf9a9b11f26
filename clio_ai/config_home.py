# config_home.py - clio-ai home, .env layering and session settings
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values
from loguru import logger

from clio_ai.errors import ConfigMissing
from clio_ai.models import Provider

# ---------- App home ----------

APP_DIR_NAME = ".clio-ai"
LEGACY_DIR_NAME = ".ai-cli"
ENV_FILE_NAME = ".env"

DEFAULT_MODEL = "gemini-3-flash-preview"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_TIMEOUT = 120.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_ROUNDS = 5

API_KEY_FOR_PROVIDER: Dict[Provider, str] = {
    Provider.GEMINI: "GEMINI_API_KEY",
    Provider.GROQ: "GROQ_API_KEY",
}

KNOWN_KEYS = (
    "GEMINI_API_KEY",
    "GROQ_API_KEY",
    "OLLAMA_URL",
    "MODEL",
    "CLIO_TIMEOUT",
    "CLIO_MAX_RETRIES",
    "CLIO_MAX_ROUNDS",
    "CLIO_MODELS_FILE",
    "CLIO_LOG_LEVEL",
)

ENV_SOURCE = "<environment>"


def app_dir(home: Optional[Path] = None) -> Path:
    return (home or Path.home()) / APP_DIR_NAME


def env_paths(cwd: Optional[Path] = None, home: Optional[Path] = None) -> List[Path]:
    """The .env files consulted, in priority order: ./.env, ~/.clio-ai/.env, ~/.ai-cli/.env."""
    base = home or Path.home()
    return [
        (cwd or Path.cwd()) / ENV_FILE_NAME,
        base / APP_DIR_NAME / ENV_FILE_NAME,
        base / LEGACY_DIR_NAME / ENV_FILE_NAME,
    ]


def default_log_file(home: Optional[Path] = None) -> Path:
    return app_dir(home) / "logs" / "clio.log"


# ---------- helpers ----------

def _read_env_file(p: Path) -> Dict[str, str]:
    if not p.is_file():
        return {}
    try:
        values = dotenv_values(p, encoding="utf-8")
    except OSError as e:
        logger.warning("Failed to read env file '{}': {}", str(p), e)
        return {}
    return {k: v for k, v in values.items() if v is not None and v.strip() != ""}


def _to_positive_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        logger.warning("Ignoring invalid number '{}' (using {})", value, default)
        return default
    return parsed if parsed > 0 else default


def _to_non_negative_int(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        logger.warning("Ignoring invalid integer '{}' (using {})", value, default)
        return default
    return parsed if parsed >= 0 else default


# ---------- Settings ----------

@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the resolved configuration for one process."""

    gemini_api_key: Optional[str] = None
    groq_api_key: Optional[str] = None
    ollama_url: str = DEFAULT_OLLAMA_URL
    model: str = DEFAULT_MODEL
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    max_rounds: int = DEFAULT_MAX_ROUNDS
    models_file: Optional[str] = None
    log_level: Optional[str] = None
    sources: Dict[str, str] = field(default_factory=dict)
    searched: List[Path] = field(default_factory=list)

    def api_key(self, provider: Provider) -> Optional[str]:
        if provider is Provider.GEMINI:
            return self.gemini_api_key
        if provider is Provider.GROQ:
            return self.groq_api_key
        return None

    def missing_key(self, provider: Provider) -> Optional[str]:
        """Name of the config key `provider` needs but lacks, if any."""
        key = API_KEY_FOR_PROVIDER.get(provider)
        if key and not self.api_key(provider):
            return key
        return None

    def require_api_key(self, provider: Provider) -> str:
        missing = self.missing_key(provider)
        if missing:
            logger.error("Config key '{}' missing for provider '{}'", missing, provider)
            raise ConfigMissing(missing, provider=str(provider))
        return self.api_key(provider) or ""

    def describe_sources(self) -> List[str]:
        """Human-readable report for /config."""
        lines = ["Config lookup order (first found wins per key):", f"  1. {ENV_SOURCE}"]
        for i, p in enumerate(self.searched, start=2):
            state = "found" if p.is_file() else "missing"
            lines.append(f"  {i}. {p} ({state})")
        if self.sources:
            lines.append("Resolved keys:")
            for key in sorted(self.sources):
                lines.append(f"  {key} ← {self.sources[key]}")
        for provider, key in API_KEY_FOR_PROVIDER.items():
            if key not in self.sources:
                lines.append(f"  {key} not set ({provider} models unavailable)")
        return lines


def resolve_settings(
    environ: Optional[Mapping[str, str]] = None,
    *,
    cwd: Optional[Path] = None,
    home: Optional[Path] = None,
) -> Settings:
    """
    Resolve every known key: process environment first, then each .env file
    from env_paths() in order. The first non-empty value wins per key.
    """
    env = os.environ if environ is None else environ
    searched = env_paths(cwd, home)

    layers: List[tuple[str, Mapping[str, str]]] = [(ENV_SOURCE, env)]
    for p in searched:
        values = _read_env_file(p)
        if values:
            logger.debug("config: loaded {} key(s) from '{}'", len(values), str(p))
        layers.append((str(p), values))

    resolved: Dict[str, str] = {}
    sources: Dict[str, str] = {}
    for key in KNOWN_KEYS:
        for source, values in layers:
            val = values.get(key)
            if val is not None and str(val).strip():
                resolved[key] = str(val).strip()
                sources[key] = source
                break

    settings = Settings(
        gemini_api_key=resolved.get("GEMINI_API_KEY"),
        groq_api_key=resolved.get("GROQ_API_KEY"),
        ollama_url=resolved.get("OLLAMA_URL", DEFAULT_OLLAMA_URL).rstrip("/"),
        model=resolved.get("MODEL", DEFAULT_MODEL),
        timeout=_to_positive_float(resolved.get("CLIO_TIMEOUT"), DEFAULT_TIMEOUT),
        max_retries=_to_non_negative_int(resolved.get("CLIO_MAX_RETRIES"), DEFAULT_MAX_RETRIES),
        max_rounds=max(1, _to_non_negative_int(resolved.get("CLIO_MAX_ROUNDS"), DEFAULT_MAX_ROUNDS)),
        models_file=resolved.get("CLIO_MODELS_FILE"),
        log_level=resolved.get("CLIO_LOG_LEVEL"),
        sources=sources,
        searched=searched,
    )
    logger.info(
        "Settings resolved → model='{}' ollama_url='{}' keys={}",
        settings.model, settings.ollama_url, sorted(k for k in sources if k.endswith("_API_KEY")),
    )
    return settings


__all__ = [
    "Settings",
    "resolve_settings",
    "env_paths",
    "app_dir",
    "default_log_file",
    "API_KEY_FOR_PROVIDER",
]
