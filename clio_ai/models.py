# models.py
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from clio_ai.errors import ModelNotFound


class Provider(str, Enum):
    GEMINI = "gemini"   # cloud, API key
    GROQ = "groq"       # cloud, API key (OpenAI-compatible)
    OLLAMA = "ollama"   # local server, no auth

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ModelSpec:
    id: str
    display_name: str
    provider: Provider

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ModelSpec":
        model_id = d.get("id") or d.get("name")
        if not model_id or not isinstance(model_id, str):
            raise ValueError(f"model entry has no id: {d}")
        m = cls(
            id=model_id,
            display_name=d.get("display_name") or model_id,
            provider=Provider(str(d.get("provider", "")).lower()),
        )
        logger.debug("ModelSpec.from_dict → id='{}', provider='{}'", m.id, m.provider)
        return m

    @property
    def requires_api_key(self) -> bool:
        return self.provider is not Provider.OLLAMA


DEFAULT_MODELS: List[ModelSpec] = [
    ModelSpec("gemini-3-flash-preview", "Gemini 3 Flash", Provider.GEMINI),
    ModelSpec("gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", Provider.GEMINI),
    ModelSpec("gemini-2.5-flash", "Gemini 2.5 Flash", Provider.GEMINI),
    ModelSpec("gemini-2.5-pro", "Gemini 2.5 Pro", Provider.GEMINI),
    ModelSpec("compound-beta", "Groq Compound", Provider.GROQ),
    ModelSpec("meta-llama/llama-4-scout-17b-16e-instruct", "Llama 4 Scout", Provider.GROQ),
    ModelSpec("llama3.2", "Llama 3.2 (Ollama)", Provider.OLLAMA),
]


class ModelRegistry:
    """
    Static catalog of selectable models, in declaration order.

    Extra models can be appended from a JSON file:
    {
      "models": [ {"id": "qwen2.5-coder", "display_name": "Qwen Coder", "provider": "ollama"} ]
    }
    """
    def __init__(self, specs: Optional[Iterable[ModelSpec]] = None):
        self.models: Dict[str, ModelSpec] = {}
        for spec in (DEFAULT_MODELS if specs is None else specs):
            self._add(spec)
        logger.debug("ModelRegistry ready with {} model(s)", len(self.models))

    def _add(self, spec: ModelSpec) -> None:
        if spec.id in self.models:
            logger.error("Duplicate model id '{}' in registry", spec.id)
            raise ValueError(f"Duplicate model id: {spec.id}")
        self.models[spec.id] = spec

    @classmethod
    def from_file(cls, path: str | Path, base: Optional[Iterable[ModelSpec]] = None) -> "ModelRegistry":
        reg = cls(base)
        reg.load(path)
        return reg

    def load(self, path: str | Path) -> int:
        cfg_path = Path(path)
        if not cfg_path.exists():
            logger.error("Model file not found at path='{}'", str(cfg_path.resolve()))
            raise FileNotFoundError(f"Model file not found at: {cfg_path.resolve()}")

        logger.info("Loading extra models from '{}'", str(cfg_path.resolve()))
        try:
            data = json.loads(cfg_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error("Failed to parse model file JSON: {}", e)
            raise

        entries = data.get("models") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            logger.error("Invalid model file: expected a 'models' array")
            raise ValueError("Invalid model file: expected a 'models' array.")

        loaded = 0
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("Skipping invalid model entry (not a dict): {}", entry)
                continue
            try:
                spec = ModelSpec.from_dict(entry)
            except ValueError as e:
                logger.warning("Skipping model entry: {}", e)
                continue
            self._add(spec)
            loaded += 1

        logger.info("ModelRegistry loaded {} extra model(s); total={}", loaded, len(self.models))
        return loaded

    def lookup(self, model_id: str) -> ModelSpec:
        spec = self.models.get((model_id or "").strip())
        if spec is None:
            logger.error("Requested model '{}' not found. Available: {}", model_id, ", ".join(self.models))
            raise ModelNotFound(model_id, list(self.models))
        logger.debug("ModelRegistry.lookup('{}') → {}", model_id, spec.provider)
        return spec

    def list(self) -> List[ModelSpec]:
        return list(self.models.values())

    def __contains__(self, model_id: object) -> bool:
        return model_id in self.models

    def __len__(self) -> int:
        return len(self.models)
