"""Resolve model ids such as ``anthropic:haiku`` into adapters."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..adapters.anthropic_adapter import AnthropicAdapter
from ..adapters.mock_adapter import MockAdapter
from ..adapters.openai_adapter import OpenAIAdapter
from ..adapters.openrouter_adapter import OpenRouterAdapter

PROVIDERS: dict[str, tuple[type, str]] = {
    "openai": (OpenAIAdapter, "OPENAI_API_KEY"),
    "anthropic": (AnthropicAdapter, "ANTHROPIC_API_KEY"),
    "openrouter": (OpenRouterAdapter, "OPENROUTER_API_KEY"),
}

DEFAULT_MODELS: list[dict[str, Any]] = [
    {"id": "anthropic:haiku", "model": "anthropic:claude-3-5-haiku-latest", "description": "Fast Claude"},
    {"id": "anthropic:sonnet", "model": "anthropic:claude-3-7-sonnet-latest", "description": "Balanced Claude"},
    {"id": "openai:mini", "model": "openai:gpt-4o-mini", "description": "Small GPT-4o"},
    {"id": "openai:gpt4o", "model": "openai:gpt-4o", "description": "GPT-4o"},
]


def use_mocks_from_env() -> bool:
    return os.environ.get("LAMP_ENV", "real").lower() == "mock"


class ModelConfig:
    """Configuration for a single model id."""

    def __init__(self, config_dict: dict):
        self.id = config_dict["id"]
        target = config_dict.get("model") or self.id
        if ":" not in target:
            raise ValueError(f"Model '{target}' must look like 'provider:model'")
        self.provider, self.model = target.split(":", 1)
        if self.provider not in PROVIDERS:
            raise ValueError(
                f"Unknown provider '{self.provider}' for model '{self.id}'. "
                f"Known providers: {', '.join(PROVIDERS)}"
            )
        self.api_key_env = config_dict.get("apiKeyEnv") or PROVIDERS[self.provider][1]
        self.description = config_dict.get("description", "")
        self.default_settings: dict[str, Any] = dict(config_dict.get("settings") or {})

    def is_available(self, use_mocks: bool = False) -> bool:
        """Check if this model is available (has API key or is in mock mode)."""
        if use_mocks:
            return True
        return bool(os.environ.get(self.api_key_env))

    def create_adapter(self, use_mocks: bool = False):
        if use_mocks:
            adapter = MockAdapter(model=self.id)
        else:
            adapter_cls, _ = PROVIDERS[self.provider]
            adapter = adapter_cls(model=self.model, api_key_env=self.api_key_env)
        adapter.id = self.id
        return adapter


class ModelConfigLoader:
    """Built-in aliases merged with an optional YAML file of model entries."""

    def __init__(self, config_path: Optional[Path] = None):
        if config_path is None:
            env_path = os.environ.get("LAMP_MODELS_FILE", "").strip()
            if env_path:
                config_path = Path(env_path)
            else:
                # Default to config/models.yaml relative to project root
                project_root = Path(__file__).parent.parent.parent
                config_path = project_root / "config" / "models.yaml"
        self.config_path = config_path
        self._models: Optional[Dict[str, ModelConfig]] = None

    def _load_config(self) -> None:
        entries = list(DEFAULT_MODELS)
        if self.config_path.exists():
            with self.config_path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
            user_models = data.get("models", []) if isinstance(data, dict) else []
            if not isinstance(user_models, list):
                raise ValueError(f"'models' in {self.config_path} must be a list")
            entries.extend(user_models)
        self._models = {}
        for entry in entries:
            model_config = ModelConfig(entry)
            self._models[model_config.id] = model_config

    @property
    def models(self) -> Dict[str, ModelConfig]:
        if self._models is None:
            self._load_config()
        return self._models

    def get_model(self, model_id: str) -> ModelConfig:
        """Known alias, or an ad hoc ``provider:model`` id."""
        return self.models.get(model_id) or ModelConfig({"id": model_id})

    def create_adapter(self, model_id: str, use_mocks: Optional[bool] = None):
        if use_mocks is None:
            use_mocks = use_mocks_from_env()
        return self.get_model(model_id).create_adapter(use_mocks)


model_config_loader = ModelConfigLoader()
