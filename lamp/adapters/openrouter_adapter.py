from __future__ import annotations

from typing import Union

import httpx

from .openai_adapter import OpenAIAdapter

OPENROUTER_PREFIX = "openrouter:"


def strip_prefix(model_id: str) -> str:
    if model_id.startswith(OPENROUTER_PREFIX):
        return model_id[len(OPENROUTER_PREFIX) :]
    return model_id


class OpenRouterAdapter(OpenAIAdapter):
    """OpenAI-compatible chat completions served by OpenRouter."""

    id = "openrouter"
    base_url = "https://openrouter.ai/api/v1"
    provider_name = "OpenRouter"

    def __init__(
        self,
        model: str,
        api_key_env: str = "OPENROUTER_API_KEY",
        client: Union[httpx.AsyncClient, None] = None,
    ) -> None:
        super().__init__(strip_prefix(model), api_key_env=api_key_env, client=client)
