from __future__ import annotations

import os
import time
from typing import Any, Union

import httpx

from ..core.types import Usage
from .base import (
    GenerationError,
    ObjectResponse,
    TextResponse,
    json_schema_for,
    merge_headers,
    retrying,
    until_aborted,
    validate_object,
)

DEFAULT_MAX_TOKENS = 1024
OBJECT_TOOL_NAME = "json"

_PARAM_MAP = {
    "temperature": "temperature",
    "top_p": "top_p",
    "top_k": "top_k",
    "stop_sequences": "stop_sequences",
}


class AnthropicAdapter:
    id = "anthropic"

    def __init__(
        self,
        model: str,
        api_key_env: str = "ANTHROPIC_API_KEY",
        client: Union[httpx.AsyncClient, None] = None,
    ) -> None:
        self.model = model
        self.id = f"{self.id}:{model}"
        self.api_key_env = api_key_env
        self.api_key = os.environ.get(api_key_env, "")
        self.client = client or httpx.AsyncClient(base_url="https://api.anthropic.com/v1")

    async def aclose(self) -> None:
        await self.client.aclose()

    def _payload(self, prompt: str, system: Union[str, None], params: dict) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": DEFAULT_MAX_TOKENS if params.get("max_tokens") is None else params["max_tokens"],
        }
        if system:
            payload["system"] = system
        for name, field in _PARAM_MAP.items():
            if params.get(name) is not None:
                payload[field] = params[name]
        return payload

    async def _complete(self, payload: dict[str, Any], params: dict) -> tuple[dict, int]:
        headers = merge_headers(
            {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
            params,
        )
        start = time.perf_counter()
        async for attempt in retrying(params):
            with attempt:
                try:
                    resp = await until_aborted(
                        self.client.post("/messages", json=payload, headers=headers, timeout=60),
                        params.get("abort_signal"),
                    )
                    resp.raise_for_status()
                except httpx.HTTPStatusError as e:
                    raise GenerationError(
                        self._format_api_error(e.response), status_code=e.response.status_code
                    ) from e
                except httpx.HTTPError as e:
                    raise GenerationError(
                        f"Anthropic API request failed for model '{self.model}': {e}"
                    ) from e
        latency_ms = int((time.perf_counter() - start) * 1000)
        return resp.json(), latency_ms

    @staticmethod
    def _usage(data: dict) -> Usage:
        usage = data.get("usage") or {}
        return Usage.from_counts(usage.get("input_tokens"), usage.get("output_tokens"))

    async def generate_text(
        self, prompt: str, *, system: Union[str, None] = None, params: Union[dict, None] = None
    ) -> TextResponse:
        params = params or {}
        data, latency_ms = await self._complete(self._payload(prompt, system, params), params)
        text = "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )
        return TextResponse(text=text, usage=self._usage(data), latency_ms=latency_ms)

    async def generate_object(
        self,
        prompt: str,
        schema: Any,
        *,
        system: Union[str, None] = None,
        params: Union[dict, None] = None,
    ) -> ObjectResponse:
        params = params or {}
        payload = self._payload(prompt, system, params)
        # Structured output is forced through a single tool call.
        payload["tools"] = [
            {
                "name": OBJECT_TOOL_NAME,
                "description": "Respond with a JSON object matching this schema.",
                "input_schema": json_schema_for(schema),
            }
        ]
        payload["tool_choice"] = {"type": "tool", "name": OBJECT_TOOL_NAME}
        data, latency_ms = await self._complete(payload, params)
        for block in data.get("content", []):
            if block.get("type") == "tool_use":
                obj = validate_object(schema, block.get("input"))
                return ObjectResponse(object=obj, usage=self._usage(data), latency_ms=latency_ms)
        raise GenerationError(f"Anthropic model '{self.model}' returned no tool_use block")

    def _format_api_error(self, response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        error = payload.get("error") if isinstance(payload, dict) else None
        if not isinstance(error, dict):
            error = {}
        message = error.get("message") or response.text[:200]
        status = response.status_code
        if status == 401:
            return f"Authentication failed for Anthropic API. Check your {self.api_key_env} environment variable.\n{message}"
        if status == 404:
            return f"Anthropic model '{self.model}' not found.\n{message}"
        if status in (429, 529):
            return f"Anthropic API is rate limited or overloaded ({status}).\n{message}"
        return f"Anthropic API error ({status}) for model '{self.model}': {message}"
