from __future__ import annotations

import logging
import os
import time
from typing import Any, Union

import httpx

from ..core.types import Usage
from .base import (
    GenerationError,
    ObjectResponse,
    TextResponse,
    build_messages,
    json_schema_for,
    merge_headers,
    retrying,
    schema_name,
    until_aborted,
    validate_object,
)

logger = logging.getLogger(__name__)

# lamp setting name -> chat completions field
_PARAM_MAP = {
    "max_tokens": "max_tokens",
    "temperature": "temperature",
    "top_p": "top_p",
    "presence_penalty": "presence_penalty",
    "frequency_penalty": "frequency_penalty",
    "stop_sequences": "stop",
    "seed": "seed",
}


class OpenAIAdapter:
    id = "openai"
    base_url = "https://api.openai.com/v1"
    provider_name = "OpenAI"

    def __init__(
        self,
        model: str,
        api_key_env: str = "OPENAI_API_KEY",
        client: Union[httpx.AsyncClient, None] = None,
    ) -> None:
        self.model = model
        self.id = f"{self.id}:{model}"
        self.api_key_env = api_key_env
        self.api_key = os.environ.get(api_key_env, "")
        if client is not None:
            self.client = client
            return
        proxy = os.environ.get("HTTPS_PROXY") or os.environ.get("HTTP_PROXY")
        if proxy:
            self.client = httpx.AsyncClient(base_url=self.base_url, proxy=proxy)
        else:
            self.client = httpx.AsyncClient(base_url=self.base_url)

    async def aclose(self) -> None:
        await self.client.aclose()

    def _payload(self, messages: list[dict[str, str]], params: dict) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self.model, "messages": messages}
        for name, field in _PARAM_MAP.items():
            if params.get(name) is not None:
                payload[field] = params[name]
        if params.get("top_k") is not None:
            logger.debug("%s does not support top_k, ignoring it", self.provider_name)
        return payload

    async def _complete(self, payload: dict[str, Any], params: dict) -> tuple[dict, int]:
        headers = merge_headers({"Authorization": f"Bearer {self.api_key}"}, params)
        start = time.perf_counter()
        async for attempt in retrying(params):
            with attempt:
                try:
                    resp = await until_aborted(
                        self.client.post("/chat/completions", json=payload, headers=headers, timeout=60),
                        params.get("abort_signal"),
                    )
                    resp.raise_for_status()
                except httpx.HTTPStatusError as e:
                    raise GenerationError(
                        self._format_api_error(e.response), status_code=e.response.status_code
                    ) from e
                except httpx.HTTPError as e:
                    raise GenerationError(
                        f"{self.provider_name} API request failed for model '{self.model}': {e}"
                    ) from e
        latency_ms = int((time.perf_counter() - start) * 1000)
        return resp.json(), latency_ms

    @staticmethod
    def _usage(data: dict) -> Usage:
        usage = data.get("usage") or {}
        return Usage.from_counts(usage.get("prompt_tokens"), usage.get("completion_tokens"))

    @staticmethod
    def _content(data: dict) -> str:
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"Unexpected completion payload: {data!r:.200}") from e

    async def generate_text(
        self, prompt: str, *, system: Union[str, None] = None, params: Union[dict, None] = None
    ) -> TextResponse:
        params = params or {}
        payload = self._payload(build_messages(prompt, system), params)
        data, latency_ms = await self._complete(payload, params)
        return TextResponse(text=self._content(data), usage=self._usage(data), latency_ms=latency_ms)

    async def generate_object(
        self,
        prompt: str,
        schema: Any,
        *,
        system: Union[str, None] = None,
        params: Union[dict, None] = None,
    ) -> ObjectResponse:
        params = params or {}
        payload = self._payload(build_messages(prompt, system), params)
        payload["response_format"] = {
            "type": "json_schema",
            "json_schema": {"name": schema_name(schema), "schema": json_schema_for(schema)},
        }
        data, latency_ms = await self._complete(payload, params)
        obj = validate_object(schema, self._content(data))
        return ObjectResponse(object=obj, usage=self._usage(data), latency_ms=latency_ms)

    def _format_api_error(self, response: httpx.Response) -> str:
        """Turn a provider error response into an actionable message."""
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
            return (
                f"Authentication failed for {self.provider_name} API. "
                f"Check your {self.api_key_env} environment variable.\n{message}"
            )
        if status == 404 and "model" in str(message).lower():
            return f"{self.provider_name} model '{self.model}' not found or not accessible.\n{message}"
        if status == 429:
            return f"Rate limit exceeded for {self.provider_name} API.\n{message}"
        return f"{self.provider_name} API error ({status}) for model '{self.model}': {message}"
