from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable
from typing import Any, Protocol, TypedDict, TypeVar, Union

from pydantic import TypeAdapter, ValidationError
from tenacity import AsyncRetrying, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from ..core.types import Usage

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2

T = TypeVar("T")


class TextResponse(TypedDict):
    text: str
    usage: Usage
    latency_ms: int


class ObjectResponse(TypedDict):
    object: Any
    usage: Usage
    latency_ms: int


class GenerationCapability(Protocol):
    id: str

    async def generate_text(
        self, prompt: str, *, system: Union[str, None] = None, params: Union[dict, None] = None
    ) -> TextResponse: ...

    async def generate_object(
        self,
        prompt: str,
        schema: Any,
        *,
        system: Union[str, None] = None,
        params: Union[dict, None] = None,
    ) -> ObjectResponse: ...


class GenerationError(Exception):
    """A provider call failed (HTTP error, bad payload, schema mismatch)."""

    def __init__(self, message: str, status_code: Union[int, None] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GenerationAborted(GenerationError):
    """The abort signal fired before the provider answered."""


def build_messages(prompt: str, system: Union[str, None] = None) -> list[dict[str, str]]:
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    return messages


def retrying(params: dict) -> AsyncRetrying:
    """Retry policy from the ``max_retries`` setting (0 disables retries)."""
    max_retries = params.get("max_retries")
    if max_retries is None:
        max_retries = DEFAULT_MAX_RETRIES
    return AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(min=1, max=4),
        retry=retry_if_not_exception_type(GenerationAborted),
        reraise=True,
    )


async def until_aborted(call: Awaitable[T], abort_signal: Union[asyncio.Event, None]) -> T:
    """Await ``call`` unless ``abort_signal`` is set first."""
    if abort_signal is None:
        return await call
    if abort_signal.is_set():
        if asyncio.iscoroutine(call):
            call.close()
        raise GenerationAborted("Request aborted before it was sent")

    request = asyncio.ensure_future(call)
    aborted = asyncio.ensure_future(abort_signal.wait())
    try:
        await asyncio.wait({request, aborted}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (request, aborted):
            if not task.done():
                task.cancel()
    if request.done() and not request.cancelled():
        return request.result()
    raise GenerationAborted("Request aborted")


def _type_adapter(schema: Any) -> TypeAdapter:
    return TypeAdapter(schema)


def json_schema_for(schema: Any) -> dict[str, Any]:
    """JSON schema for a pydantic-compatible type, or a raw schema dict as is."""
    if isinstance(schema, dict):
        return schema
    return _type_adapter(schema).json_schema()


def schema_name(schema: Any) -> str:
    if isinstance(schema, dict):
        return str(schema.get("title") or "response")
    return getattr(schema, "__name__", "response")


def validate_object(schema: Any, data: Any) -> Any:
    """Validate decoded JSON (or a JSON string) against ``schema``.

    Raw dict schemas are not validated, only decoded.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise GenerationError(f"Model did not return valid JSON: {e}") from e
    if isinstance(schema, dict):
        return data
    try:
        return _type_adapter(schema).validate_python(data)
    except ValidationError as e:
        raise GenerationError(f"Model output does not match schema '{schema_name(schema)}':\n{e}") from e


def merge_headers(base: dict[str, str], params: dict) -> dict[str, str]:
    headers = dict(base)
    extra = params.get("headers") or {}
    headers.update({k: v for k, v in extra.items() if v is not None})
    return headers
