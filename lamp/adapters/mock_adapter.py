from __future__ import annotations

import time
from typing import Any, Union

from ..core.types import Usage
from .base import ObjectResponse, TextResponse, json_schema_for, until_aborted, validate_object

_EMPTY_BY_TYPE: dict[str, Any] = {
    "string": "",
    "integer": 0,
    "number": 0,
    "boolean": False,
    "array": [],
    "null": None,
}


def _count_tokens(*texts: Union[str, None]) -> int:
    return sum(len(t.split()) for t in texts if t)


def placeholder_for(schema: dict[str, Any], defs: Union[dict[str, Any], None] = None) -> Any:
    """Smallest value shaped like a JSON schema: empty strings, zeros, empty lists."""
    defs = defs if defs is not None else schema.get("$defs", {})
    ref = schema.get("$ref")
    if ref:
        return placeholder_for(defs[ref.rsplit("/", 1)[-1]], defs)
    if "default" in schema:
        return schema["default"]
    if "const" in schema:
        return schema["const"]
    if schema.get("enum"):
        return schema["enum"][0]
    for key in ("anyOf", "oneOf", "allOf"):
        if schema.get(key):
            return placeholder_for(schema[key][0], defs)
    kind = schema.get("type", "object")
    if isinstance(kind, list):
        kind = kind[0]
    if kind == "object":
        return {name: placeholder_for(prop, defs) for name, prop in schema.get("properties", {}).items()}
    return _EMPTY_BY_TYPE.get(kind)


class MockAdapter:
    """Simple adapter that returns canned responses for testing.

    Without a canned ``obj``, object mode answers with a placeholder built
    from the schema so offline runs of object suites still complete.
    """

    def __init__(
        self,
        model: str = "mock",
        text: str = "Mock response.",
        obj: Any = None,
    ) -> None:
        self.id = f"mock:{model}"
        self.text = text
        self.obj = obj
        self.calls: list[dict[str, Any]] = []

    async def _reply(self, value: Any) -> Any:
        return value

    async def generate_text(
        self, prompt: str, *, system: Union[str, None] = None, params: Union[dict, None] = None
    ) -> TextResponse:
        params = params or {}
        start = time.perf_counter()
        self.calls.append({"system": system, "prompt": prompt, "params": params})
        text = await until_aborted(self._reply(self.text), params.get("abort_signal"))
        latency_ms = int((time.perf_counter() - start) * 1000)
        return TextResponse(
            text=text,
            usage=Usage.from_counts(_count_tokens(system, prompt), _count_tokens(text)),
            latency_ms=latency_ms,
        )

    async def generate_object(
        self,
        prompt: str,
        schema: Any,
        *,
        system: Union[str, None] = None,
        params: Union[dict, None] = None,
    ) -> ObjectResponse:
        params = params or {}
        start = time.perf_counter()
        self.calls.append({"system": system, "prompt": prompt, "schema": schema, "params": params})
        raw = self.obj if self.obj is not None else placeholder_for(json_schema_for(schema))
        raw = await until_aborted(self._reply(raw), params.get("abort_signal"))
        obj = validate_object(schema, raw)
        latency_ms = int((time.perf_counter() - start) * 1000)
        completion = raw if isinstance(raw, str) else str(raw)
        return ObjectResponse(
            object=obj,
            usage=Usage.from_counts(_count_tokens(system, prompt), _count_tokens(completion)),
            latency_ms=latency_ms,
        )
