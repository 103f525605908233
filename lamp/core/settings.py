"""Model configuration shared by every invocation of a bound prompt."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, fields
from typing import Any, Union

from ..adapters.base import GenerationCapability


@dataclass(frozen=True)
class ModelSettings:
    """Generation settings forwarded to the adapter.

    Every field is optional. Unset fields are left out of the request so the
    adapter's own defaults apply. ``debug`` only controls tracing and is never
    forwarded.
    """

    max_tokens: Union[int, None] = None
    temperature: Union[float, None] = None
    top_p: Union[float, None] = None
    top_k: Union[int, None] = None
    presence_penalty: Union[float, None] = None
    frequency_penalty: Union[float, None] = None
    stop_sequences: Union[tuple[str, ...], None] = None
    seed: Union[int, None] = None
    max_retries: Union[int, None] = None
    abort_signal: Union[asyncio.Event, None] = None
    headers: Union[dict[str, str], None] = None
    debug: bool = False

    def __post_init__(self) -> None:
        if self.stop_sequences is not None and not isinstance(self.stop_sequences, tuple):
            object.__setattr__(self, "stop_sequences", tuple(self.stop_sequences))
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError("max_retries must be zero or greater")

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "debug":
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name == "stop_sequences":
                value = list(value)
            elif f.name == "headers":
                value = dict(value)
            params[f.name] = value
        return params


@dataclass(frozen=True)
class LampConfig:
    model: GenerationCapability
    settings: ModelSettings = field(default_factory=ModelSettings)
    schema: Any = None

    @classmethod
    def create(cls, model: GenerationCapability, schema: Any = None, **settings: Any) -> "LampConfig":
        """Build a config from keyword settings, e.g. ``create(model, temperature=0.2)``."""
        return cls(model=model, settings=ModelSettings(**settings), schema=schema)

    @property
    def debug(self) -> bool:
        return self.settings.debug
