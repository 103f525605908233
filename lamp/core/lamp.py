"""Bind a model configuration and a prompt function into one async call.

    get_fruit = lamp(
        LampConfig.create(model, max_tokens=256, temperature=1.0),
        lambda n, color: f"Generate {n} kinds of {color} fruit as a comma-separated list.",
    )
    result = await get_fruit(3, "red")
    result.text, result.usage.total_tokens

A config carrying a ``schema`` produces an ObjectInvoker whose calls return
ObjectResult; otherwise a TextInvoker returning TextResult.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any, Union

from pydantic import BaseModel

from .output import ConsoleTraceSink, TraceSink, role_label
from .settings import LampConfig
from .types import ObjectResult, TextResult

logger = logging.getLogger(__name__)

PromptFunction = Callable[..., Union[str, Mapping[str, str]]]


def render_prompt(prompt_fn: PromptFunction, args: tuple) -> tuple[Union[str, None], str]:
    """Run the prompt function, returning ``(system, prompt)``."""
    prompts = prompt_fn(*args)
    if isinstance(prompts, str):
        return None, prompts
    if isinstance(prompts, Mapping) and "prompt" in prompts:
        return prompts.get("system"), prompts["prompt"]
    raise TypeError(
        "Prompt function must return a string or a mapping with 'system' and 'prompt', "
        f"got {type(prompts).__name__}"
    )


def _dump_object(obj: Any) -> str:
    if isinstance(obj, BaseModel):
        obj = obj.model_dump(mode="json")
    return json.dumps(obj, default=str)


def log_messages(sink: TraceSink, system: Union[str, None], user: str, output: str) -> None:
    sink.write_header("Prompt:")
    if system:
        sink.writeln(f"{role_label('system')} {system}")
        sink.writeln("")
    sink.writeln(f"{role_label('user')} {user}")
    sink.write_header("Output:")
    sink.writeln(output)


class _Invoker:
    def __init__(
        self,
        config: LampConfig,
        prompt_fn: PromptFunction,
        trace: Union[TraceSink, None] = None,
    ) -> None:
        self.config = config
        self.prompt_fn = prompt_fn
        if trace is None and config.debug:
            trace = ConsoleTraceSink()
        self.trace = trace
        self._params = config.settings.to_params()

    @property
    def model(self):
        return self.config.model

    def _trace(self, system: Union[str, None], prompt: str, output: str) -> None:
        if self.config.debug and self.trace is not None:
            log_messages(self.trace, system, prompt, output)


class TextInvoker(_Invoker):
    async def __call__(self, *args: Any) -> TextResult:
        system, prompt = render_prompt(self.prompt_fn, args)
        logger.debug("Generating text with %s", getattr(self.model, "id", self.model))
        response = await self.model.generate_text(prompt, system=system, params=dict(self._params))
        result = TextResult(text=response["text"], usage=response["usage"])
        self._trace(system, prompt, result.text)
        return result


class ObjectInvoker(_Invoker):
    def __init__(
        self,
        config: LampConfig,
        prompt_fn: PromptFunction,
        trace: Union[TraceSink, None] = None,
    ) -> None:
        if config.schema is None:
            raise ValueError("An object invoker needs a schema")
        super().__init__(config, prompt_fn, trace)

    async def __call__(self, *args: Any) -> ObjectResult:
        system, prompt = render_prompt(self.prompt_fn, args)
        logger.debug("Generating object with %s", getattr(self.model, "id", self.model))
        response = await self.model.generate_object(
            prompt, self.config.schema, system=system, params=dict(self._params)
        )
        result = ObjectResult(object=response["object"], usage=response["usage"])
        self._trace(system, prompt, _dump_object(result.object))
        return result


def new_text_invoker(
    config: LampConfig, prompt_fn: PromptFunction, trace: Union[TraceSink, None] = None
) -> TextInvoker:
    return TextInvoker(config, prompt_fn, trace)


def new_object_invoker(
    config: LampConfig, prompt_fn: PromptFunction, trace: Union[TraceSink, None] = None
) -> ObjectInvoker:
    return ObjectInvoker(config, prompt_fn, trace)


def lamp(
    config: LampConfig, prompt_fn: PromptFunction, trace: Union[TraceSink, None] = None
) -> Union[TextInvoker, ObjectInvoker]:
    """Pick the invoker kind once, from the presence of ``config.schema``."""
    if config.schema is not None:
        return new_object_invoker(config, prompt_fn, trace)
    return new_text_invoker(config, prompt_fn, trace)
