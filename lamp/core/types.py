from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, prompt_tokens: Union[int, None], completion_tokens: Union[int, None]) -> "Usage":
        """Build a usage record, treating missing provider counts as zero."""
        prompt = prompt_tokens or 0
        completion = completion_tokens or 0
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


@dataclass(frozen=True)
class TextResult:
    text: str
    usage: Usage
    kind: Literal["text"] = "text"


@dataclass(frozen=True)
class ObjectResult:
    object: Any
    usage: Usage
    kind: Literal["object"] = "object"


InvocationResult = Union[TextResult, ObjectResult]


@dataclass(frozen=True)
class TestCase:
    input: tuple = field(default_factory=tuple)
    output: str = ""

    __test__ = False  # not a pytest class

    def __post_init__(self) -> None:
        if not isinstance(self.input, tuple):
            object.__setattr__(self, "input", tuple(self.input))

    @classmethod
    def coerce(cls, value: Union["TestCase", dict]) -> "TestCase":
        if isinstance(value, TestCase):
            return value
        if isinstance(value, dict):
            return cls(input=tuple(value.get("input", ())), output=str(value.get("output", "")))
        raise TypeError(f"Cannot build a test case from {type(value).__name__}")
