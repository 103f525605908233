"""Evaluation suites described in YAML.

Example::

    name: red-fruit
    model: anthropic:haiku
    settings: {max_tokens: 256, temperature: 1.0}
    system: You answer with bare comma-separated lists.
    prompt: Generate {0} kinds of {1} fruit as a comma-separated list.
    iterations: 2
    benchmark: true
    scorer: count_items
    test_cases:
      - input: [3, red]
        output: ""

Placeholders are ``str.format`` positional fields over the test case input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .evaluate import EvalConfig
from .lamp import PromptFunction
from .scorer import get_scorer
from .settings import LampConfig, ModelSettings
from .types import TestCase


@dataclass
class EvalSuite:
    name: str
    model: str
    prompt: str
    test_cases: list[TestCase]
    system: Optional[str] = None
    settings: dict[str, Any] = field(default_factory=dict)
    schema: Optional[dict[str, Any]] = None
    iterations: int = 1
    benchmark: bool = False
    scorer: str = "none"

    def prompt_function(self) -> PromptFunction:
        template, system = self.prompt, self.system

        def render(*args: Any) -> Union[str, dict[str, str]]:
            prompt = template.format(*args)
            if system:
                return {"system": system.format(*args), "prompt": prompt}
            return prompt

        return render

    def eval_config(self, **overrides: Any) -> EvalConfig:
        values: dict[str, Any] = {
            "iterations": self.iterations,
            "test_cases": tuple(self.test_cases),
            "evaluator": get_scorer(self.scorer),
            "benchmark": self.benchmark,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return EvalConfig(**values)

    def lamp_config(
        self, adapter, defaults: Optional[dict[str, Any]] = None, **settings: Any
    ) -> LampConfig:
        """Settings precedence: ``defaults`` < suite settings < keyword overrides."""
        merged = dict(defaults or {})
        merged.update(self.settings)
        merged.update({k: v for k, v in settings.items() if v is not None})
        return LampConfig(model=adapter, settings=ModelSettings(**merged), schema=self.schema)


def parse_suite(data: dict, name: str = "suite") -> EvalSuite:
    if not isinstance(data, dict):
        raise ValueError("Suite file must contain a mapping")
    missing = [key for key in ("model", "prompt", "test_cases") if key not in data]
    if missing:
        raise ValueError(f"Suite '{name}' is missing required keys: {', '.join(missing)}")
    raw_cases = data["test_cases"] or []
    if not isinstance(raw_cases, list):
        raise ValueError(f"Suite '{name}': test_cases must be a list")
    test_cases = []
    for idx, raw in enumerate(raw_cases, start=1):
        if not isinstance(raw, dict) or not isinstance(raw.get("input", []), list):
            raise ValueError(f"Suite '{name}': test case {idx} needs an 'input' list")
        test_cases.append(TestCase.coerce(raw))
    get_scorer(data.get("scorer", "none"))
    return EvalSuite(
        name=data.get("name", name),
        model=data["model"],
        prompt=data["prompt"],
        system=data.get("system"),
        settings=dict(data.get("settings") or {}),
        schema=data.get("schema"),
        iterations=int(data.get("iterations", 1)),
        benchmark=bool(data.get("benchmark", False)),
        scorer=data.get("scorer", "none"),
        test_cases=test_cases,
    )


def load_suite(path: Path) -> EvalSuite:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return parse_suite(data, name=path.stem)
