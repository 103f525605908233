"""Built-in evaluator functions usable from suite files."""

from __future__ import annotations

import json
from collections.abc import Callable

from pydantic import BaseModel

from .types import InvocationResult, TestCase, TextResult


def response_text(result: InvocationResult) -> str:
    if isinstance(result, TextResult):
        return result.text
    obj = result.object
    if isinstance(obj, BaseModel):
        return obj.model_dump_json()
    return json.dumps(obj, default=str)


def no_score(test_case: TestCase, result: InvocationResult) -> float:
    return 0


def exact_match(test_case: TestCase, result: InvocationResult) -> float:
    return 1 if response_text(result).strip() == test_case.output.strip() else 0


def contains(test_case: TestCase, result: InvocationResult) -> float:
    return 1 if test_case.output.strip().lower() in response_text(result).lower() else 0


def count_items(test_case: TestCase, result: InvocationResult) -> float:
    """1 if the comma-separated answer has the expected number of items, else -1.

    The expected count is the test case output when set, otherwise the first input.
    """
    expected = int(test_case.output) if test_case.output.strip() else int(test_case.input[0])
    items = [item for item in response_text(result).split(",") if item.strip()]
    return 1 if len(items) == expected else -1


SCORERS: dict[str, Callable[[TestCase, InvocationResult], float]] = {
    "none": no_score,
    "exact": exact_match,
    "contains": contains,
    "count_items": count_items,
}


def get_scorer(name: str) -> Callable[[TestCase, InvocationResult], float]:
    try:
        return SCORERS[name]
    except KeyError:
        raise ValueError(f"Unknown scorer '{name}'. Choose one of: {', '.join(SCORERS)}") from None
