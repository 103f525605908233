"""Repeated-trial evaluation of a bound invoker over labeled test cases."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Any, Union

from .stats import describe
from .types import InvocationResult, TestCase

logger = logging.getLogger(__name__)

Score = Union[int, float]
EvaluatorFunction = Callable[[TestCase, Any], Union[Score, Awaitable[Score]]]
InvokerFunction = Callable[..., Awaitable[InvocationResult]]


def _zero(test_case: TestCase, response: Any) -> Score:
    return 0


@dataclass(frozen=True)
class EvalConfig:
    iterations: int = 1
    test_cases: tuple[TestCase, ...] = ()
    evaluator: EvaluatorFunction = _zero
    benchmark: bool = False

    def __post_init__(self) -> None:
        if self.iterations < 1:
            raise ValueError("iterations must be at least 1")
        object.__setattr__(self, "test_cases", tuple(TestCase.coerce(tc) for tc in self.test_cases))


@dataclass
class SeriesSummary:
    values: list[float] = field(default_factory=list)
    average: Union[float, None] = None
    median: Union[float, None] = None
    std: Union[float, None] = None
    max: Union[float, None] = None
    min: Union[float, None] = None

    @classmethod
    def from_values(cls, values: list[float]) -> "SeriesSummary":
        stats = describe(values)
        return cls(
            values=values,
            average=stats.average,
            median=stats.median,
            std=stats.std,
            max=stats.max,
            min=stats.min,
        )


@dataclass
class EvalResult:
    scores: SeriesSummary
    execution_times: SeriesSummary
    prompt_tokens: SeriesSummary
    completion_tokens: SeriesSummary
    responses: list[InvocationResult]
    test_cases: list[TestCase]
    iterations: int = 1

    def trial(self, index: int) -> tuple[TestCase, int]:
        """Test case and iteration number that produced entry ``index``."""
        return self.test_cases[index // self.iterations], index % self.iterations


class Evaluator:
    def __init__(self, config: Union[EvalConfig, None] = None, **overrides: Any) -> None:
        config = config or EvalConfig()
        if overrides:
            config = replace(config, **overrides)
        self.config = config

    async def _score(self, test_case: TestCase, result: InvocationResult) -> Score:
        score = self.config.evaluator(test_case, result)
        if inspect.isawaitable(score):
            score = await score
        return score

    async def run(self, fn: InvokerFunction) -> EvalResult:
        config = self.config
        test_cases = list(config.test_cases)
        scores: list[float] = []
        responses: list[InvocationResult] = []
        prompt_tokens: list[float] = []
        completion_tokens: list[float] = []
        execution_times: list[float] = []

        logger.info(
            "Evaluating %d test case(s) x %d iteration(s)", len(test_cases), config.iterations
        )
        for case_index, test_case in enumerate(test_cases):
            for i in range(config.iterations):
                start = time.perf_counter()
                result = await fn(*test_case.input)
                elapsed_ms = (time.perf_counter() - start) * 1000

                responses.append(result)
                prompt_tokens.append(result.usage.prompt_tokens)
                completion_tokens.append(result.usage.completion_tokens)
                if config.benchmark:
                    execution_times.append(elapsed_ms)

                score = await self._score(test_case, result)
                scores.append(score)
                logger.debug(
                    "Trial %d.%d scored %s (%d prompt / %d completion tokens)",
                    case_index,
                    i,
                    score,
                    result.usage.prompt_tokens,
                    result.usage.completion_tokens,
                )

        return EvalResult(
            scores=SeriesSummary.from_values(scores),
            execution_times=(
                SeriesSummary.from_values(execution_times)
                if config.benchmark
                else SeriesSummary(values=execution_times)
            ),
            prompt_tokens=SeriesSummary.from_values(prompt_tokens),
            completion_tokens=SeriesSummary.from_values(completion_tokens),
            responses=responses,
            test_cases=test_cases,
            iterations=config.iterations,
        )

    def run_sync(self, fn: InvokerFunction) -> EvalResult:
        return asyncio.run(self.run(fn))


def lamp_eval(
    iterations: int = 1,
    test_cases: Iterable[Union[TestCase, dict]] = (),
    evaluator: EvaluatorFunction = _zero,
    benchmark: bool = False,
) -> Evaluator:
    return Evaluator(
        EvalConfig(
            iterations=iterations,
            test_cases=tuple(test_cases),
            evaluator=evaluator,
            benchmark=benchmark,
        )
    )
