import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from lamp.adapters.mock_adapter import MockAdapter
from lamp.core.errors import InvalidInputError
from lamp.core.evaluate import EvalConfig, Evaluator, lamp_eval
from lamp.core.lamp import lamp
from lamp.core.settings import LampConfig
from lamp.core.types import TestCase, TextResult, Usage


def make_invoker(calls):
    async def invoke(*args):
        calls.append(args)
        n = len(calls)
        return TextResult(text=f"answer {n}", usage=Usage.from_counts(10 * n, n))

    return invoke


def test_defaults_are_merged_at_construction():
    evaluator = Evaluator()
    assert evaluator.config.iterations == 1
    assert evaluator.config.test_cases == ()
    assert evaluator.config.benchmark is False
    assert evaluator.config.evaluator(TestCase(), None) == 0


def test_overrides_replace_defaults():
    evaluator = Evaluator(iterations=3, test_cases=[{"input": [1], "output": "x"}])
    assert evaluator.config.iterations == 3
    assert evaluator.config.test_cases == (TestCase(input=(1,), output="x"),)


def test_iterations_must_be_positive():
    with pytest.raises(ValueError):
        EvalConfig(iterations=0)


def test_constant_scores_scenario():
    evaluator = lamp_eval(
        iterations=2,
        test_cases=[TestCase(input=(3, "red"), output="")],
        evaluator=lambda test_case, response: 1,
    )
    result = asyncio.run(evaluator.run(make_invoker([])))
    assert result.scores.values == [1, 1]
    assert result.scores.average == 1
    assert result.scores.std == 0


def test_series_lengths_and_trial_order():
    calls = []
    cases = [TestCase(input=(i, "red")) for i in range(3)]
    result = asyncio.run(lamp_eval(iterations=4, test_cases=cases, benchmark=True).run(make_invoker(calls)))

    total = 3 * 4
    assert len(result.scores.values) == total
    assert len(result.execution_times.values) == total
    assert len(result.prompt_tokens.values) == total
    assert len(result.completion_tokens.values) == total
    assert len(result.responses) == total
    assert calls == [(k // 4, "red") for k in range(total)]
    for k in range(total):
        test_case, iteration = result.trial(k)
        assert test_case is cases[k // 4]
        assert iteration == k % 4
        assert result.responses[k].text == f"answer {k + 1}"
        assert result.prompt_tokens.values[k] == 10 * (k + 1)
        assert result.completion_tokens.values[k] == k + 1


def test_usage_statistics():
    cases = [TestCase(input=("a",)), TestCase(input=("b",))]
    result = asyncio.run(lamp_eval(test_cases=cases).run(make_invoker([])))
    assert result.prompt_tokens.values == [10, 20]
    assert result.prompt_tokens.average == 15
    assert result.completion_tokens.max == 2
    assert result.completion_tokens.min == 1


def test_test_cases_are_echoed():
    cases = [TestCase(input=(1,), output="one"), TestCase(input=(2,), output="two")]
    result = asyncio.run(lamp_eval(test_cases=cases).run(make_invoker([])))
    assert result.test_cases == cases


def test_benchmark_disabled_leaves_execution_times_empty():
    result = asyncio.run(lamp_eval(test_cases=[TestCase(input=(1,))]).run(make_invoker([])))
    assert result.execution_times.values == []
    assert result.execution_times.average is None
    assert result.execution_times.std is None


def test_benchmark_records_non_negative_milliseconds():
    async def slow(*args):
        await asyncio.sleep(0.01)
        return TextResult(text="x", usage=Usage.from_counts(1, 1))

    result = asyncio.run(lamp_eval(iterations=2, test_cases=[TestCase()], benchmark=True).run(slow))
    assert len(result.execution_times.values) == 2
    assert all(t >= 5 for t in result.execution_times.values)
    assert result.execution_times.min >= 5


def test_zero_test_cases_raise_invalid_input():
    with pytest.raises(InvalidInputError):
        asyncio.run(Evaluator().run(make_invoker([])))


def test_async_evaluator_is_awaited():
    async def score(test_case, response):
        await asyncio.sleep(0)
        return len(response.text)

    result = asyncio.run(lamp_eval(test_cases=[TestCase()], evaluator=score).run(make_invoker([])))
    assert result.scores.values == [len("answer 1")]


def test_evaluator_receives_test_case_and_response():
    seen = []

    def score(test_case, response):
        seen.append((test_case.output, response.text))
        return 0.5

    cases = [TestCase(input=(1,), output="gold")]
    asyncio.run(lamp_eval(iterations=2, test_cases=cases, evaluator=score).run(make_invoker([])))
    assert seen == [("gold", "answer 1"), ("gold", "answer 2")]


def test_evaluator_fault_aborts_run():
    calls = []

    def score(test_case, response):
        raise RuntimeError("bad scorer")

    evaluator = lamp_eval(iterations=3, test_cases=[TestCase()], evaluator=score)
    with pytest.raises(RuntimeError, match="bad scorer"):
        asyncio.run(evaluator.run(make_invoker(calls)))
    assert len(calls) == 1


def test_invoker_fault_aborts_run():
    async def failing(*args):
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        asyncio.run(lamp_eval(test_cases=[TestCase()]).run(failing))


def test_trials_do_not_overlap():
    active = []
    overlaps = []

    async def invoke(*args):
        if active:
            overlaps.append(args)
        active.append(args)
        await asyncio.sleep(0)
        active.pop()
        return TextResult(text="x", usage=Usage())

    asyncio.run(lamp_eval(iterations=3, test_cases=[TestCase(input=(1,)), TestCase(input=(2,))]).run(invoke))
    assert overlaps == []


def test_run_with_bound_invoker_and_count_evaluator():
    adapter = MockAdapter(text="apple, cherry, strawberry")
    get_fruit = lamp(
        LampConfig.create(adapter, max_tokens=256, temperature=1.0),
        lambda n, color: f"Generate {n} kinds of {color} fruit as a comma-separated list.",
    )

    def count_fruit(test_case, response):
        return 1 if len(response.text.split(",")) == test_case.input[0] else -1

    evaluator = lamp_eval(
        iterations=2,
        test_cases=[TestCase(input=(3, "red")), TestCase(input=(5, "yellow"))],
        evaluator=count_fruit,
        benchmark=True,
    )
    result = evaluator.run_sync(get_fruit)
    assert result.scores.values == [1, 1, -1, -1]
    assert result.scores.average == 0
    assert result.scores.std == 1
    assert adapter.calls[2]["prompt"] == "Generate 5 kinds of yellow fruit as a comma-separated list."
    assert adapter.calls[0]["params"] == {"max_tokens": 256, "temperature": 1.0}


def test_abort_signal_ends_the_whole_run():
    from lamp.adapters.base import GenerationAborted

    async def _run():
        abort = asyncio.Event()
        calls = []

        def score(test_case, response):
            calls.append(response)
            abort.set()
            return 1

        get_fruit = lamp(LampConfig.create(MockAdapter(), abort_signal=abort), lambda color: f"A {color} fruit?")
        evaluator = lamp_eval(iterations=3, test_cases=[TestCase(input=("red",))], evaluator=score)
        try:
            await evaluator.run(get_fruit)
        finally:
            assert len(calls) == 1

    with pytest.raises(GenerationAborted):
        asyncio.run(_run())
