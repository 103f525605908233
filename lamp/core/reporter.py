from __future__ import annotations

from pathlib import Path
from typing import Union

import pandas as pd

from .evaluate import EvalResult, SeriesSummary
from .scorer import response_text

METRICS = (
    ("Score", "scores"),
    ("Execution time (ms)", "execution_times"),
    ("Prompt tokens", "prompt_tokens"),
    ("Completion tokens", "completion_tokens"),
)


def _fmt(value: Union[float, None]) -> str:
    if value is None:
        return "-"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}"


def _cell(text: str, width: int = 60) -> str:
    text = " ".join(text.split()).replace("|", "\\|")
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def render_summary_table(result: EvalResult) -> str:
    lines = [
        "| Metric | Average | Median | Std | Min | Max | N |",
        "|--------|---------|--------|-----|-----|-----|---|",
    ]
    for label, attr in METRICS:
        series: SeriesSummary = getattr(result, attr)
        lines.append(
            f"| {label} | {_fmt(series.average)} | {_fmt(series.median)} | {_fmt(series.std)} "
            f"| {_fmt(series.min)} | {_fmt(series.max)} | {len(series.values)} |"
        )
    return "\n".join(lines)


def results_frame(result: EvalResult) -> pd.DataFrame:
    """One row per trial, in trial order."""
    times = result.execution_times.values
    rows = []
    for k, response in enumerate(result.responses):
        test_case, iteration = result.trial(k)
        rows.append(
            {
                "trial": k,
                "test_case": k // result.iterations,
                "iteration": iteration,
                "input": ", ".join(str(arg) for arg in test_case.input),
                "expected": test_case.output,
                "output": response_text(response),
                "score": result.scores.values[k],
                "prompt_tokens": result.prompt_tokens.values[k],
                "completion_tokens": result.completion_tokens.values[k],
                "execution_ms": times[k] if k < len(times) else None,
            }
        )
    return pd.DataFrame(rows)


def render_trials_table(result: EvalResult) -> str:
    df = results_frame(result)
    lines = [
        "| # | Input | Iteration | Score | Tokens (in/out) | Output |",
        "|---|-------|-----------|-------|-----------------|--------|",
    ]
    for _, row in df.iterrows():
        lines.append(
            f"| {row['trial']} | {_cell(row['input'], 30)} | {row['iteration']} | {_fmt(row['score'])} "
            f"| {row['prompt_tokens']}/{row['completion_tokens']} | {_cell(row['output'])} |"
        )
    return "\n".join(lines)


def render_report(result: EvalResult, title: str = "Evaluation") -> str:
    md_lines = [f"# {title}", "", "## Summary", render_summary_table(result)]
    md_lines += ["", "## Trials", render_trials_table(result)]
    return "\n".join(md_lines)


def write_trials_csv(path: Path, result: EvalResult) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    results_frame(result).to_csv(path, index=False)
