"""Descriptive statistics over a value series."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from .errors import InvalidInputError


@dataclass(frozen=True)
class Statistics:
    average: float
    median: float
    std: float
    max: float
    min: float


def describe(values: Sequence[float]) -> Statistics:
    """Return average, median, population std, max and min of ``values``.

    The input is not mutated; all figures are computed on a sorted copy.
    Raises InvalidInputError for an empty sequence.
    """
    if len(values) == 0:
        raise InvalidInputError("Input sequence is empty")

    ordered = sorted(values)
    count = len(ordered)

    average = sum(ordered) / count

    middle = count // 2
    if count % 2 == 0:
        median = (ordered[middle - 1] + ordered[middle]) / 2
    else:
        median = ordered[middle]

    variance = sum((value - average) ** 2 for value in ordered) / count
    std = math.sqrt(variance)

    return Statistics(
        average=average,
        median=median,
        std=std,
        max=ordered[-1],
        min=ordered[0],
    )
