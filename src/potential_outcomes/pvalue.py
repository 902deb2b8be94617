"""
p-value Module

Empirical p-values from accumulated permutation statistics.

The p-value is the fraction c/N of the N simulated statistics that are at
least as extreme as the observed statistic, with "extreme" defined by the
tail type. No +1 correction is applied.
"""

from enum import Enum
from typing import Sequence, Tuple

import numpy as np

from .exceptions import InvalidParameterError
from .teststats import to_statistic_kind


class PValueType(str, Enum):
    """Tail definition used to count extreme permutation statistics."""

    TWO_TAILED = 'two-tailed'
    LEFT_TAILED = 'left-tailed'
    RIGHT_TAILED = 'right-tailed'


def to_p_value_type(value) -> PValueType:
    """Coerce a tail type or its string value to :class:`PValueType`."""
    try:
        return PValueType(value)
    except ValueError:
        valid = [t.value for t in PValueType]
        raise InvalidParameterError(
            f"Unknown p-value type {value!r}. Must be one of {valid}"
        ) from None


def is_extreme(stat: float, observed: float, tail_type: PValueType) -> bool:
    """Whether one simulated statistic counts toward the p-value."""
    if tail_type == PValueType.TWO_TAILED:
        return abs(stat) >= abs(observed)
    if tail_type == PValueType.LEFT_TAILED:
        return stat <= observed
    return stat >= observed


def count_extreme(statistics: np.ndarray, observed: float, tail_type) -> int:
    """Vectorized count of extreme statistics."""
    tail_type = to_p_value_type(tail_type)
    statistics = np.asarray(statistics, dtype=float)
    if tail_type == PValueType.TWO_TAILED:
        mask = np.abs(statistics) >= abs(observed)
    elif tail_type == PValueType.LEFT_TAILED:
        mask = statistics <= observed
    else:
        mask = statistics >= observed
    return int(np.count_nonzero(mask))


def calculate_p_value(
    observed: float,
    results: Sequence,
    stat_kind,
    tail_type,
    baseline_column: int = 0,
) -> float:
    """
    Empirical randomization p-value.

    Parameters
    ----------
    observed : float
        Observed statistic on the live data.
    results : sequence of SimulationResult
        Accumulated permutations. Must be non-empty.
    stat_kind : StatisticKind or str
        Statistic compared.
    tail_type : PValueType or str
        ``'two-tailed'``: fraction with ``|stat| >= |observed|``;
        ``'left-tailed'``: fraction with ``stat <= observed``;
        ``'right-tailed'``: fraction with ``stat >= observed``.
    baseline_column : int, default 0
        Reference group for two-arm statistics.

    Returns
    -------
    float
        p-value in [0, 1].

    Raises
    ------
    InvalidParameterError
        If ``results`` is empty or a kind/tail type is unknown.
    StatisticError
        If the statistic cannot be evaluated on a permutation.
    """
    if len(results) == 0:
        raise InvalidParameterError('p-value requires at least one simulation result')
    stat_kind = to_statistic_kind(stat_kind)
    statistics = np.fromiter(
        (r.get_test_statistic(stat_kind, baseline_column) for r in results),
        dtype=float,
        count=len(results),
    )
    return count_extreme(statistics, observed, tail_type) / len(results)


def count_beyond_threshold(
    results: Sequence,
    stat_kind,
    threshold: float,
    direction: str = 'geq',
    baseline_column: int = 0,
) -> Tuple[int, float]:
    """
    Count simulated statistics on one side of an arbitrary threshold.

    Parameters
    ----------
    results : sequence of SimulationResult
    stat_kind : StatisticKind or str
    threshold : float
    direction : {'leq', 'geq'}, default 'geq'
        Count statistics ``<= threshold`` or ``>= threshold``.
    baseline_column : int, default 0

    Returns
    -------
    tuple of (int, float)
        Count and percentage of results meeting the condition. Both are 0
        when there are no results.
    """
    if direction not in ('leq', 'geq'):
        raise InvalidParameterError(
            f"direction must be 'leq' or 'geq', got {direction!r}"
        )
    if len(results) == 0:
        return 0, 0.0
    stat_kind = to_statistic_kind(stat_kind)
    statistics = np.array(
        [r.get_test_statistic(stat_kind, baseline_column) for r in results],
        dtype=float,
    )
    if direction == 'leq':
        count = int(np.count_nonzero(statistics <= threshold))
    else:
        count = int(np.count_nonzero(statistics >= threshold))
    return count, 100.0 * count / len(statistics)
