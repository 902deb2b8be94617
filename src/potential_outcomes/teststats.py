"""
Test Statistic Library

Pure functions mapping a set of rows to a scalar test statistic, plus the
closed registry that the simulation evaluates them through.

Every statistic groups rows by their treatment assignment, taking the
observed value ``row.data[row.assignment]`` of each row. Rows without an
assignment, or whose observed slot is empty, are skipped. Degenerate input
(no rows, fewer than two populated groups) yields a neutral value instead of
an error, except for the Wilcoxon rank-sum which requires exactly two groups.

Two-arm statistics compare a reference group (group 0) against the other
populated group (group 1). The reference group is the baseline column when it
is populated, otherwise the lowest-index populated group.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from .exceptions import InvalidGroupCountError, InvalidParameterError


class StatisticKind(str, Enum):
    """Closed set of test statistics the engine can evaluate."""

    DIFFERENCE_IN_MEANS = 'difference_in_means'
    WILCOXON_RANK_SUM = 'wilcoxon_rank_sum'
    DIFFERENCE_IN_MEDIANS = 'difference_in_medians'
    RATIO_OF_VARIANCES = 'ratio_of_variances'
    F_STATISTIC = 'f_statistic'
    BETWEEN_GROUP_VARIANCE = 'between_group_variance'
    RATIO_OF_MEANS = 'ratio_of_means'


def group_values(rows: Sequence) -> Dict[int, np.ndarray]:
    """
    Collect observed values by assignment.

    Parameters
    ----------
    rows : sequence of Row
        Rows to group. Only ``row.data[row.assignment]`` is read.

    Returns
    -------
    dict
        Mapping of column index to a float array of observed values, ordered
        by column index. Groups without any observed value are absent.
    """
    groups: Dict[int, List[float]] = {}
    for row in rows:
        if row.assignment is None:
            continue
        value = row.data[row.assignment]
        if value is None:
            continue
        groups.setdefault(row.assignment, []).append(value)
    return {k: np.asarray(groups[k], dtype=float) for k in sorted(groups)}


def _reference_pair(
    groups: Dict[int, np.ndarray],
    baseline_column: int,
    statistic: str,
) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    Pick (group0, group1) for a two-arm statistic.

    Returns None when fewer than two groups are populated. More than two
    populated groups is an error rather than a silent truncation.
    """
    if len(groups) > 2:
        raise InvalidGroupCountError(statistic, len(groups))
    if len(groups) < 2:
        return None
    first, second = groups
    if baseline_column == second:
        first, second = second, first
    return groups[first], groups[second]


def difference_in_means(rows: Sequence, baseline_column: int = 0) -> float:
    """mean(group1) - mean(group0); 0 when fewer than two groups."""
    pair = _reference_pair(group_values(rows), baseline_column, 'Difference in Means')
    if pair is None:
        return 0.0
    control, treated = pair
    return float(np.mean(treated) - np.mean(control))


def difference_in_medians(rows: Sequence, baseline_column: int = 0) -> float:
    """median(group1) - median(group0); 0 when fewer than two groups."""
    pair = _reference_pair(group_values(rows), baseline_column, 'Difference in Medians')
    if pair is None:
        return 0.0
    control, treated = pair
    return float(np.median(treated) - np.median(control))


def ratio_of_variances(rows: Sequence, baseline_column: int = 0) -> float:
    """
    Sample variance of group 1 over sample variance of group 0.

    Returns 1 (equal variances) when either variance is undefined (fewer
    than two values) or zero.
    """
    pair = _reference_pair(group_values(rows), baseline_column, 'Ratio of Variances')
    if pair is None:
        return 1.0
    control, treated = pair
    if len(control) < 2 or len(treated) < 2:
        return 1.0
    var_control = float(np.var(control, ddof=1))
    var_treated = float(np.var(treated, ddof=1))
    if var_control == 0 or var_treated == 0:
        return 1.0
    return var_treated / var_control


def ratio_of_means(rows: Sequence, baseline_column: int = 0) -> float:
    """mean(group1) / mean(group0); 1 when undefined."""
    pair = _reference_pair(group_values(rows), baseline_column, 'Ratio of Means')
    if pair is None:
        return 1.0
    control, treated = pair
    mean_control = float(np.mean(control))
    if mean_control == 0:
        return 1.0
    return float(np.mean(treated)) / mean_control


def wilcoxon_rank_sum(rows: Sequence, baseline_column: int = 0) -> float:
    """
    Wilcoxon rank-sum statistic of the reference group.

    Both groups are pooled and ranked 1..n in ascending order; tied values
    share the mean of the ranks they span. The statistic is the sum of the
    ranks belonging to group 0.

    Raises
    ------
    InvalidGroupCountError
        If the number of populated groups is not exactly two.
    """
    groups = group_values(rows)
    if len(groups) != 2:
        raise InvalidGroupCountError('Wilcoxon Rank-Sum', len(groups))
    control, treated = _reference_pair(groups, baseline_column, 'Wilcoxon Rank-Sum')
    ranks = stats.rankdata(np.concatenate([control, treated]), method='average')
    return float(np.sum(ranks[:len(control)]))


def _sums_of_squares(groups: Dict[int, np.ndarray]) -> Tuple[float, float]:
    """Between-group (SSR) and within-group (SSE) sums of squares."""
    pooled = np.concatenate(list(groups.values()))
    grand_mean = pooled.mean()
    ssr = sum(len(g) * (g.mean() - grand_mean) ** 2 for g in groups.values())
    sse = sum(float(np.sum((g - g.mean()) ** 2)) for g in groups.values())
    return float(ssr), float(sse)


def f_statistic(rows: Sequence, baseline_column: int = 0) -> float:
    """
    One-way ANOVA F = (SSR / (k - 1)) / (SSE / (n - k)).

    Uses every populated group, so it is valid for any number of treatment
    arms. Returns 0 when k <= 1 or n <= k. With zero within-group variation
    the ratio is infinite unless the groups also share a mean.
    """
    groups = group_values(rows)
    k = len(groups)
    n = sum(len(g) for g in groups.values())
    if k <= 1 or n <= k:
        return 0.0
    ssr, sse = _sums_of_squares(groups)
    if sse == 0:
        return 0.0 if ssr == 0 else float('inf')
    return (ssr / (k - 1)) / (sse / (n - k))


def between_group_variance(rows: Sequence, baseline_column: int = 0) -> float:
    """Between-group mean square SSR / (k - 1); 0 with fewer than two groups."""
    groups = group_values(rows)
    k = len(groups)
    if k < 2:
        return 0.0
    ssr, _ = _sums_of_squares(groups)
    return ssr / (k - 1)


@dataclass(frozen=True)
class StatisticMeta:
    """
    Registry entry for one statistic kind.

    Attributes
    ----------
    name : str
        Display name.
    function : callable
        ``function(rows, baseline_column) -> float``.
    supports_multiple_treatments : bool
        Whether the statistic is meaningful with more than two arms.
    always_positive : bool
        Whether the statistic is bounded below by zero.
    """
    name: str
    function: Callable[[Sequence, int], float]
    supports_multiple_treatments: bool
    always_positive: bool


TEST_STATISTICS: Dict[StatisticKind, StatisticMeta] = {
    StatisticKind.DIFFERENCE_IN_MEANS: StatisticMeta(
        'Difference in Means', difference_in_means, False, False),
    StatisticKind.WILCOXON_RANK_SUM: StatisticMeta(
        'Wilcoxon Rank-Sum', wilcoxon_rank_sum, False, True),
    StatisticKind.DIFFERENCE_IN_MEDIANS: StatisticMeta(
        'Difference in Medians', difference_in_medians, False, False),
    StatisticKind.RATIO_OF_VARIANCES: StatisticMeta(
        'Ratio of Variances', ratio_of_variances, False, True),
    StatisticKind.F_STATISTIC: StatisticMeta(
        'F-Statistic', f_statistic, True, True),
    StatisticKind.BETWEEN_GROUP_VARIANCE: StatisticMeta(
        'Between-Group Variance', between_group_variance, True, True),
    StatisticKind.RATIO_OF_MEANS: StatisticMeta(
        'Ratio of Means', ratio_of_means, False, True),
}

# Statistic selected when a third column forces a multi-arm statistic.
DEFAULT_MULTI_TREATMENT_STATISTIC = StatisticKind.F_STATISTIC


def to_statistic_kind(kind) -> StatisticKind:
    """Coerce a kind or its string value to :class:`StatisticKind`."""
    try:
        return StatisticKind(kind)
    except ValueError:
        valid = [k.value for k in StatisticKind]
        raise InvalidParameterError(
            f"Unknown test statistic {kind!r}. Must be one of {valid}"
        ) from None


def compute_statistic(kind, rows: Sequence, baseline_column: int = 0) -> float:
    """
    Evaluate one statistic on a set of rows.

    Parameters
    ----------
    kind : StatisticKind or str
        Statistic to evaluate.
    rows : sequence of Row
        Rows to evaluate; callers pass complete rows only.
    baseline_column : int, default 0
        Column used as the reference group by two-arm statistics.

    Returns
    -------
    float

    Raises
    ------
    InvalidParameterError
        If ``kind`` is unknown.
    StatisticError
        If the statistic cannot be evaluated on these rows.
    """
    meta = TEST_STATISTICS[to_statistic_kind(kind)]
    return meta.function(rows, baseline_column)


def supports_column_count(kind, n_columns: int) -> bool:
    """Whether ``kind`` may be selected for data with ``n_columns`` arms."""
    meta = TEST_STATISTICS[to_statistic_kind(kind)]
    return n_columns <= 2 or meta.supports_multiple_treatments


def available_statistics(n_columns: int) -> List[StatisticKind]:
    """Statistic kinds selectable for data with ``n_columns`` arms."""
    return [k for k in StatisticKind if supports_column_count(k, n_columns)]
