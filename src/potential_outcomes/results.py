"""
Results Container Module

Defines the per-permutation ``SimulationResult`` and the
``RandomizationResults`` report that summarizes a (possibly partial) run.
"""

from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .pvalue import PValueType, to_p_value_type
from .teststats import TEST_STATISTICS, StatisticKind, to_statistic_kind


class SimulationResult:
    """
    One permuted copy of the complete rows.

    The rows are fixed at construction. Test statistics are computed lazily
    on first request and memoized per ``(kind, baseline_column)``, so a
    statistic is never evaluated twice on the same permutation.

    Attributes
    ----------
    rows : tuple of Row
        Rows with permuted assignments.
    """

    def __init__(self, rows: Sequence):
        self._rows = tuple(rows)
        self._statistics: Dict[Tuple[StatisticKind, int], float] = {}

    @property
    def rows(self) -> tuple:
        return self._rows

    def get_test_statistic(self, kind, baseline_column: int = 0) -> float:
        """
        Statistic of ``kind`` on this permutation, computed at most once.

        Raises
        ------
        StatisticError
            If the statistic cannot be evaluated; nothing is cached then.
        """
        key = (to_statistic_kind(kind), baseline_column)
        if key not in self._statistics:
            meta = TEST_STATISTICS[key[0]]
            self._statistics[key] = meta.function(self._rows, baseline_column)
        return self._statistics[key]

    def __repr__(self) -> str:
        return f"SimulationResult(rows={len(self._rows)}, cached={len(self._statistics)})"


class RandomizationResults:
    """
    Read-only report of a randomization test.

    Built by :meth:`potential_outcomes.engine.SimulationEngine.get_results`
    from the accumulated permutations. A report taken mid-run describes
    exactly the permutations published so far.

    Attributes
    ----------
    statistic : StatisticKind
        Test statistic compared.
    p_value_type : PValueType
        Tail definition of the p-value.
    observed_statistic : float or None
        Statistic on the live data.
    p_value : float or None
        Empirical p-value; None before the first permutation.
    statistics : np.ndarray
        Simulated statistics in generation order.
    n_simulations : int
        Number of permutations drawn.
    target_simulations : int
        Number of permutations the run aims for.
    blocking_enabled : bool
        Whether permutations were restricted to blocks.
    """

    def __init__(
        self,
        statistic,
        p_value_type,
        observed_statistic: Optional[float],
        p_value: Optional[float],
        statistics: np.ndarray,
        target_simulations: int,
        blocking_enabled: bool = False,
    ):
        self._statistic = to_statistic_kind(statistic)
        self._p_value_type = to_p_value_type(p_value_type)
        self._observed_statistic = observed_statistic
        self._p_value = p_value
        self._statistics = np.asarray(statistics, dtype=float)
        self._statistics.setflags(write=False)
        self._target_simulations = target_simulations
        self._blocking_enabled = blocking_enabled

    @property
    def statistic(self) -> StatisticKind:
        return self._statistic

    @property
    def p_value_type(self) -> PValueType:
        return self._p_value_type

    @property
    def observed_statistic(self) -> Optional[float]:
        return self._observed_statistic

    @property
    def p_value(self) -> Optional[float]:
        return self._p_value

    @property
    def statistics(self) -> np.ndarray:
        return self._statistics

    @property
    def n_simulations(self) -> int:
        return len(self._statistics)

    @property
    def target_simulations(self) -> int:
        return self._target_simulations

    @property
    def blocking_enabled(self) -> bool:
        return self._blocking_enabled

    @property
    def is_complete(self) -> bool:
        return self.n_simulations >= self._target_simulations

    def summary(self) -> str:
        """Formatted results summary."""
        sep_line = "=" * 60
        sub_line = "-" * 60

        output = []
        output.append(sep_line)
        output.append("              Randomization Test Results")
        output.append(sep_line)
        output.append(f"Test statistic: {TEST_STATISTICS[self._statistic].name}")
        output.append(f"Alternative:    {self._p_value_type.value}")
        output.append(f"Blocking:       {'on' if self._blocking_enabled else 'off'}")
        output.append(f"Permutations:   {self.n_simulations} / {self._target_simulations}")
        output.append(sub_line)

        if self._observed_statistic is None:
            output.append("Observed:       n/a")
        else:
            output.append(f"Observed:       {self._observed_statistic:>10.4f}")

        if self.n_simulations > 0:
            finite = self._statistics[np.isfinite(self._statistics)]
            if finite.size:
                output.append(f"Null mean:      {finite.mean():>10.4f}")
                output.append(f"Null std:       {finite.std():>10.4f}")

        if self._p_value is None:
            output.append("p-value:        n/a")
        else:
            output.append(f"p-value:        {self._p_value:>10.4f}")

        output.append(sep_line)
        return "\n".join(output)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per permutation with its statistic and extremeness flag."""
        df = pd.DataFrame({
            'simulation': np.arange(1, self.n_simulations + 1),
            'statistic': self._statistics,
        })
        if self._observed_statistic is not None:
            observed = self._observed_statistic
            if self._p_value_type == PValueType.TWO_TAILED:
                extreme = np.abs(self._statistics) >= abs(observed)
            elif self._p_value_type == PValueType.LEFT_TAILED:
                extreme = self._statistics <= observed
            else:
                extreme = self._statistics >= observed
            df['extreme'] = extreme
        return df

    def to_csv(self, path: str):
        self.to_dataframe().to_csv(path, index=False)

    def __repr__(self) -> str:
        p = 'None' if self._p_value is None else f"{self._p_value:.4f}"
        return (
            f"RandomizationResults(statistic='{self._statistic.value}', "
            f"p_value={p}, n={self.n_simulations}/{self._target_simulations})"
        )

    def __str__(self) -> str:
        return self.summary()
