"""
Exception Classes Module

Defines exception hierarchy for the potential_outcomes package.
"""

from typing import Sequence


class PotentialOutcomesError(Exception):
    """
    Base exception class for all potential_outcomes package errors.

    All custom exceptions in the package inherit from this class. The
    session object (:class:`potential_outcomes.engine.SimulationEngine`)
    converts any of them into a failed ``ActionResult``; lower-level
    functions let them propagate so they can be caught directly:

        try:
            state = data.update_cell(state, 0, 5, 1.0)
        except PotentialOutcomesError as e:
            print(f"rejected: {e}")
    """
    pass


class InvalidParameterError(PotentialOutcomesError):
    """
    Exception raised when input parameter validation fails.

    Common triggers include:

    - Row or column index out of range
    - Empty or over-long column name
    - Simulation speed outside [1, 100]
    - Total simulations outside [1, 10000]
    - Unknown test statistic kind or p-value type

    See Also
    --------
    InvalidColumnOperationError : For structurally invalid column edits.
    """
    pass


class InvalidColumnOperationError(InvalidParameterError):
    """
    Exception raised when a column add/remove would break the data model.

    The data model must always hold at least two columns, and every column
    needs a color from the palette, so removing below two columns or adding
    a column when the color stack is exhausted is rejected.
    """
    pass


class InsufficientDataError(PotentialOutcomesError):
    """
    Exception raised when there are not enough complete rows to simulate.

    A randomization test needs at least two complete rows (every potential
    outcome filled in) outside the trailing entry row.

    See Also
    --------
    MissingGroupError : A column has no assigned complete rows.
    """
    pass


class MissingGroupError(InsufficientDataError):
    """
    Exception raised when one or more columns have no assigned complete rows.

    Attributes
    ----------
    missing_groups : list of str
        Names of the columns (treatment arms) that have zero complete rows
        assigned to them.
    """

    def __init__(self, missing_groups: Sequence[str]):
        self.missing_groups = list(missing_groups)
        names = ', '.join(self.missing_groups)
        super().__init__(f"No complete rows assigned to: {names}")


class StatisticError(PotentialOutcomesError):
    """
    Exception raised when a test statistic cannot be evaluated.

    Raised by a single statistic evaluation; the simulation loop logs it and
    carries on rather than aborting the run.
    """
    pass


class InvalidGroupCountError(StatisticError):
    """
    Exception raised when a statistic sees the wrong number of groups.

    Trigger conditions:

    - Wilcoxon rank-sum evaluated with a number of populated groups other
      than two
    - Any two-arm statistic evaluated with more than two populated groups

    Attributes
    ----------
    n_groups : int
        Number of populated groups that were found.
    """

    def __init__(self, statistic: str, n_groups: int):
        self.n_groups = n_groups
        super().__init__(
            f"{statistic} requires exactly two groups, got {n_groups}"
        )


class NoHistoryError(PotentialOutcomesError):
    """
    Exception raised when undo or redo is requested on an empty stack.
    """
    pass


class SimulationStateError(PotentialOutcomesError):
    """
    Exception raised when a request conflicts with the simulation state.

    Examples: starting a run while one is in flight, or changing the target
    number of simulations while running.
    """
    pass


class DataImportError(PotentialOutcomesError):
    """
    Exception raised when imported text cannot produce a valid data state.

    The import never partially applies: either the parsed state satisfies
    every data model invariant or this exception is raised and the current
    state is left untouched.

    See Also
    --------
    potential_outcomes.data_import.parse_csv : Function that performs the import.
    """
    pass
