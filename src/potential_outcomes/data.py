"""
Data Model Module

Value types for the tabular data the user enters, and the pure transitions
that edit it.

A ``UserDataState`` is immutable: every transition validates its arguments
and returns a new state, so an earlier state can be kept as an undo snapshot
without copying. Rows carry one potential-outcome slot per column, the
column they were assigned to, and an optional block label.

Invariants kept by every transition:

- ``len(row.data) == len(columns)`` for every row;
- at least two columns;
- the last row is the open entry row (no values, no assignment). When the
  last row gains a value, or when no open row is left, a fresh one is
  appended.

Only complete rows (no empty slot) other than the trailing row take part in
statistics and simulation; see :func:`valid_rows`.
"""

from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from . import constants
from .validation import (
    validate_assignment,
    validate_block,
    validate_can_add_column,
    validate_can_remove_column,
    validate_cell_value,
    validate_column_index,
    validate_column_name,
    validate_row_index,
    validate_user_data,
)


@dataclass(frozen=True)
class Column:
    """A treatment arm: display name and color token."""
    name: str
    color: str


@dataclass(frozen=True)
class Row:
    """
    One unit of the experiment.

    Attributes
    ----------
    data : tuple of (float or None)
        Potential outcome under each column.
    assignment : int or None
        Index of the column the unit was assigned to.
    block : str or None
        Block label used by blocked permutation.
    """
    data: Tuple[Optional[float], ...]
    assignment: Optional[int] = None
    block: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return all(value is not None for value in self.data)

    @property
    def is_open(self) -> bool:
        """Whether this row can serve as the trailing entry row."""
        return self.assignment is None and all(value is None for value in self.data)

    @property
    def observed_value(self) -> Optional[float]:
        if self.assignment is None:
            return None
        return self.data[self.assignment]


def empty_row(column_count: int) -> Row:
    return Row(data=(None,) * column_count)


@dataclass(frozen=True)
class UserDataState:
    """
    Everything the user has entered.

    Attributes
    ----------
    rows : tuple of Row
        Data rows; the last one is the open entry row.
    columns : tuple of Column
        Treatment arms; the index is the arm id.
    color_stack : tuple of str
        Unused color tokens; ``add_column`` takes the first one.
    baseline_column : int
        Reference group for two-arm statistics.
    blocking_enabled : bool
        Whether permutation respects row blocks.
    """
    rows: Tuple[Row, ...]
    columns: Tuple[Column, ...]
    color_stack: Tuple[str, ...]
    baseline_column: int = 0
    blocking_enabled: bool = False

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def trailing_row_index(self) -> int:
        return len(self.rows) - 1


@dataclass(frozen=True)
class SimulationSnapshot:
    """Frozen copy of what a simulation run permutes."""
    rows: Tuple[Row, ...]
    baseline_column: int
    blocking_enabled: bool


def default_user_data() -> UserDataState:
    """Two columns (Control, Treatment) and a single entry row."""
    colors = constants.DEFAULT_COLUMN_COLORS
    columns = tuple(
        Column(name, colors[i]) for i, name in enumerate(constants.DEFAULT_COLUMN_NAMES)
    )
    return UserDataState(
        rows=(empty_row(len(columns)),),
        columns=columns,
        color_stack=tuple(colors[len(columns):]),
    )


def _with_rows(state: UserDataState, rows: Sequence[Row], **changes) -> UserDataState:
    """Replace rows, regenerating the trailing entry row when needed."""
    rows = list(rows)
    n_columns = len(changes.get('columns', state.columns))
    if not rows or not rows[-1].is_open:
        rows.append(empty_row(n_columns))
    return replace(state, rows=tuple(rows), **changes)


def _replace_row(state: UserDataState, index: int, row: Row) -> UserDataState:
    rows = list(state.rows)
    rows[index] = row
    return _with_rows(state, rows)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def valid_rows(state: UserDataState) -> Tuple[Row, ...]:
    """Complete rows, excluding the trailing entry row."""
    return tuple(row for row in state.rows[:-1] if row.is_complete)


def take_snapshot(state: UserDataState) -> SimulationSnapshot:
    return SimulationSnapshot(
        rows=valid_rows(state),
        baseline_column=state.baseline_column,
        blocking_enabled=state.blocking_enabled,
    )


def snapshots_match(
    first: Optional[SimulationSnapshot],
    second: Optional[SimulationSnapshot],
) -> bool:
    """
    Whether two snapshots describe the same experiment.

    Row order does not matter. Block labels are ignored when blocking is
    disabled. A missing snapshot never matches.
    """
    if first is None or second is None:
        return False
    if (first.baseline_column != second.baseline_column
            or first.blocking_enabled != second.blocking_enabled):
        return False
    if len(first.rows) != len(second.rows):
        return False

    ignore_blocks = not first.blocking_enabled

    def key(row: Row):
        block = None if ignore_blocks else row.block
        return (row.data, -1 if row.assignment is None else row.assignment, block or '')

    return sorted(map(key, first.rows)) == sorted(map(key, second.rows))


def group_sizes(state: UserDataState) -> Dict[int, int]:
    """Number of complete rows assigned to each column."""
    sizes = {i: 0 for i in range(len(state.columns))}
    for row in valid_rows(state):
        if row.assignment is not None:
            sizes[row.assignment] += 1
    return sizes


def _observed_by_column(state: UserDataState) -> List[List[float]]:
    groups: List[List[float]] = [[] for _ in state.columns]
    for row in state.rows[:-1]:
        value = row.observed_value
        if value is not None:
            groups[row.assignment].append(value)
    return groups


def column_means(state: UserDataState) -> List[Optional[float]]:
    """Mean of the values observed under each column's assignment."""
    return [
        float(np.mean(g)) if g else None
        for g in _observed_by_column(state)
    ]


def column_standard_deviations(state: UserDataState) -> List[Optional[float]]:
    """Population standard deviation of observed values per column."""
    return [
        float(np.std(g)) if g else None
        for g in _observed_by_column(state)
    ]


# ---------------------------------------------------------------------------
# Row edits
# ---------------------------------------------------------------------------

def add_row(state: UserDataState) -> UserDataState:
    """Insert an empty row just above the entry row."""
    rows = list(state.rows)
    rows.insert(len(rows) - 1, empty_row(len(state.columns)))
    return _with_rows(state, rows)


def delete_row(state: UserDataState, index: int) -> UserDataState:
    validate_row_index(state, index)
    rows = [row for i, row in enumerate(state.rows) if i != index]
    return _with_rows(state, rows)


def update_cell(
    state: UserDataState,
    row_index: int,
    column_index: int,
    value: Optional[float],
) -> UserDataState:
    """
    Set one potential outcome.

    Entering a value on the trailing entry row assigns the row to that
    column and promotes it, appending a fresh entry row.
    """
    validate_row_index(state, row_index)
    validate_column_index(state, column_index)
    value = validate_cell_value(value)

    row = state.rows[row_index]
    data = list(row.data)
    data[column_index] = value
    assignment = row.assignment
    if row_index == state.trailing_row_index and value is not None and assignment is None:
        assignment = column_index
    return _replace_row(state, row_index, replace(row, data=tuple(data), assignment=assignment))


def set_assignment(
    state: UserDataState,
    row_index: int,
    assignment: Optional[int],
) -> UserDataState:
    validate_row_index(state, row_index)
    assignment = validate_assignment(state, assignment)
    row = state.rows[row_index]
    return _replace_row(state, row_index, replace(row, assignment=assignment))


def toggle_assignment(state: UserDataState, row_index: int) -> UserDataState:
    """Cycle a row's assignment to the next column (None starts at 0)."""
    validate_row_index(state, row_index)
    row = state.rows[row_index]
    if row.assignment is None:
        assignment = 0
    else:
        assignment = (row.assignment + 1) % len(state.columns)
    return _replace_row(state, row_index, replace(row, assignment=assignment))


def set_block(state: UserDataState, row_index: int, block: Optional[str]) -> UserDataState:
    validate_row_index(state, row_index)
    block = validate_block(block)
    row = state.rows[row_index]
    return _replace_row(state, row_index, replace(row, block=block))


# ---------------------------------------------------------------------------
# Column edits
# ---------------------------------------------------------------------------

def rename_column(state: UserDataState, index: int, name: str) -> UserDataState:
    validate_column_index(state, index)
    name = validate_column_name(name)
    columns = list(state.columns)
    columns[index] = replace(columns[index], name=name)
    return replace(state, columns=tuple(columns))


def add_column(state: UserDataState, name: Optional[str] = None) -> UserDataState:
    """
    Append a column, taking its color from the color stack.

    Every row gains an empty slot for the new column.
    """
    validate_can_add_column(state)
    if name is None:
        name = f"Treatment {len(state.columns)}"
    name = validate_column_name(name)

    color, *remaining = state.color_stack
    columns = state.columns + (Column(name, color),)
    rows = [replace(row, data=row.data + (None,)) for row in state.rows]
    return _with_rows(state, rows, columns=columns, color_stack=tuple(remaining))


def remove_column(state: UserDataState, index: int) -> UserDataState:
    """
    Remove a column and its slot from every row.

    Rows assigned to the removed column lose their assignment; assignments
    and the baseline above it shift down by one. The column's color returns
    to the color stack.
    """
    validate_column_index(state, index)
    validate_can_remove_column(state)

    def shift(assignment: Optional[int]) -> Optional[int]:
        if assignment is None or assignment == index:
            return None
        return assignment - 1 if assignment > index else assignment

    rows = [
        replace(
            row,
            data=row.data[:index] + row.data[index + 1:],
            assignment=shift(row.assignment),
        )
        for row in state.rows
    ]
    removed = state.columns[index]
    columns = state.columns[:index] + state.columns[index + 1:]

    baseline = state.baseline_column
    if baseline == index:
        baseline = 0
    elif baseline > index:
        baseline -= 1

    return _with_rows(
        state,
        rows,
        columns=columns,
        color_stack=(removed.color,) + state.color_stack,
        baseline_column=baseline,
    )


def set_baseline_column(state: UserDataState, index: int) -> UserDataState:
    validate_column_index(state, index)
    return replace(state, baseline_column=index)


def set_blocking_enabled(state: UserDataState, enabled: bool) -> UserDataState:
    return replace(state, blocking_enabled=bool(enabled))


# ---------------------------------------------------------------------------
# Whole-table edits
# ---------------------------------------------------------------------------

def replace_user_data(state: UserDataState) -> UserDataState:
    """Validate an externally built state before it replaces the current one."""
    validate_user_data(state)
    return state


def empty_user_data(state: UserDataState) -> UserDataState:
    """Drop every row but keep the columns and settings."""
    return _with_rows(state, [])


def apply_treatment_effect(
    state: UserDataState,
    effects: Mapping[int, float],
) -> UserDataState:
    """
    Fill in potential outcomes under a constant additive effect.

    For every assigned row (except the entry row) the observed value under
    its assignment ``a`` gives the baseline outcome ``y0 = y[a] - effect[a]``,
    and every column ``j`` is set to ``y0 + effect[j]``. Columns missing
    from ``effects``, and the baseline column, have effect 0.

    Parameters
    ----------
    state : UserDataState
    effects : mapping of int to float
        Additive effect of each column relative to the baseline column.

    Raises
    ------
    InvalidParameterError
        If a key is not a column index or an effect is not finite.
    """
    offsets = [0.0] * len(state.columns)
    for index, effect in effects.items():
        validate_column_index(state, index)
        effect = validate_cell_value(effect)
        if index != state.baseline_column and effect is not None:
            offsets[index] = effect

    rows = list(state.rows)
    for i, row in enumerate(rows[:-1]):
        known = row.observed_value
        if known is None:
            continue
        y0 = known - offsets[row.assignment]
        data = tuple(
            known if j == row.assignment else y0 + offsets[j]
            for j in range(len(state.columns))
        )
        rows[i] = replace(row, data=data)
    return _with_rows(state, rows)
