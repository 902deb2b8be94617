"""
Validation Module

Input validation for data model edits, runtime settings and whole data
states. Every validator raises an exception from
:mod:`potential_outcomes.exceptions` and leaves its input untouched; callers
apply a change only after validation passed.
"""

import math
from typing import Optional

from . import constants
from .exceptions import (
    InvalidColumnOperationError,
    InvalidParameterError,
)
from .pvalue import PValueType, to_p_value_type
from .teststats import StatisticKind, supports_column_count, to_statistic_kind


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def validate_simulation_speed(speed) -> int:
    """
    Validate the simulation speed setting.

    Returns
    -------
    int
        The speed, within [1, 100].

    Raises
    ------
    InvalidParameterError
        If ``speed`` is not an integer in range.
    """
    if isinstance(speed, bool) or not isinstance(speed, (int, float)) or speed != int(speed):
        raise InvalidParameterError(f"Simulation speed must be an integer, got {speed!r}")
    speed = int(speed)
    if not constants.MIN_SIMULATION_SPEED <= speed <= constants.MAX_SIMULATION_SPEED:
        raise InvalidParameterError(
            f"Simulation speed must be between {constants.MIN_SIMULATION_SPEED} and "
            f"{constants.MAX_SIMULATION_SPEED}, got {speed}"
        )
    return speed


def validate_total_simulations(total) -> int:
    """
    Validate the target number of permutations.

    Raises
    ------
    InvalidParameterError
        If ``total`` is not an integer in [1, 10000].
    """
    if isinstance(total, bool) or not isinstance(total, (int, float)) or total != int(total):
        raise InvalidParameterError(f"Total simulations must be an integer, got {total!r}")
    total = int(total)
    if not constants.MIN_TOTAL_SIMULATIONS <= total <= constants.MAX_TOTAL_SIMULATIONS:
        raise InvalidParameterError(
            f"Total simulations must be between {constants.MIN_TOTAL_SIMULATIONS} and "
            f"{constants.MAX_TOTAL_SIMULATIONS}, got {total}"
        )
    return total


def validate_test_statistic(kind, n_columns: int = 2) -> StatisticKind:
    """
    Validate a statistic choice against the current number of columns.

    Raises
    ------
    InvalidParameterError
        If the kind is unknown, or is a two-arm statistic while the data
        has more than two columns.
    """
    kind = to_statistic_kind(kind)
    if not supports_column_count(kind, n_columns):
        raise InvalidParameterError(
            f"Test statistic '{kind.value}' supports two groups only; "
            f"the data has {n_columns} columns"
        )
    return kind


def validate_p_value_type(value) -> PValueType:
    return to_p_value_type(value)


# ---------------------------------------------------------------------------
# Data model edits
# ---------------------------------------------------------------------------

def validate_row_index(state, index) -> int:
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidParameterError(f"Row index must be an integer, got {index!r}")
    if not 0 <= index < len(state.rows):
        raise InvalidParameterError(
            f"Row index {index} out of range (0..{len(state.rows) - 1})"
        )
    return index


def validate_column_index(state, index) -> int:
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidParameterError(f"Column index must be an integer, got {index!r}")
    if not 0 <= index < len(state.columns):
        raise InvalidParameterError(
            f"Column index {index} out of range (0..{len(state.columns) - 1})"
        )
    return index


def validate_assignment(state, assignment) -> Optional[int]:
    """An assignment is None or a valid column index."""
    if assignment is None:
        return None
    return validate_column_index(state, assignment)


def validate_column_name(name) -> str:
    """
    Validate a column name.

    Leading and trailing whitespace is stripped. The name must be non-empty
    and at most ``MAX_COLUMN_NAME_LENGTH`` characters.
    """
    if not isinstance(name, str):
        raise InvalidParameterError(f"Column name must be a string, got {name!r}")
    name = name.strip()
    if not name:
        raise InvalidParameterError("Column name must not be empty")
    if len(name) > constants.MAX_COLUMN_NAME_LENGTH:
        raise InvalidParameterError(
            f"Column name must be at most {constants.MAX_COLUMN_NAME_LENGTH} "
            f"characters, got {len(name)}"
        )
    return name


def validate_cell_value(value) -> Optional[float]:
    """A cell holds None or a finite number."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidParameterError(f"Cell value must be a number or None, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise InvalidParameterError(f"Cell value must be finite, got {value}")
    return value


def validate_block(block) -> Optional[str]:
    """A block label is None or a non-empty string; '' means no block."""
    if block is None:
        return None
    if not isinstance(block, str):
        raise InvalidParameterError(f"Block label must be a string, got {block!r}")
    block = block.strip()
    return block or None


def validate_can_add_column(state) -> None:
    if not state.color_stack:
        raise InvalidColumnOperationError(
            f"Cannot add more than {len(state.columns)} columns"
        )


def validate_can_remove_column(state) -> None:
    if len(state.columns) <= constants.MIN_COLUMNS:
        raise InvalidColumnOperationError(
            f"At least {constants.MIN_COLUMNS} columns are required"
        )


# ---------------------------------------------------------------------------
# Whole states
# ---------------------------------------------------------------------------

def validate_user_data(state) -> None:
    """
    Check every data model invariant of a complete state.

    Invariants
    ----------
    - At least two columns, with non-empty names.
    - ``len(row.data) == len(columns)`` for every row.
    - Every assignment is None or a valid column index.
    - Every cell is None or a finite number.
    - ``baseline_column`` is a valid column index.
    - The last row is the open entry row (all cells and assignment None).

    Raises
    ------
    InvalidParameterError
        On the first violated invariant.
    """
    n_columns = len(state.columns)
    if n_columns < constants.MIN_COLUMNS:
        raise InvalidColumnOperationError(
            f"At least {constants.MIN_COLUMNS} columns are required, got {n_columns}"
        )
    for column in state.columns:
        validate_column_name(column.name)

    for i, row in enumerate(state.rows):
        if len(row.data) != n_columns:
            raise InvalidParameterError(
                f"Row {i} has {len(row.data)} cells, expected {n_columns}"
            )
        for value in row.data:
            validate_cell_value(value)
        if row.assignment is not None and not 0 <= row.assignment < n_columns:
            raise InvalidParameterError(
                f"Row {i} has assignment {row.assignment} outside 0..{n_columns - 1}"
            )

    validate_column_index(state, state.baseline_column)

    if not state.rows or not state.rows[-1].is_open:
        raise InvalidParameterError("The last row must be the empty entry row")
