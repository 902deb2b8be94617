"""
Data Import Module

Parse delimited text (a CSV file or a spreadsheet paste) into a
:class:`~potential_outcomes.data.UserDataState`, and export a state back to a
pandas DataFrame.

Layout of the imported text:

- a header row;
- one numeric column per treatment arm, in order (two to four columns);
- optionally an ``assignment`` column holding the assigned arm, by name or
  zero-based index;
- optionally a ``block`` column holding block labels.

The delimiter (comma, tab or semicolon) is sniffed from the header row.
Blank cells are empty potential outcomes. Import is all-or-nothing: any
problem raises :class:`~potential_outcomes.exceptions.DataImportError`.
"""

import csv
import io
import math
from typing import List, Optional

import pandas as pd

from . import constants
from .data import Column, Row, UserDataState, empty_row
from .exceptions import DataImportError, InvalidParameterError
from .validation import validate_column_name, validate_user_data

ASSIGNMENT_COLUMN = 'assignment'
BLOCK_COLUMN = 'block'
DELIMITERS = ',\t;'


def _sniff_delimiter(header: str) -> str:
    """Delimiter of the header line; a lone column defaults to a comma."""
    try:
        return csv.Sniffer().sniff(header, delimiters=DELIMITERS).delimiter
    except csv.Error:
        return ','


def _read_frame(raw_text: str) -> pd.DataFrame:
    if not isinstance(raw_text, str) or not raw_text.strip():
        raise DataImportError("No data to import")
    text = raw_text.strip()
    try:
        return pd.read_csv(
            io.StringIO(text),
            sep=_sniff_delimiter(text.splitlines()[0]),
            index_col=False,
            dtype=str,
            skipinitialspace=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
        raise DataImportError(f"Could not parse data: {e}") from e


def _parse_number(value, column: str, line: int) -> Optional[float]:
    if pd.isna(value) or not str(value).strip():
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        raise DataImportError(
            f"Non-numeric value {value!r} in column '{column}' (row {line})"
        ) from None
    if not math.isfinite(number):
        raise DataImportError(f"Non-finite value {value!r} in column '{column}' (row {line})")
    return number


def _parse_assignment(value, names: List[str], line: int) -> Optional[int]:
    """Resolve an assignment cell given by column name or zero-based index."""
    if pd.isna(value) or not str(value).strip():
        return None
    text = str(value).strip()
    if text in names:
        return names.index(text)
    try:
        number = float(text)
    except ValueError:
        number = None
    if number is not None and number.is_integer() and 0 <= int(number) < len(names):
        return int(number)
    raise DataImportError(
        f"Assignment {text!r} (row {line}) is neither a column name nor an index "
        f"in 0..{len(names) - 1}"
    )


def parse_csv(raw_text: str) -> UserDataState:
    """
    Build a data state from delimited text.

    Parameters
    ----------
    raw_text : str
        Header row plus data rows.

    Returns
    -------
    UserDataState
        The imported rows followed by an open entry row. Columns take the
        default palette colors in order; baseline column 0; blocking is
        enabled when a ``block`` column with at least one label is present.

    Raises
    ------
    DataImportError
        If the text cannot be parsed or does not describe a valid state.

    Examples
    --------
    >>> state = parse_csv("Control,Treatment,assignment\\n1,,Control\\n,3,1")
    >>> [row.assignment for row in state.rows]
    [0, 1, None]
    """
    df = _read_frame(raw_text)
    df.columns = [str(c).strip() for c in df.columns]

    special = {
        c.lower(): c for c in df.columns
        if c.lower() in (ASSIGNMENT_COLUMN, BLOCK_COLUMN)
    }
    outcome_columns = [c for c in df.columns if c not in special.values()]

    n_columns = len(outcome_columns)
    max_columns = len(constants.DEFAULT_COLUMN_COLORS)
    if not constants.MIN_COLUMNS <= n_columns <= max_columns:
        raise DataImportError(
            f"Expected {constants.MIN_COLUMNS} to {max_columns} outcome columns, "
            f"got {n_columns}"
        )
    try:
        names = [validate_column_name(c) for c in outcome_columns]
    except InvalidParameterError as e:
        raise DataImportError(f"Invalid column header: {e}") from e
    if len(set(names)) != len(names):
        raise DataImportError(f"Duplicate column names: {names}")

    assignment_col = special.get(ASSIGNMENT_COLUMN)
    block_col = special.get(BLOCK_COLUMN)

    rows = []
    for offset, record in enumerate(df.itertuples(index=False)):
        values = dict(zip(df.columns, record))
        line = offset + 2
        cells = tuple(_parse_number(values[c], c, line) for c in outcome_columns)
        assignment = None
        if assignment_col is not None:
            assignment = _parse_assignment(values[assignment_col], names, line)
        block = None
        if block_col is not None and not pd.isna(values[block_col]):
            block = str(values[block_col]).strip() or None

        row = Row(data=cells, assignment=assignment, block=block)
        if row.is_open and block is None:
            continue
        rows.append(row)

    rows.append(empty_row(n_columns))
    colors = constants.DEFAULT_COLUMN_COLORS
    state = UserDataState(
        rows=tuple(rows),
        columns=tuple(Column(name, colors[i]) for i, name in enumerate(names)),
        color_stack=tuple(colors[n_columns:]),
        baseline_column=0,
        blocking_enabled=any(row.block is not None for row in rows),
    )
    try:
        validate_user_data(state)
    except InvalidParameterError as e:
        raise DataImportError(f"Imported data is invalid: {e}") from e
    return state


def user_data_to_frame(state: UserDataState) -> pd.DataFrame:
    """
    Export the non-trailing rows of ``state``.

    Returns
    -------
    pd.DataFrame
        One float column per treatment arm (NaN for empty cells), an
        ``assignment`` column with the assigned column name, and a ``block``
        column. The frame can be written with ``to_csv(index=False)`` and read
        back by :func:`parse_csv`.
    """
    names = state.column_names
    records = []
    for row in state.rows[:-1]:
        record = {name: row.data[i] for i, name in enumerate(names)}
        record[ASSIGNMENT_COLUMN] = None if row.assignment is None else names[row.assignment]
        record[BLOCK_COLUMN] = row.block
        records.append(record)
    df = pd.DataFrame.from_records(records, columns=names + [ASSIGNMENT_COLUMN, BLOCK_COLUMN])
    df[names] = df[names].astype(float)
    return df
