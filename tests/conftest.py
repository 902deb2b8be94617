"""
Pytest configuration file providing shared fixtures and helper functions.
"""
import asyncio

import pytest

from potential_outcomes import constants
from potential_outcomes.data import Column, Row, UserDataState, empty_row
from potential_outcomes.simulation import SimulationSettings

COLUMN_NAMES = ('Control', 'Treatment', 'Treatment 2', 'Treatment 3')


def build_state(rows, n_columns=2, baseline_column=0, blocking_enabled=False):
    """Wrap complete rows into a valid state with a trailing entry row."""
    colors = constants.DEFAULT_COLUMN_COLORS
    return UserDataState(
        rows=tuple(rows) + (empty_row(n_columns),),
        columns=tuple(Column(COLUMN_NAMES[i], colors[i]) for i in range(n_columns)),
        color_stack=tuple(colors[n_columns:]),
        baseline_column=baseline_column,
        blocking_enabled=blocking_enabled,
    )


async def _no_sleep(seconds):
    await asyncio.sleep(0)


@pytest.fixture
def make_state():
    """Factory fixture for states built from complete rows."""
    return build_state


@pytest.fixture
def no_sleep():
    """Zero-delay scheduler for driving the simulation loop in tests."""
    return _no_sleep


@pytest.fixture
def two_group_rows():
    """
    Six complete rows, three per arm.

    Observed control values 1, 2, 3 and treated values 6, 8, 9, so the
    observed difference in means is 23/3 - 2.
    """
    return [
        Row((1.0, 2.0), 0),
        Row((2.0, 3.0), 0),
        Row((3.0, 5.0), 0),
        Row((4.0, 6.0), 1),
        Row((5.0, 8.0), 1),
        Row((6.0, 9.0), 1),
    ]


@pytest.fixture
def two_group_state(two_group_rows):
    return build_state(two_group_rows)


@pytest.fixture
def blocked_rows():
    """Rows in two labelled blocks plus unlabelled rows."""
    return [
        Row((1.0, 1.5), 0, 'A'),
        Row((2.0, 2.5), 0, 'A'),
        Row((3.0, 3.5), 1, 'A'),
        Row((4.0, 4.5), 1, 'B'),
        Row((5.0, 5.5), 1, 'B'),
        Row((6.0, 6.5), 0, 'B'),
        Row((7.0, 7.5), 0, 'B'),
        Row((8.0, 8.5), 0, None),
        Row((9.0, 9.5), 1, None),
    ]


@pytest.fixture
def small_settings():
    return SimulationSettings(simulation_speed=100, total_simulations=50)


@pytest.fixture
def two_group_csv():
    return (
        "Control,Treatment,assignment\n"
        "1,2,0\n"
        "2,3,0\n"
        "3,5,0\n"
        "4,6,1\n"
        "5,8,1\n"
        "6,9,1\n"
    )
