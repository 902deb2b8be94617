"""
potential_outcomes: Randomization Inference for the Potential-Outcomes Framework
================================================================================

Interactive engine for teaching randomization (permutation) tests. Users
enter outcome data for two to four treatment arms, and the engine repeatedly
re-shuffles treatment labels, recomputes a test statistic on every shuffle
and compares the observed statistic against the resulting null distribution.

Key Features
------------
- Editable tabular data model with an always-present entry row, linear
  undo/redo and all-or-nothing CSV import
- Test statistics:

  * ``difference_in_means``, ``difference_in_medians``, ``ratio_of_means``
  * ``ratio_of_variances``, ``wilcoxon_rank_sum``
  * ``f_statistic`` and ``between_group_variance`` for more than two arms

- Monte Carlo permutation with optional blocking (shuffles stay within
  blocks)
- Incremental asyncio simulation loop with live speed control, pause,
  resume and clear
- Two-tailed, left-tailed and right-tailed empirical p-values
- Results export to pandas DataFrame and CSV

Main Components
---------------
SimulationEngine : class
    Session object; every mutator returns an ``ActionResult``.
RandomizationResults : class
    Report with ``summary()``, ``to_dataframe()`` and ``to_csv()``.
Exception hierarchy : module
    Typed exceptions inheriting from ``PotentialOutcomesError``.

Quick Start
-----------
>>> import asyncio
>>> from potential_outcomes import SimulationEngine
>>>
>>> engine = SimulationEngine(seed=42)
>>> loaded = engine.load_csv("Control,Treatment,assignment\\n"
...                          "10,11,0\\n12,13,0\\n14,15,1\\n16,17,1")
>>> _ = engine.set_total_simulations(200)
>>> _ = engine.set_simulation_speed(100)
>>>
>>> outcome = asyncio.run(engine.proceed_simulation())
>>> outcome.success
True
>>> engine.get_results().n_simulations
200
"""

from .engine import ActionResult, SimulationEngine, create_action_result

from .results import RandomizationResults, SimulationResult

from .simulation import SimulationSettings, SimulationStatus

from .data import Column, Row, UserDataState

from .teststats import StatisticKind, TEST_STATISTICS

from .pvalue import PValueType, calculate_p_value

from .data_import import parse_csv, user_data_to_frame

from .exceptions import (
    DataImportError,
    InsufficientDataError,
    InvalidColumnOperationError,
    InvalidGroupCountError,
    InvalidParameterError,
    MissingGroupError,
    NoHistoryError,
    PotentialOutcomesError,
    SimulationStateError,
    StatisticError,
)

from .warnings_categories import (
    LargeDatasetWarning,
    PotentialOutcomesWarning,
    StaleSnapshotWarning,
    StatisticSwitchWarning,
)

__all__ = [
    # Session
    'SimulationEngine',
    'ActionResult',
    'create_action_result',
    'SimulationSettings',
    'SimulationStatus',
    # Data model
    'Column',
    'Row',
    'UserDataState',
    'parse_csv',
    'user_data_to_frame',
    # Statistics and results
    'StatisticKind',
    'TEST_STATISTICS',
    'PValueType',
    'calculate_p_value',
    'SimulationResult',
    'RandomizationResults',
    # Exception classes
    'PotentialOutcomesError',
    'InvalidParameterError',
    'InvalidColumnOperationError',
    'InsufficientDataError',
    'MissingGroupError',
    'StatisticError',
    'InvalidGroupCountError',
    'NoHistoryError',
    'SimulationStateError',
    'DataImportError',
    # Warning categories
    'PotentialOutcomesWarning',
    'LargeDatasetWarning',
    'StatisticSwitchWarning',
    'StaleSnapshotWarning',
]

__version__ = '0.1.0'
