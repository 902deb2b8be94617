"""
Simulation Engine Module

Session object tying the data model, undo/redo history, runtime settings and
the simulation controller together behind a callback-style API.

Every public mutator returns an :class:`ActionResult` instead of raising:
domain errors (:class:`~potential_outcomes.exceptions.PotentialOutcomesError`)
become ``ActionResult(success=False, error=...)`` and package warnings raised
while the action ran are collected into ``ActionResult.warning``. Anything
else is a programming error and propagates.

Data edits go through a single commit path which pushes the pre-edit state
onto the history, recomputes the live observed statistic and refreshes the
running p-value.
"""

import asyncio
import logging
import warnings
from dataclasses import dataclass, replace
from typing import Callable, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from . import constants
from . import data
from .data import UserDataState, default_user_data, take_snapshot, valid_rows
from .data_import import parse_csv, user_data_to_frame
from .exceptions import PotentialOutcomesError, SimulationStateError, StatisticError
from .history import History
from .pvalue import count_beyond_threshold
from .results import RandomizationResults, SimulationResult
from .simulation import (
    ProgressListener,
    SimulationController,
    SimulationSettings,
    SimulationStatus,
)
from .teststats import (
    DEFAULT_MULTI_TREATMENT_STATISTIC,
    TEST_STATISTICS,
    StatisticKind,
    available_statistics,
    compute_statistic,
    supports_column_count,
)
from .validation import (
    validate_p_value_type,
    validate_simulation_speed,
    validate_test_statistic,
    validate_total_simulations,
)
from .warnings_categories import (
    LargeDatasetWarning,
    PotentialOutcomesWarning,
    StatisticSwitchWarning,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionResult:
    """
    Outcome of one public engine operation.

    Attributes
    ----------
    success : bool
        Whether the operation was applied.
    error : str or None
        Why the operation was rejected.
    warning : str or None
        Advisory messages raised while the operation ran, joined by ``"; "``.
        May accompany a successful result.
    """
    success: bool
    error: Optional[str] = None
    warning: Optional[str] = None


def create_action_result(action: Callable[..., object], *args, **kwargs) -> ActionResult:
    """
    Run ``action`` and describe its outcome.

    Package warnings (:class:`PotentialOutcomesWarning`) are collected into
    the result; foreign warnings are re-emitted as they were raised.

    Parameters
    ----------
    action : callable
        Operation to run with ``*args`` and ``**kwargs``.

    Returns
    -------
    ActionResult
    """
    error = None
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter('always')
        try:
            action(*args, **kwargs)
        except PotentialOutcomesError as exc:
            error = str(exc)
            logger.debug("%s rejected: %s", getattr(action, '__name__', action), exc)

    messages = []
    for record in caught:
        if issubclass(record.category, PotentialOutcomesWarning):
            messages.append(str(record.message))
        else:
            warnings.warn_explicit(
                record.message, record.category, record.filename, record.lineno,
                source=record.source,
            )

    return ActionResult(
        success=error is None,
        error=error,
        warning="; ".join(messages) if messages else None,
    )


def _replaced_by(current: UserDataState, new_state: UserDataState) -> UserDataState:
    return data.replace_user_data(new_state)


def _reset_to_default(current: UserDataState) -> UserDataState:
    return default_user_data()


class SimulationEngine:
    """
    One interactive randomization-inference session.

    Parameters
    ----------
    seed : int, optional
        Seed for the permutation generator, for reproducible runs.
    sleep : callable, optional
        ``async sleep(seconds)`` used between loop iterations; see
        :class:`~potential_outcomes.simulation.SimulationController`.
    settings : SimulationSettings, optional
        Initial settings; defaults are used when omitted.

    Examples
    --------
    >>> engine = SimulationEngine(seed=0)
    >>> engine.update_cell(0, 0, 1.0).success
    True
    >>> engine.update_cell(0, 1, 2.0).success
    True
    >>> engine.update_cell(1, 1, 3.0).success
    True
    >>> engine.update_cell(1, 0, 1.5).success
    True
    >>> engine.observed_statistic
    2.0
    """

    def __init__(
        self,
        seed: Optional[int] = None,
        sleep=None,
        settings: Optional[SimulationSettings] = None,
    ):
        self._settings = settings if settings is not None else SimulationSettings()
        self._state = default_user_data()
        self._history: History[UserDataState] = History()
        self._controller = SimulationController(self._settings, seed=seed, sleep=sleep)
        self._task: Optional[asyncio.Task] = None
        self._refresh_observed()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def user_data(self) -> UserDataState:
        return self._state

    @property
    def settings(self) -> SimulationSettings:
        """A copy of the current settings; change them through the setters."""
        return replace(self._settings)

    @property
    def observed_statistic(self) -> Optional[float]:
        return self._controller.observed_statistic

    @property
    def p_value(self) -> Optional[float]:
        return self._controller.p_value

    @property
    def simulation_results(self) -> Tuple[SimulationResult, ...]:
        return self._controller.results

    @property
    def simulation_snapshot(self):
        return self._controller.snapshot

    @property
    def status(self) -> SimulationStatus:
        return self._controller.status

    @property
    def is_simulating(self) -> bool:
        return self._controller.is_simulating

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def is_stale(self) -> bool:
        """Whether the live data no longer matches the current run's snapshot."""
        snapshot = self._controller.snapshot
        if snapshot is None:
            return False
        return not data.snapshots_match(snapshot, take_snapshot(self._state))

    @property
    def available_statistics(self) -> List[StatisticKind]:
        return available_statistics(len(self._state.columns))

    def column_means(self) -> List[Optional[float]]:
        return data.column_means(self._state)

    def column_standard_deviations(self) -> List[Optional[float]]:
        return data.column_standard_deviations(self._state)

    def add_listener(self, listener: ProgressListener) -> None:
        self._controller.add_listener(listener)

    def remove_listener(self, listener: ProgressListener) -> None:
        self._controller.remove_listener(listener)

    # ------------------------------------------------------------------
    # Data model
    # ------------------------------------------------------------------

    def add_row(self) -> ActionResult:
        return create_action_result(self._commit, data.add_row)

    def delete_row(self, index: int) -> ActionResult:
        return create_action_result(self._commit, data.delete_row, index)

    def update_cell(self, row_index: int, column_index: int, value) -> ActionResult:
        return create_action_result(
            self._commit, data.update_cell, row_index, column_index, value)

    def set_assignment(self, row_index: int, assignment: Optional[int]) -> ActionResult:
        return create_action_result(self._commit, data.set_assignment, row_index, assignment)

    def toggle_assignment(self, row_index: int) -> ActionResult:
        return create_action_result(self._commit, data.toggle_assignment, row_index)

    def set_block(self, row_index: int, block: Optional[str]) -> ActionResult:
        return create_action_result(self._commit, data.set_block, row_index, block)

    def rename_column(self, index: int, name: str) -> ActionResult:
        return create_action_result(self._commit, data.rename_column, index, name)

    def add_column(self, name: Optional[str] = None) -> ActionResult:
        return create_action_result(self._commit, data.add_column, name)

    def remove_column(self, index: int) -> ActionResult:
        return create_action_result(self._commit, data.remove_column, index)

    def set_baseline_column(self, index: int) -> ActionResult:
        return create_action_result(self._commit, data.set_baseline_column, index)

    def set_blocking_enabled(self, enabled: bool) -> ActionResult:
        return create_action_result(self._commit, data.set_blocking_enabled, enabled)

    def set_user_data(self, state: UserDataState) -> ActionResult:
        """Replace the whole data state after checking its invariants."""
        return create_action_result(self._commit, _replaced_by, state)

    def reset_user_data(self) -> ActionResult:
        """Restore the default two-column table (undoable)."""
        return create_action_result(self._commit, _reset_to_default)

    def empty_user_data(self) -> ActionResult:
        """Drop every row, keeping columns and settings (undoable)."""
        return create_action_result(self._commit, data.empty_user_data)

    def apply_treatment_effect(self, effects: Mapping[int, float]) -> ActionResult:
        """
        Fill potential outcomes under constant additive effects.

        See :func:`potential_outcomes.data.apply_treatment_effect`.
        """
        return create_action_result(self._commit, data.apply_treatment_effect, effects)

    def load_csv(self, raw_text: str) -> ActionResult:
        """Import delimited text; the current data is kept on failure."""
        return create_action_result(self._load_csv, raw_text)

    def to_frame(self) -> pd.DataFrame:
        return user_data_to_frame(self._state)

    def undo(self) -> ActionResult:
        return create_action_result(self._undo)

    def redo(self) -> ActionResult:
        return create_action_result(self._redo)

    def reset(self) -> ActionResult:
        """
        Start the session over.

        Stops and clears any run, restores the default data and forgets the
        undo/redo history. Settings are kept.
        """
        return create_action_result(self._reset)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_simulation_speed(self, speed: int) -> ActionResult:
        return create_action_result(self._set_simulation_speed, speed)

    def set_total_simulations(self, total: int) -> ActionResult:
        """Change the target permutation count; rejected while running."""
        return create_action_result(self._set_total_simulations, total)

    def set_selected_test_statistic(self, kind) -> ActionResult:
        return create_action_result(self._set_selected_test_statistic, kind)

    def set_p_value_type(self, tail_type) -> ActionResult:
        return create_action_result(self._set_p_value_type, tail_type)

    # ------------------------------------------------------------------
    # Simulation control
    # ------------------------------------------------------------------

    async def proceed_simulation(self) -> ActionResult:
        """
        Start or resume the run and wait until it stops.

        Returns
        -------
        ActionResult
            Describes whether the run could start. Preconditions
            (:class:`InsufficientDataError`, :class:`MissingGroupError`) and a
            start while running are reported as errors; a stale resume is
            reported as a warning.
        """
        result = create_action_result(self._controller.start, self._state)
        if result.success:
            await self._controller.run()
        return result

    def start_simulation(self) -> ActionResult:
        """
        Start or resume the run as a task on the running event loop.

        Must be called from within a running loop. The task is available as
        :attr:`task` until it finishes.
        """
        loop = asyncio.get_running_loop()
        result = create_action_result(self._controller.start, self._state)
        if result.success:
            self._task = loop.create_task(self._controller.run())
        return result

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def pause_simulation(self) -> ActionResult:
        """Stop the loop after its current iteration, keeping all results."""
        return create_action_result(self._pause)

    def clear_simulation_data(self) -> ActionResult:
        """Discard every result; pauses a running loop first."""
        return create_action_result(self._controller.clear)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_results(self) -> RandomizationResults:
        """
        Report on the permutations drawn so far.

        Statistics that cannot be evaluated on a permutation are reported as
        NaN.
        """
        kind = self._settings.selected_test_statistic
        snapshot = self._controller.snapshot
        baseline = self._state.baseline_column
        statistics = np.full(len(self._controller.results), np.nan)
        for i, result in enumerate(self._controller.results):
            try:
                statistics[i] = result.get_test_statistic(kind, baseline)
            except StatisticError:
                pass
        return RandomizationResults(
            statistic=kind,
            p_value_type=self._settings.p_value_type,
            observed_statistic=self._controller.observed_statistic,
            p_value=self._controller.p_value,
            statistics=statistics,
            target_simulations=self._settings.total_simulations,
            blocking_enabled=snapshot.blocking_enabled if snapshot else self._state.blocking_enabled,
        )

    def count_beyond_threshold(self, threshold: float, direction: str = 'geq') -> Tuple[int, float]:
        """Count and percentage of simulated statistics beyond ``threshold``."""
        return count_beyond_threshold(
            self._controller.results,
            self._settings.selected_test_statistic,
            threshold,
            direction,
            self._state.baseline_column,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _commit(self, transition: Callable[..., UserDataState], *args) -> None:
        """Apply one data transition, recording the previous state."""
        new_state = transition(self._state, *args)
        if new_state == self._state:
            logger.debug("%s left the data unchanged", transition.__name__)
            return
        self._history.push(self._state)
        logger.debug("Committed %s (%d in history)", transition.__name__, len(self._history))
        self._set_state(new_state)

    def _set_state(self, state: UserDataState) -> None:
        self._state = state
        self._ensure_statistic_supported()
        self._refresh_observed()

        n_valid = len(valid_rows(state))
        if n_valid > constants.LARGE_DATASET_ROW_THRESHOLD:
            warnings.warn(
                f"{n_valid} complete rows exceed {constants.LARGE_DATASET_ROW_THRESHOLD}; "
                f"simulation may be slow",
                LargeDatasetWarning,
                stacklevel=4,
            )

    def _ensure_statistic_supported(self) -> None:
        n_columns = len(self._state.columns)
        current = self._settings.selected_test_statistic
        if supports_column_count(current, n_columns):
            return
        new_kind = DEFAULT_MULTI_TREATMENT_STATISTIC
        self._settings.selected_test_statistic = new_kind
        msg = (
            f"{TEST_STATISTICS[current].name} supports two groups only; "
            f"switched to {TEST_STATISTICS[new_kind].name} for {n_columns} columns"
        )
        logger.info(msg)
        warnings.warn(msg, StatisticSwitchWarning, stacklevel=5)

    def _refresh_observed(self) -> None:
        """Recompute the live observed statistic and push it to the controller."""
        rows = valid_rows(self._state)
        kind = self._settings.selected_test_statistic
        observed = None
        if rows:
            try:
                observed = compute_statistic(kind, rows, self._state.baseline_column)
            except StatisticError as exc:
                logger.debug("Observed %s unavailable: %s", kind.value, exc)
        self._controller.set_observed(observed, self._state.baseline_column)

    def _load_csv(self, raw_text: str) -> None:
        state = parse_csv(raw_text)
        self._commit(_replaced_by, state)

    def _undo(self) -> None:
        self._set_state(self._history.undo(self._state))

    def _redo(self) -> None:
        self._set_state(self._history.redo(self._state))

    def _reset(self) -> None:
        self._controller.clear()
        self._history.clear()
        self._set_state(default_user_data())
        logger.info("Session reset")

    def _pause(self) -> None:
        if not self._controller.pause():
            raise SimulationStateError("No simulation is running")

    def _set_simulation_speed(self, speed) -> None:
        self._settings.simulation_speed = validate_simulation_speed(speed)

    def _set_total_simulations(self, total) -> None:
        if self._controller.is_simulating:
            raise SimulationStateError("Cannot change total simulations while a simulation is running")
        self._settings.total_simulations = validate_total_simulations(total)

    def _set_selected_test_statistic(self, kind) -> None:
        kind = validate_test_statistic(kind, len(self._state.columns))
        if kind == self._settings.selected_test_statistic:
            return
        self._settings.selected_test_statistic = kind
        logger.info("Test statistic set to %s", kind.value)
        self._refresh_observed()

    def _set_p_value_type(self, tail_type) -> None:
        tail_type = validate_p_value_type(tail_type)
        if tail_type == self._settings.p_value_type:
            return
        self._settings.p_value_type = tail_type
        self._controller.refresh_p_value()
