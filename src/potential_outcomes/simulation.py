"""
Simulation Controller Module

Runs the randomization test incrementally: one permutation per step,
throttled by the user-set speed, publishing every partial result set.

The loop is a single cooperative coroutine. Each iteration draws one
permutation of the frozen snapshot synchronously, appends it, updates the
running p-value, publishes, then suspends for the speed-derived delay. The
only suspension point is that delay, so no two iterations overlap and a
statistic is never interrupted mid-computation.

State machine::

    IDLE --proceed--> RUNNING --pause--> PAUSED --proceed--> RUNNING
                         |                                      |
                         +--target reached--> COMPLETED <-------+
    any --clear--> IDLE

Cancellation is cooperative and checked at the top of every iteration;
results drawn before a pause are kept and a resume continues from the
exact count reached.
"""

import asyncio
import logging
import math
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

import numpy as np

from . import constants
from .data import (
    SimulationSnapshot,
    UserDataState,
    group_sizes,
    snapshots_match,
    take_snapshot,
    valid_rows,
)
from .exceptions import (
    InsufficientDataError,
    MissingGroupError,
    SimulationStateError,
    StatisticError,
)
from .pvalue import PValueType, count_extreme, is_extreme
from .randomization import simulate
from .results import SimulationResult
from .teststats import StatisticKind
from .warnings_categories import StaleSnapshotWarning

logger = logging.getLogger(__name__)

ProgressListener = Callable[[Tuple[SimulationResult, ...], Optional[float]], None]


class SimulationStatus(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    PAUSED = 'paused'
    COMPLETED = 'completed'


@dataclass
class SimulationSettings:
    """
    Runtime-adjustable settings of a session.

    Values are validated by the engine before they are stored here.
    """
    simulation_speed: int = constants.DEFAULT_SIMULATION_SPEED
    total_simulations: int = constants.DEFAULT_TOTAL_SIMULATIONS
    selected_test_statistic: StatisticKind = StatisticKind.DIFFERENCE_IN_MEANS
    p_value_type: PValueType = PValueType.TWO_TAILED


def sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


def speed_to_delay(speed: float) -> float:
    """
    Delay between iterations in milliseconds.

    ``max(1500 * (1 - sigmoid((speed - 50) / 10)), 2)``: higher speed gives
    a shorter delay, with the steepest change around speed 50.
    """
    x = (speed - constants.SPEED_MIDPOINT) / constants.SPEED_SCALE
    delay = constants.BASE_DELAY_MS * (1.0 - sigmoid(x))
    return max(delay, constants.MIN_DELAY_MS)


def validate_simulation_data(state: UserDataState) -> None:
    """
    Check that ``state`` can be permuted.

    Raises
    ------
    InsufficientDataError
        If fewer than two complete rows exist.
    MissingGroupError
        If any column has no assigned complete row; every such column is
        named.
    """
    n_valid = len(valid_rows(state))
    if n_valid < constants.MIN_COMPLETE_ROWS:
        raise InsufficientDataError(
            f"At least {constants.MIN_COMPLETE_ROWS} complete rows are required "
            f"to simulate, got {n_valid}"
        )
    missing = [
        state.columns[i].name
        for i, size in group_sizes(state).items()
        if size == 0
    ]
    if missing:
        raise MissingGroupError(missing)


class SimulationController:
    """
    Single-flight permutation loop with pause, resume and clear.

    Parameters
    ----------
    settings : SimulationSettings
        Shared with the engine; speed and target are read live.
    seed : int, optional
        Seed for the permutation generator.
    sleep : callable, optional
        ``async sleep(seconds)`` used between iterations. By default the
        loop waits on its cancellation signal with a timeout, so a pause
        takes effect without waiting out the delay.

    Notes
    -----
    The p-value is computed against the *live* observed statistic pushed in
    through :meth:`set_observed`, not a statistic of the snapshot being
    permuted.
    """

    def __init__(
        self,
        settings: SimulationSettings,
        *,
        seed: Optional[int] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.settings = settings
        self._rng = np.random.default_rng(seed)
        self._sleep = sleep
        self._listeners: List[ProgressListener] = []

        self._status = SimulationStatus.IDLE
        self._results: Tuple[SimulationResult, ...] = ()
        self._p_value: Optional[float] = None
        self._snapshot: Optional[SimulationSnapshot] = None
        self._cancel: Optional[asyncio.Event] = None
        self._generation = 0

        self._observed: Optional[float] = None
        self._baseline_column = 0
        # Running count of extreme results and the comparison it belongs to
        self._extreme_count = 0
        self._count_key = None
        # Comparison that last failed to evaluate; stays unscored until it changes
        self._failed_key = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def status(self) -> SimulationStatus:
        return self._status

    @property
    def is_simulating(self) -> bool:
        return self._status == SimulationStatus.RUNNING

    @property
    def results(self) -> Tuple[SimulationResult, ...]:
        return self._results

    @property
    def p_value(self) -> Optional[float]:
        return self._p_value

    @property
    def snapshot(self) -> Optional[SimulationSnapshot]:
        return self._snapshot

    @property
    def observed_statistic(self) -> Optional[float]:
        return self._observed

    def add_listener(self, listener: ProgressListener) -> None:
        """Call ``listener(results, p_value)`` after every published change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ProgressListener) -> None:
        self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self, state: UserDataState) -> None:
        """
        Transition to RUNNING without drawing anything yet.

        A run that already reached its target is cleared and restarted on a
        fresh snapshot of ``state``. A paused run keeps its original
        snapshot and resumes from the count it reached. The results of a
        finished run are only discarded once ``state`` passes the checks.

        Raises
        ------
        SimulationStateError
            If a run is already in flight.
        InsufficientDataError, MissingGroupError
            If a fresh run cannot start on ``state``.
        """
        if self.is_simulating:
            raise SimulationStateError("Simulation already in progress")

        restart = len(self._results) >= self.settings.total_simulations
        if restart or not self._results:
            validate_simulation_data(state)
            if restart:
                self._discard()
            self._snapshot = take_snapshot(state)
        elif not snapshots_match(self._snapshot, take_snapshot(state)):
            warnings.warn(
                "Data changed since this run started; resuming on the original snapshot",
                StaleSnapshotWarning,
                stacklevel=2,
            )

        self._generation += 1
        self._cancel = asyncio.Event()
        self._status = SimulationStatus.RUNNING
        logger.info(
            "Simulation running from %d/%d (blocking=%s)",
            len(self._results),
            self.settings.total_simulations,
            self._snapshot.blocking_enabled,
        )

    async def run(self) -> SimulationStatus:
        """
        Drive a started run until it reaches its target or is stopped.

        A run paused or cleared before this coroutine got scheduled returns
        at once without drawing.

        Returns
        -------
        SimulationStatus
            The status once this loop exits: ``COMPLETED``, ``PAUSED``, or
            ``IDLE`` if the run was cleared meanwhile.
        """
        if not self.is_simulating:
            return self._status
        generation = self._generation
        cancel = self._cancel

        try:
            while not cancel.is_set() and generation == self._generation:
                if len(self._results) >= self.settings.total_simulations:
                    break
                self._step()
                delay = speed_to_delay(self.settings.simulation_speed) / 1000.0
                await self._suspend(delay, cancel)
        finally:
            if generation == self._generation and self._status == SimulationStatus.RUNNING:
                if len(self._results) >= self.settings.total_simulations:
                    self._status = SimulationStatus.COMPLETED
                    logger.info("Simulation completed with %d results", len(self._results))
                else:
                    self._status = SimulationStatus.PAUSED
                    logger.info("Simulation stopped at %d results", len(self._results))
                self._cancel = None
        return self._status

    async def proceed(self, state: UserDataState) -> SimulationStatus:
        """Start (or resume) on ``state`` and run until the loop stops."""
        self.start(state)
        return await self.run()

    def pause(self) -> bool:
        """
        Signal the running loop to stop after its current iteration.

        Returns
        -------
        bool
            Whether a run was in flight.
        """
        if not self.is_simulating:
            return False
        self._stop_loop()
        self._status = SimulationStatus.PAUSED
        logger.info("Simulation paused at %d results", len(self._results))
        return True

    def clear(self) -> None:
        """Discard every result, pausing a running loop first."""
        if self.is_simulating:
            self._stop_loop()
        self._discard()
        self._status = SimulationStatus.IDLE
        logger.info("Simulation results cleared")
        self._publish()

    def set_observed(self, observed: Optional[float], baseline_column: int) -> None:
        """Push the live observed statistic and refresh the p-value."""
        self._observed = observed
        self._baseline_column = baseline_column
        self.refresh_p_value()

    def refresh_p_value(self) -> Optional[float]:
        """
        Recompute the p-value over every accumulated result.

        Called when the statistic kind, tail type or observed statistic
        changes. Publishes when the value changed.
        """
        previous = self._p_value
        self._count_key = None
        self._failed_key = None
        self._p_value = self._running_p_value(None)
        if self._p_value != previous:
            self._publish()
        return self._p_value

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _step(self) -> None:
        """Draw, append, score and publish one permutation."""
        result = simulate(
            self._snapshot.rows,
            self._snapshot.blocking_enabled,
            self._rng,
        )
        self._results = self._results + (result,)
        self._p_value = self._running_p_value(result)
        logger.debug("Simulation %d: p=%s", len(self._results), self._p_value)
        self._publish()

    def _running_p_value(self, new_result: Optional[SimulationResult]) -> Optional[float]:
        """
        p-value over exactly the current results.

        Counts incrementally while the comparison (observed statistic, kind,
        tail, baseline) is unchanged and recounts from scratch otherwise.
        """
        if not self._results or self._observed is None:
            self._count_key = None
            return None

        kind = self.settings.selected_test_statistic
        tail = self.settings.p_value_type
        key = (self._observed, kind, tail, self._baseline_column)
        if key == self._failed_key:
            return None
        try:
            if key != self._count_key or new_result is None:
                statistics = [
                    r.get_test_statistic(kind, self._baseline_column) for r in self._results
                ]
                self._extreme_count = count_extreme(statistics, self._observed, tail)
                self._count_key = key
            else:
                stat = new_result.get_test_statistic(kind, self._baseline_column)
                if is_extreme(stat, self._observed, tail):
                    self._extreme_count += 1
        except StatisticError as exc:
            logger.warning("Cannot evaluate %s on simulated data: %s", kind.value, exc)
            self._count_key = None
            self._failed_key = key
            return None

        return self._extreme_count / len(self._results)

    def _stop_loop(self) -> None:
        if self._cancel is not None:
            self._cancel.set()
            self._cancel = None
        self._generation += 1

    def _discard(self) -> None:
        self._results = ()
        self._p_value = None
        self._snapshot = None
        self._count_key = None
        self._failed_key = None
        self._extreme_count = 0

    def _publish(self) -> None:
        for listener in list(self._listeners):
            listener(self._results, self._p_value)

    async def _suspend(self, seconds: float, cancel: asyncio.Event) -> None:
        if self._sleep is not None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
