"""
Tests for the session engine and its ActionResult boundary.
"""

import asyncio
import logging
import warnings

import numpy as np
import pytest

from potential_outcomes import constants
from potential_outcomes.data import Row, default_user_data
from potential_outcomes.engine import ActionResult, SimulationEngine, create_action_result
from potential_outcomes.exceptions import InvalidParameterError
from potential_outcomes.pvalue import PValueType, calculate_p_value
from potential_outcomes.simulation import SimulationStatus
from potential_outcomes.teststats import StatisticKind
from potential_outcomes.warnings_categories import LargeDatasetWarning, StaleSnapshotWarning


@pytest.fixture
def engine(no_sleep, two_group_csv):
    eng = SimulationEngine(seed=2024, sleep=no_sleep)
    assert eng.load_csv(two_group_csv).success
    assert eng.set_total_simulations(40).success
    assert eng.set_simulation_speed(100).success
    return eng


def expected_p(eng):
    return calculate_p_value(
        eng.observed_statistic,
        eng.simulation_results,
        eng.settings.selected_test_statistic,
        eng.settings.p_value_type,
        eng.user_data.baseline_column,
    )


def pause_at(eng, count):
    eng.add_listener(
        lambda results, p: eng.pause_simulation() if len(results) == count else None)


class TestCreateActionResult:

    def test_success(self):
        assert create_action_result(lambda: None) == ActionResult(success=True)

    def test_domain_error_becomes_result(self):
        def action():
            raise InvalidParameterError("bad value")

        result = create_action_result(action)
        assert result == ActionResult(success=False, error="bad value")

    def test_programming_errors_propagate(self):
        def action():
            raise TypeError("bug")

        with pytest.raises(TypeError):
            create_action_result(action)

    def test_package_warnings_collected(self):
        def action():
            warnings.warn("first", LargeDatasetWarning)
            warnings.warn("second", StaleSnapshotWarning)

        result = create_action_result(action)
        assert result.success
        assert result.warning == "first; second"

    def test_foreign_warnings_reemitted(self):
        def action():
            warnings.warn("deprecated thing", DeprecationWarning)

        with pytest.warns(DeprecationWarning, match="deprecated thing"):
            result = create_action_result(action)
        assert result.warning is None

    def test_arguments_forwarded(self):
        seen = []
        create_action_result(lambda a, b=0: seen.append((a, b)), 1, b=2)
        assert seen == [(1, 2)]


class TestDataOperations:

    def test_observed_statistic_follows_edits(self):
        eng = SimulationEngine()
        assert eng.observed_statistic is None
        eng.update_cell(0, 0, 1.0)
        eng.update_cell(0, 1, 2.0)
        eng.update_cell(1, 1, 3.0)
        eng.update_cell(1, 0, 1.5)
        assert eng.observed_statistic == 2.0
        eng.undo()
        assert eng.observed_statistic == 0.0

    def test_loaded_data(self, engine):
        assert engine.user_data.column_names == ['Control', 'Treatment']
        assert len(engine.user_data.rows) == 7
        assert engine.observed_statistic == pytest.approx(23 / 3 - 2)

    def test_rejected_edit_leaves_state(self, engine):
        before = engine.user_data
        result = engine.delete_row(99)
        assert not result.success
        assert "out of range" in result.error
        assert engine.user_data is before

    def test_baseline_switch_flips_sign(self, engine):
        observed = engine.observed_statistic
        assert engine.set_baseline_column(1).success
        assert engine.observed_statistic == pytest.approx(-observed)

    def test_add_column_forces_multi_arm_statistic(self, engine, caplog):
        with caplog.at_level(logging.INFO, logger='potential_outcomes'):
            result = engine.add_column()
        assert result.success
        assert "switched to F-Statistic" in result.warning
        assert "switched to F-Statistic" in caplog.text
        assert engine.settings.selected_test_statistic is StatisticKind.F_STATISTIC
        assert engine.available_statistics == [
            StatisticKind.F_STATISTIC, StatisticKind.BETWEEN_GROUP_VARIANCE]

        result = engine.set_selected_test_statistic('difference_in_means')
        assert not result.success
        assert "two groups only" in result.error

    def test_multi_arm_statistic_kept(self, engine):
        engine.set_selected_test_statistic('between_group_variance')
        result = engine.add_column()
        assert result.warning is None
        assert engine.settings.selected_test_statistic is StatisticKind.BETWEEN_GROUP_VARIANCE

    def test_remove_last_allowed_column(self, engine):
        result = engine.remove_column(0)
        assert not result.success
        assert "At least 2" in result.error

    def test_reset_user_data_is_undoable(self, engine):
        loaded = engine.user_data
        assert engine.reset_user_data().success
        assert engine.user_data == default_user_data()
        assert engine.undo().success
        assert engine.user_data == loaded

    def test_empty_user_data(self, engine):
        assert engine.empty_user_data().success
        assert len(engine.user_data.rows) == 1
        assert engine.observed_statistic is None

    def test_apply_treatment_effect(self):
        eng = SimulationEngine()
        eng.load_csv("Control,Treatment,assignment\n10,,0\n,15,1\n12,,0\n,11,1")
        assert eng.apply_treatment_effect({1: 2.0}).success
        rows = eng.user_data.rows[:-1]
        assert [r.data for r in rows] == [(10.0, 12.0), (13.0, 15.0), (12.0, 14.0), (9.0, 11.0)]
        assert eng.observed_statistic == pytest.approx(2.0)

    def test_set_block_and_blocking(self, engine):
        assert engine.set_block(0, 'A').success
        assert engine.set_blocking_enabled(True).success
        assert engine.user_data.rows[0].block == 'A'
        assert engine.user_data.blocking_enabled

    def test_set_user_data_validates(self, engine):
        state = engine.user_data
        broken = state.__class__(
            rows=state.rows[:-1], columns=state.columns, color_stack=state.color_stack)
        result = engine.set_user_data(broken)
        assert not result.success
        assert engine.user_data is state

    def test_load_csv_failure_keeps_data(self, engine):
        before = engine.user_data
        result = engine.load_csv("Control\n1\n2")
        assert not result.success
        assert engine.user_data is before

    def test_large_dataset_warning(self):
        eng = SimulationEngine()
        n = constants.LARGE_DATASET_ROW_THRESHOLD + 1
        lines = ["Control,Treatment,assignment"]
        lines += [f"{i},{i + 1},{i % 2}" for i in range(n)]
        result = eng.load_csv("\n".join(lines))
        assert result.success
        assert "exceed" in result.warning

    def test_column_summaries(self, engine):
        assert engine.column_means() == [pytest.approx(2.0), pytest.approx(23 / 3)]
        assert engine.column_standard_deviations()[0] == pytest.approx((2 / 3) ** 0.5)

    def test_to_frame(self, engine):
        df = engine.to_frame()
        assert list(df.columns) == ['Control', 'Treatment', 'assignment', 'block']
        assert len(df) == 6


class TestSettings:

    @pytest.mark.parametrize('speed', [0, 101, 2.5, 'fast'])
    def test_speed_range(self, engine, speed):
        assert not engine.set_simulation_speed(speed).success
        assert engine.settings.simulation_speed == 100

    @pytest.mark.parametrize('total', [0, 10_001, None])
    def test_total_range(self, engine, total):
        assert not engine.set_total_simulations(total).success
        assert engine.settings.total_simulations == 40

    def test_unknown_statistic(self, engine):
        result = engine.set_selected_test_statistic('t_test')
        assert not result.success
        assert engine.settings.selected_test_statistic is StatisticKind.DIFFERENCE_IN_MEANS

    def test_settings_view_is_a_copy(self, engine):
        engine.settings.total_simulations = 7
        assert engine.settings.total_simulations == 40

    def test_total_locked_while_running(self, engine):
        async def scenario():
            assert engine.start_simulation().success
            result = engine.set_total_simulations(10)
            engine.pause_simulation()
            await engine.task
            return result

        result = asyncio.run(scenario())
        assert not result.success
        assert "running" in result.error
        assert engine.settings.total_simulations == 40


class TestSimulationControl:

    def test_full_run(self, engine):
        result = asyncio.run(engine.proceed_simulation())
        assert result == ActionResult(success=True)
        assert engine.status is SimulationStatus.COMPLETED
        assert len(engine.simulation_results) == 40
        assert engine.p_value == expected_p(engine)
        assert not engine.is_stale

    def test_package_quick_start(self, no_sleep):
        eng = SimulationEngine(seed=42, sleep=no_sleep)
        assert eng.load_csv("Control,Treatment,assignment\n"
                            "10,11,0\n12,13,0\n14,15,1\n16,17,1").success
        assert eng.set_total_simulations(200).success
        assert eng.set_simulation_speed(100).success

        assert asyncio.run(eng.proceed_simulation()).success
        report = eng.get_results()
        assert report.n_simulations == 200
        assert eng.observed_statistic == pytest.approx(5.0)
        assert 0.0 <= report.p_value <= 1.0

    def test_insufficient_data(self):
        eng = SimulationEngine()
        result = asyncio.run(eng.proceed_simulation())
        assert not result.success
        assert "complete rows" in result.error
        assert eng.status is SimulationStatus.IDLE

    def test_missing_group(self):
        eng = SimulationEngine()
        eng.load_csv("Control,Treatment,assignment\n1,2,0\n3,4,0")
        result = asyncio.run(eng.proceed_simulation())
        assert result.error == "No complete rows assigned to: Treatment"

    def test_start_while_running_rejected(self, engine):
        async def scenario():
            engine.start_simulation()
            second = engine.start_simulation()
            engine.pause_simulation()
            await engine.task
            return second

        assert not asyncio.run(scenario()).success

    def test_pause_when_idle_reported(self, engine):
        assert not engine.pause_simulation().success

    def test_statistic_change_recomputes_p_value(self, engine):
        asyncio.run(engine.proceed_simulation())
        assert engine.set_selected_test_statistic('wilcoxon_rank_sum').success
        assert engine.p_value == expected_p(engine)
        assert engine.set_p_value_type('left-tailed').success
        assert engine.settings.p_value_type is PValueType.LEFT_TAILED
        assert engine.p_value == expected_p(engine)

    def test_live_edit_changes_p_value_not_results(self, engine):
        asyncio.run(engine.proceed_simulation())
        results = engine.simulation_results
        engine.update_cell(0, 0, -20.0)
        assert engine.is_stale
        assert engine.simulation_results is results
        assert engine.p_value == expected_p(engine)

    def test_stale_resume_warns(self, engine):
        pause_at(engine, 10)
        asyncio.run(engine.proceed_simulation())
        assert engine.status is SimulationStatus.PAUSED
        engine.update_cell(0, 0, 50.0)

        result = asyncio.run(engine.proceed_simulation())
        assert result.success
        assert "Data changed" in result.warning
        assert len(engine.simulation_results) == 40

    def test_clear_simulation_data(self, engine):
        asyncio.run(engine.proceed_simulation())
        assert engine.clear_simulation_data().success
        assert engine.simulation_results == ()
        assert engine.p_value is None
        assert engine.status is SimulationStatus.IDLE
        assert engine.observed_statistic is not None

    def test_reset(self, engine):
        asyncio.run(engine.proceed_simulation())
        assert engine.reset().success
        assert engine.user_data == default_user_data()
        assert engine.simulation_results == ()
        assert not engine.can_undo and not engine.can_redo

    def test_get_results(self, engine):
        asyncio.run(engine.proceed_simulation())
        report = engine.get_results()
        assert report.n_simulations == 40
        assert report.is_complete
        assert report.p_value == engine.p_value
        assert report.observed_statistic == engine.observed_statistic
        assert np.isfinite(report.statistics).all()
        assert "Randomization Test Results" in report.summary()

    def test_count_beyond_threshold(self, engine):
        asyncio.run(engine.proceed_simulation())
        # the observed split is the most extreme one available
        assert engine.count_beyond_threshold(engine.observed_statistic, 'leq') == (40, 100.0)
        count, pct = engine.count_beyond_threshold(engine.observed_statistic, 'geq')
        assert pct == 100.0 * count / 40

    def test_blocked_run(self, engine):
        for i, block in enumerate(['A', 'A', 'B', 'A', 'B', 'B']):
            engine.set_block(i, block)
        engine.set_blocking_enabled(True)
        asyncio.run(engine.proceed_simulation())
        assert engine.get_results().blocking_enabled
        expected = sorted((r.block, r.assignment) for r in engine.user_data.rows[:-1])
        for result in engine.simulation_results:
            assert sorted((r.block, r.assignment) for r in result.rows) == expected


class TestRowExample:

    def test_entry_row_promotion_through_engine(self):
        eng = SimulationEngine()
        eng.update_cell(0, 1, 4.0)
        assert eng.user_data.rows[0] == Row((None, 4.0), 1)
        assert eng.user_data.rows[-1].is_open
        assert eng.can_undo
