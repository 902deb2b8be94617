"""
Tests for the test statistic library and its registry.
"""

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from numpy.testing import assert_allclose
from scipy import stats

from potential_outcomes.data import Row
from potential_outcomes.exceptions import InvalidGroupCountError, InvalidParameterError
from potential_outcomes.teststats import (
    DEFAULT_MULTI_TREATMENT_STATISTIC,
    TEST_STATISTICS,
    StatisticKind,
    available_statistics,
    between_group_variance,
    compute_statistic,
    difference_in_means,
    difference_in_medians,
    f_statistic,
    group_values,
    ratio_of_means,
    ratio_of_variances,
    supports_column_count,
    to_statistic_kind,
    wilcoxon_rank_sum,
)


def rows_for(*groups):
    """One row per value, holding only the observed slot of its group."""
    n = len(groups)
    rows = []
    for g, values in enumerate(groups):
        for v in values:
            data = [None] * n
            data[g] = v
            rows.append(Row(tuple(data), assignment=g))
    return rows


finite = st.floats(min_value=-1e4, max_value=1e4, allow_nan=False, allow_infinity=False)


class TestGrouping:

    def test_reads_observed_slot(self):
        rows = [Row((1.0, 10.0), 0), Row((2.0, 20.0), 1), Row((3.0, 30.0), None)]
        groups = group_values(rows)
        assert list(groups) == [0, 1]
        assert_allclose(groups[0], [1.0])
        assert_allclose(groups[1], [20.0])

    def test_skips_empty_observed_slot(self):
        rows = [Row((None, 10.0), 0), Row((2.0, 20.0), 1)]
        assert list(group_values(rows)) == [1]


class TestTwoArmStatistics:

    def test_difference_in_means_example(self):
        rows = [Row((1.0, None), 0), Row((None, 3.0), 1)]
        assert difference_in_means(rows) == 2.0
        assert difference_in_means(rows) == difference_in_means(rows)

    def test_baseline_column_is_reference_group(self):
        rows = [Row((1.0, None), 0), Row((None, 3.0), 1)]
        assert difference_in_means(rows, baseline_column=1) == -2.0

    def test_unpopulated_baseline_falls_back_to_lowest_group(self):
        rows = rows_for([], [1.0, 3.0], [10.0])
        assert difference_in_means(rows, baseline_column=0) == pytest.approx(8.0)

    def test_difference_in_medians(self):
        rows = rows_for([1.0, 2.0, 100.0], [5.0, 6.0, 7.0, 8.0])
        assert difference_in_medians(rows) == pytest.approx(6.5 - 2.0)

    def test_ratio_of_means(self):
        rows = rows_for([2.0, 4.0], [9.0, 3.0])
        assert ratio_of_means(rows) == pytest.approx(2.0)

    def test_ratio_of_means_zero_reference_mean(self):
        rows = rows_for([-1.0, 1.0], [3.0])
        assert ratio_of_means(rows) == 1.0

    def test_ratio_of_variances_uses_sample_variance(self):
        rows = rows_for([1.0, 2.0, 3.0], [2.0, 4.0, 6.0])
        assert ratio_of_variances(rows) == pytest.approx(4.0)

    @pytest.mark.parametrize('groups', [
        ([1.0, 1.0, 1.0], [2.0, 4.0]),
        ([1.0, 2.0], [5.0, 5.0]),
        ([1.0], [2.0, 4.0]),
    ])
    def test_ratio_of_variances_neutral_when_undefined(self, groups):
        assert ratio_of_variances(rows_for(*groups)) == 1.0

    @pytest.mark.parametrize('func, neutral', [
        (difference_in_means, 0.0),
        (difference_in_medians, 0.0),
        (ratio_of_variances, 1.0),
        (ratio_of_means, 1.0),
    ])
    def test_neutral_on_degenerate_input(self, func, neutral):
        assert func([]) == neutral
        assert func(rows_for([1.0, 2.0], [])) == neutral

    @pytest.mark.parametrize('func', [
        difference_in_means,
        difference_in_medians,
        ratio_of_variances,
        ratio_of_means,
    ])
    def test_more_than_two_groups_rejected(self, func):
        rows = rows_for([1.0], [2.0], [3.0])
        with pytest.raises(InvalidGroupCountError, match="got 3"):
            func(rows)

    @given(
        control=st.lists(finite, min_size=1, max_size=20),
        treated=st.lists(finite, min_size=1, max_size=20),
    )
    @settings(max_examples=100)
    def test_difference_in_means_matches_numpy(self, control, treated):
        rows = rows_for(control, treated)
        expected = np.mean(treated) - np.mean(control)
        assert_allclose(difference_in_means(rows), expected, rtol=1e-9, atol=1e-6)


class TestWilcoxonRankSum:

    def test_rank_sum_of_reference_group(self):
        rows = rows_for([1.0, 4.0], [2.0, 3.0, 5.0])
        assert wilcoxon_rank_sum(rows) == 1 + 4

    def test_ties_share_average_rank(self):
        # pooled [1, 2, 2, 2, 3] -> ranks [1, 3, 3, 3, 5]
        rows = rows_for([1.0, 2.0, 2.0], [2.0, 3.0])
        assert wilcoxon_rank_sum(rows) == pytest.approx(7.0)

    def test_matches_scipy_rankdata(self):
        rng = np.random.default_rng(3)
        control = np.round(rng.normal(size=12), 1)
        treated = np.round(rng.normal(size=9), 1)
        ranks = stats.rankdata(np.concatenate([control, treated]))
        rows = rows_for(control.tolist(), treated.tolist())
        assert wilcoxon_rank_sum(rows) == pytest.approx(ranks[:12].sum())

    @pytest.mark.parametrize('groups', [
        ([1.0, 2.0], []),
        ([], []),
        ([1.0], [2.0], [3.0]),
    ])
    def test_requires_exactly_two_groups(self, groups):
        with pytest.raises(InvalidGroupCountError, match="Wilcoxon"):
            wilcoxon_rank_sum(rows_for(*groups))


class TestMultiGroupStatistics:

    def test_f_statistic_matches_scipy(self):
        a, b, c = [1.0, 2.0, 3.0], [4.0, 5.0, 7.0], [2.0, 9.0, 10.0]
        expected = stats.f_oneway(a, b, c).statistic
        assert_allclose(f_statistic(rows_for(a, b, c)), expected)

    def test_f_statistic_two_groups_matches_scipy(self):
        a, b = [1.0, 2.5, 3.0, 4.0], [4.0, 6.0, 5.5]
        assert_allclose(f_statistic(rows_for(a, b)), stats.f_oneway(a, b).statistic)

    def test_f_statistic_degenerate(self):
        assert f_statistic([]) == 0.0
        assert f_statistic(rows_for([1.0, 2.0], [])) == 0.0
        # n <= k
        assert f_statistic(rows_for([1.0], [2.0])) == 0.0

    def test_f_statistic_zero_within_group_variation(self):
        assert f_statistic(rows_for([1.0, 1.0], [2.0, 2.0])) == float('inf')
        assert f_statistic(rows_for([1.0, 1.0], [1.0, 1.0])) == 0.0

    def test_between_group_variance(self):
        a, b, c = [1.0, 3.0], [5.0, 7.0], [9.0]
        pooled = np.array(a + b + c)
        ssr = sum(len(g) * (np.mean(g) - pooled.mean()) ** 2 for g in (a, b, c))
        assert_allclose(between_group_variance(rows_for(a, b, c)), ssr / 2)

    def test_between_group_variance_single_group(self):
        assert between_group_variance(rows_for([1.0, 5.0])) == 0.0


class TestRegistry:

    def test_every_kind_registered(self):
        assert set(TEST_STATISTICS) == set(StatisticKind)

    def test_multi_treatment_flags(self):
        multi = {k for k, meta in TEST_STATISTICS.items() if meta.supports_multiple_treatments}
        assert multi == {StatisticKind.F_STATISTIC, StatisticKind.BETWEEN_GROUP_VARIANCE}
        assert DEFAULT_MULTI_TREATMENT_STATISTIC in multi

    def test_available_statistics(self):
        assert available_statistics(2) == list(StatisticKind)
        assert available_statistics(3) == [
            StatisticKind.F_STATISTIC,
            StatisticKind.BETWEEN_GROUP_VARIANCE,
        ]
        assert not supports_column_count('difference_in_means', 4)

    def test_kind_from_string(self):
        assert to_statistic_kind('wilcoxon_rank_sum') is StatisticKind.WILCOXON_RANK_SUM

    def test_unknown_kind(self):
        with pytest.raises(InvalidParameterError, match="Unknown test statistic"):
            to_statistic_kind('t_test')

    def test_compute_statistic_dispatches(self):
        rows = rows_for([1.0, 2.0], [4.0, 6.0])
        assert compute_statistic('difference_in_means', rows) == pytest.approx(3.5)
        assert compute_statistic(StatisticKind.RATIO_OF_MEANS, rows) == pytest.approx(5 / 1.5)
