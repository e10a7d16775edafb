"""
Unit tests for the performance feedback loop.

Tests cover:
- Reward computation and clamping
- Policy updates from recorded outcomes
- Records with uncomputable rewards
- Bounded history and aggregate summaries
"""

from unittest.mock import Mock

import pytest

from adaptive_amm.core.errors import InputDataError
from adaptive_amm.core.feedback_loop import (
    PerformanceFeedbackLoop,
    BASELINE_METRICS,
    compute_reward
)
from adaptive_amm.core.parameter_set import ParameterSet


class TestComputeReward:
    """Test cases for the reward function."""

    def test_positive_outcome(self):
        """Profit, growing volume and efficiency all add up."""
        reward = compute_reward({'profitability': 0.1, 'volume_change': 0.05, 'capital_efficiency': 1.2})

        assert reward == pytest.approx(0.55)

    def test_volume_drop_penalty(self):
        """Volume falling more than 10% costs 0.3."""
        reward = compute_reward({'profitability': 0.1, 'volume_change': -0.2, 'capital_efficiency': 1.0})

        assert reward == pytest.approx(-0.25)

    def test_small_volume_drop_neutral(self):
        """Volume changes within (-10%, 0] add nothing."""
        reward = compute_reward({'profitability': 0.1, 'volume_change': -0.05, 'capital_efficiency': 0.9})

        assert reward == pytest.approx(0.05)

    def test_reward_clamped(self):
        """Rewards stay within [-1, 1]."""
        high = compute_reward({'profitability': 4.0, 'volume_change': 0.5, 'capital_efficiency': 2.0})
        low = compute_reward({'profitability': -4.0, 'volume_change': -0.5, 'capital_efficiency': 0.5})

        assert high == 1.0
        assert low == -1.0

    def test_camel_case_metrics(self):
        """External readers may use camelCase keys."""
        reward = compute_reward({'profitability': 0.1, 'volumeChange': 0.05, 'capitalEfficiency': 1.2})

        assert reward == pytest.approx(0.55)

    @pytest.mark.parametrize("metrics", [
        None,
        {},
        {'profitability': 0.1, 'volume_change': 0.05},
        {'profitability': 'n/a', 'volume_change': 0.05, 'capital_efficiency': 1.0},
        {'profitability': float('nan'), 'volume_change': 0.05, 'capital_efficiency': 1.0},
    ])
    def test_uncomputable_metrics(self, metrics):
        """Missing or non-numeric metrics raise InputDataError."""
        with pytest.raises(InputDataError):
            compute_reward(metrics)


class TestPerformanceFeedbackLoop:
    """Test cases for PerformanceFeedbackLoop."""

    def setup_method(self):
        self.policy = Mock()
        self.loop = PerformanceFeedbackLoop(self.policy)
        self.params = ParameterSet(fee_rate=40)
        self.metrics = {'profitability': 0.1, 'volume_change': 0.05, 'capital_efficiency': 1.2}

    def test_record_updates_policy(self):
        """A computable reward is fed into the policy."""
        record = self.loop.record_feedback('s', 3, self.params, self.metrics, timestamp=100.0)

        self.policy.update.assert_called_once_with('s', 3, pytest.approx(0.55))
        assert record.reward == pytest.approx(0.55)
        assert record.error is None
        assert record.timestamp == 100.0
        assert self.loop.history_size == 1

    def test_missing_metrics_stored_without_update(self):
        """Uncomputable rewards are kept with their error and skip the update."""
        record = self.loop.record_feedback('s', 3, self.params, None)

        self.policy.update.assert_not_called()
        assert record.reward is None
        assert record.error
        assert self.loop.history_size == 1
        assert self.loop.skipped_updates == 1

    def test_no_action_no_update(self):
        """Emergency deployments carry no action to credit."""
        self.loop.record_feedback(None, None, self.params, self.metrics)

        self.policy.update.assert_not_called()
        assert self.loop.history_size == 1

    def test_record_copies_parameters(self):
        """Later changes to the deployed set do not leak into history."""
        record = self.loop.record_feedback('s', 0, self.params, self.metrics)
        self.params.fee_rate = 999

        assert record.deployed_parameters.fee_rate == 40

    def test_ring_buffer_capacity(self):
        """Only the last 100 records are kept."""
        for i in range(150):
            self.loop.record_feedback('s', 0, self.params, self.metrics, timestamp=float(i))

        assert self.loop.history_size == 100
        assert self.loop.history[0].timestamp == 50.0

    def test_recent_metrics_baseline(self):
        """Empty history reports the baseline."""
        assert self.loop.recent_metrics() == BASELINE_METRICS

    def test_recent_metrics_average(self):
        """Valid records are averaged, invalid ones ignored."""
        self.loop.record_feedback('s', 0, self.params, self.metrics)
        self.loop.record_feedback('s', 0, self.params,
                                  {'profitability': 0.3, 'volume_change': 0.15, 'capital_efficiency': 0.8})
        self.loop.record_feedback('s', 0, self.params, None)

        metrics = self.loop.recent_metrics()

        assert metrics['profitability'] == pytest.approx(0.2)
        assert metrics['volume_change'] == pytest.approx(0.1)
        assert metrics['capital_efficiency'] == pytest.approx(1.0)

    def test_performance_summary(self):
        """Summary aggregates rewards over valid records."""
        self.loop.record_feedback('s', 0, self.params, self.metrics)
        self.loop.record_feedback('s', 0, self.params,
                                  {'profitability': -0.1, 'volume_change': -0.2, 'capital_efficiency': 1.0})
        self.loop.record_feedback('s', 0, self.params, {})

        summary = self.loop.get_performance_summary()

        assert summary['records'] == 3
        assert summary['valid_records'] == 2
        assert summary['avg_reward'] == pytest.approx((0.55 - 0.35) / 2)
        assert summary['positive_ratio'] == pytest.approx(0.5)
        assert summary['avg_fee_rate'] == pytest.approx(40)

    def test_empty_summary(self):
        """Summary of an empty history."""
        assert self.loop.get_performance_summary()['records'] == 0

    def test_history_roundtrip(self):
        """History survives export and import."""
        self.loop.record_feedback('s', 2, self.params, self.metrics, timestamp=5.0)
        exported = self.loop.get_history()

        other = PerformanceFeedbackLoop(Mock())
        other.load_history(exported)

        assert other.get_history() == exported
