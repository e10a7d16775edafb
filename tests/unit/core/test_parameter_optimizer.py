"""
Unit tests for the one-cycle optimization pipeline.

Tests cover:
- Candidate construction from a complete snapshot
- Confidence penalty for defaulted market fields
- ROI blending and learning rate tuning
- Stage failure fallbacks
- Conservative defaults
"""

import pytest

from adaptive_amm.core.errors import InputDataError, ComputationError
from adaptive_amm.core.parameter_optimizer import ParameterOptimizer, step_toward
from adaptive_amm.core.parameter_set import ParameterSet, ROIRecommendation, WEIGHT_TOTAL


class TestParameterOptimizer:
    """Test cases for ParameterOptimizer.optimize."""

    @pytest.fixture(autouse=True)
    def setup_optimizer(self, config):
        self.optimizer = ParameterOptimizer(config)

    def test_complete_snapshot(self, calm_analysis, default_parameters):
        """A full snapshot yields a valid, ungated decision."""
        result = self.optimizer.optimize(calm_analysis, default_parameters)
        decision = result.decision

        assert not result.degraded
        assert decision.confidence == pytest.approx(0.8)
        assert decision.action_index is not None
        assert decision.state_key == "0.20,1.00,0.50,0.30,0.80"
        assert decision.approved is False
        assert sum(decision.parameters.weights) == WEIGHT_TOTAL
        assert 5 <= decision.parameters.fee_rate <= 1000
        assert result.volatility == pytest.approx(0.02)

    def test_reasoning_trail(self, calm_analysis, default_parameters):
        """Policy, refinement and advisor notes are all present."""
        reasoning = self.optimizer.optimize(calm_analysis, default_parameters).decision.reasoning

        assert reasoning[0].startswith("exploitation")
        assert any(line.startswith("genetic refinement fitness") for line in reasoning)
        assert reasoning[-1].startswith("fee advisor: DECREASE_FEES")

    def test_missing_fields_reduce_confidence(self, default_parameters):
        """An empty snapshot costs half of the ML confidence."""
        result = self.optimizer.optimize({}, default_parameters)

        assert result.decision.confidence == pytest.approx(0.3)
        assert result.degraded
        assert isinstance(result.errors[0], InputDataError)

    def test_partial_fields_reduce_confidence(self, calm_analysis, default_parameters):
        """One defaulted field of five costs 0.1."""
        del calm_analysis['confidence']

        result = self.optimizer.optimize(calm_analysis, default_parameters)

        assert result.decision.confidence == pytest.approx(0.7)
        assert not result.degraded

    def test_roi_blended(self, calm_analysis, default_parameters):
        """An ROI recommendation averages confidences."""
        roi = ROIRecommendation(
            recommended_parameters=ParameterSet(fee_rate=40, spread_multiplier=1100),
            confidence=0.6,
            market_regime='NEUTRAL'
        )

        decision = self.optimizer.optimize(calm_analysis, default_parameters, roi).decision

        assert decision.confidence == pytest.approx(0.7)
        assert any(line.startswith("market regime NEUTRAL") for line in decision.reasoning)

    def test_roi_confidence_tunes_learning_rate(self, calm_analysis, default_parameters):
        """High ROI confidence raises the policy learning rate."""
        roi = ROIRecommendation(recommended_parameters=ParameterSet(), confidence=0.9)

        self.optimizer.optimize(calm_analysis, default_parameters, roi)

        assert self.optimizer.policy.learning_rate == pytest.approx(0.0105)

    def test_refinement_failure_falls_back(self, calm_analysis):
        """Zero-sum weights skip refinement and still produce a valid candidate."""
        current = ParameterSet(weights=[0, 0, 0, 0])

        result = self.optimizer.optimize(calm_analysis, current)

        assert result.degraded
        assert any(isinstance(e, ComputationError) for e in result.errors)
        assert result.decision.parameters.weights == [2500] * 4
        assert any(line.startswith("refinement skipped") for line in result.decision.reasoning)

    def test_state_roundtrip(self, calm_analysis, default_parameters):
        """Policy table and history are exported together."""
        result = self.optimizer.optimize(calm_analysis, default_parameters)
        self.optimizer.feedback.record_feedback(
            result.decision.state_key, result.decision.action_index, result.decision.parameters,
            {'profitability': 0.1, 'volume_change': 0.05, 'capital_efficiency': 1.2}
        )

        state = self.optimizer.get_state()

        assert len(state['policy']['q_table']) == 1
        assert len(state['history']) == 1


class TestConservativeDecision:
    """Test cases for the repeated-failure fallback."""

    def test_mid_range_defaults_nudged_by_advisor(self, config, default_parameters):
        """Calm markets lower the mid-range fee; spread and weights stay mid/equal."""
        optimizer = ParameterOptimizer(config)

        decision = optimizer.conservative_decision(default_parameters, 0.02, failures=3)

        assert decision.parameters.fee_rate < 502
        assert decision.parameters.spread_multiplier == 3000
        assert decision.parameters.weights == [2500] * 4
        assert decision.confidence == pytest.approx(0.9)
        assert decision.reasoning[0].startswith("conservative defaults after 3")

    def test_volatile_markets_raise_fee(self, config, default_parameters):
        """Volatile markets raise the mid-range fee."""
        optimizer = ParameterOptimizer(config)

        decision = optimizer.conservative_decision(default_parameters, 0.1, failures=3)

        assert decision.parameters.fee_rate == 1000
        assert decision.confidence == pytest.approx(1.0)

    def test_steps_from_last_deployed(self, config):
        """A previous deployment limits each fee and spread move to the change cap."""
        optimizer = ParameterOptimizer(config)
        last = ParameterSet(fee_rate=40, spread_multiplier=1000)

        decision = optimizer.conservative_decision(ParameterSet(), 0.02, failures=3, last_deployed=last)

        assert decision.parameters.fee_rate == 48
        assert decision.parameters.spread_multiplier == 1200
        assert decision.parameters.weights == [2500] * 4
        assert decision.reasoning[1].startswith("stepping toward")

    def test_reaches_target_when_close(self, config, default_parameters):
        """Within one step of the defaults the target itself is proposed."""
        optimizer = ParameterOptimizer(config)
        target = optimizer.conservative_decision(default_parameters, 0.02, failures=3).parameters
        last = ParameterSet(fee_rate=target.fee_rate + 10, spread_multiplier=target.spread_multiplier - 100)

        decision = optimizer.conservative_decision(default_parameters, 0.02, failures=3, last_deployed=last)

        assert decision.parameters.fee_rate == target.fee_rate
        assert decision.parameters.spread_multiplier == target.spread_multiplier


class TestStepToward:
    """Test cases for the bounded step helper."""

    @pytest.mark.parametrize("previous,target,expected", [
        (100, 500, 120),
        (100, 50, 80),
        (100, 110, 110),
        (100, 100, 100),
        (0, 300, 300),
    ])
    def test_step(self, previous, target, expected):
        """Steps are capped at 20% of the previous value."""
        assert step_toward(previous, target, 0.2) == expected
