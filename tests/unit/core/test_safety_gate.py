"""
Unit tests for the deployment safety gate.

Tests cover:
- Each rejection rule and its order
- Change limits relative to the last deployment
- Absence of side effects
"""

import pytest

from adaptive_amm.core.parameter_set import ParameterSet
from adaptive_amm.core.safety_gate import SafetyGate, RejectionReason, change_ratio
from adaptive_amm.utils.config import OptimizerConfig

NOW = 1_700_000_000.0


class TestSafetyGate:
    """Test cases for SafetyGate.evaluate."""

    def setup_method(self):
        self.gate = SafetyGate(OptimizerConfig())
        self.last = ParameterSet(fee_rate=100, spread_multiplier=1500)

    def evaluate(self, candidate, confidence=0.8, last=None, last_time=None, emergency=False, now=NOW):
        return self.gate.evaluate(candidate, confidence, last, last_time, emergency, now)

    def test_approves_first_deployment(self):
        """Nothing deployed yet skips the change and interval rules."""
        result = self.evaluate(ParameterSet(fee_rate=500, spread_multiplier=4000))

        assert result.approved
        assert result.reason is None

    def test_low_confidence_rejected(self):
        """Confidence 0.5 against threshold 0.6."""
        result = self.evaluate(ParameterSet(), confidence=0.5)

        assert not result.approved
        assert result.reason == RejectionReason.CONFIDENCE_TOO_LOW
        assert result.reason_text == "confidence too low"

    def test_threshold_is_inclusive(self):
        """Confidence equal to the threshold passes."""
        assert self.evaluate(ParameterSet(), confidence=0.6).approved

    def test_emergency_floor(self):
        """Emergency mode requires fee >= 100 and spread >= 1200."""
        low_fee = self.evaluate(ParameterSet(fee_rate=50, spread_multiplier=1500), emergency=True)
        low_spread = self.evaluate(ParameterSet(fee_rate=150, spread_multiplier=1100), emergency=True)
        at_floor = self.evaluate(ParameterSet(fee_rate=100, spread_multiplier=1200), emergency=True)

        assert low_fee.reason == RejectionReason.EMERGENCY_FLOOR_VIOLATED
        assert low_spread.reason == RejectionReason.EMERGENCY_FLOOR_VIOLATED
        assert at_floor.approved

    def test_floor_ignored_outside_emergency(self):
        """Low fees are fine in normal mode."""
        assert self.evaluate(ParameterSet(fee_rate=10)).approved

    def test_fee_change_too_large(self):
        """Last fee 100, candidate 130 with a 20% limit."""
        candidate = ParameterSet(fee_rate=130, spread_multiplier=1500)

        result = self.evaluate(candidate, last=self.last, last_time=NOW - 60)

        assert result.reason == RejectionReason.CHANGE_TOO_LARGE
        assert result.reason_text == "parameter change too large"
        assert result.details['fee_change'] == pytest.approx(0.3)

    def test_change_at_limit_allowed(self):
        """Exactly 20% passes."""
        candidate = ParameterSet(fee_rate=120, spread_multiplier=1800)

        assert self.evaluate(candidate, last=self.last, last_time=NOW - 60).approved

    def test_spread_change_too_large(self):
        """Spread is limited like the fee."""
        candidate = ParameterSet(fee_rate=100, spread_multiplier=2000)

        result = self.evaluate(candidate, last=self.last, last_time=NOW - 60)

        assert result.reason == RejectionReason.CHANGE_TOO_LARGE

    def test_interval_not_elapsed(self):
        """Deployments closer than the interval are rejected."""
        candidate = ParameterSet(fee_rate=110, spread_multiplier=1500)

        result = self.evaluate(candidate, last=self.last, last_time=NOW - 10)

        assert result.reason == RejectionReason.INTERVAL_NOT_ELAPSED
        assert result.reason_text == "update interval not elapsed"

    def test_interval_boundary(self):
        """Exactly the interval is enough."""
        candidate = ParameterSet(fee_rate=110, spread_multiplier=1500)

        assert self.evaluate(candidate, last=self.last, last_time=NOW - 30).approved

    def test_first_failure_wins(self):
        """Confidence is checked before the emergency floor and the change limit."""
        candidate = ParameterSet(fee_rate=10, spread_multiplier=1000)

        result = self.evaluate(candidate, confidence=0.2, last=self.last, last_time=NOW, emergency=True)

        assert result.reason == RejectionReason.CONFIDENCE_TOO_LOW

    def test_no_side_effects(self):
        """Repeated evaluation gives the same answer."""
        candidate = ParameterSet(fee_rate=130, spread_multiplier=1500)

        first = self.evaluate(candidate, last=self.last, last_time=NOW - 60)
        second = self.evaluate(candidate, last=self.last, last_time=NOW - 60)

        assert first == second
        assert candidate.fee_rate == 130


class TestChangeRatio:
    """Test cases for relative change."""

    def test_zero_previous_is_infinite(self):
        """Any change from zero is unbounded."""
        assert change_ratio(0, 10) == float('inf')
        assert change_ratio(0, 0) == 0.0

    def test_relative_change(self):
        """Ratio against the previous value."""
        assert change_ratio(100, 80) == pytest.approx(0.2)
