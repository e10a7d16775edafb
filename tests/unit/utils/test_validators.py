"""
Unit tests for input validation.

Tests cover:
- Numeric range checks
- MarketAnalysis field validation
- ParameterSet invariant checks
"""

import pytest

from adaptive_amm.core.parameter_set import ParameterSet
from adaptive_amm.utils.validators import (
    FieldRange,
    MarketAnalysisValidator,
    ParameterSetValidator
)


class TestFieldRange:
    """Test cases for FieldRange."""

    def setup_method(self):
        self.field = FieldRange('confidence', 0, 1)

    def test_valid_value(self):
        """Values inside the range pass."""
        assert self.field.validate(0.5)

    @pytest.mark.parametrize("value", [float('nan'), float('inf'), 'high', True, 1.5, -0.1])
    def test_invalid_values(self, value):
        """Wrong types, non-finite and out-of-range values fail."""
        result = self.field.validate(value)

        assert not result
        assert result.errors[0].startswith('confidence')


class TestMarketAnalysisValidator:
    """Test cases for MarketAnalysisValidator."""

    def setup_method(self):
        self.validator = MarketAnalysisValidator()

    def test_complete_analysis_valid(self, calm_analysis):
        """A well-formed snapshot has no errors."""
        result = self.validator.validate(calm_analysis)

        assert result.is_valid
        assert result.errors == []

    def test_missing_fields_reported(self):
        """Every missing field is listed."""
        result = self.validator.validate({})

        assert not result
        assert "Missing field: marketOverview.avgVolatility" in result.errors
        assert "Missing field: marketOverview.trend" in result.errors
        assert "Missing field: confidence" in result.errors

    def test_unknown_trend(self, analysis_factory):
        """Trend must be one of the known labels."""
        result = self.validator.validate(analysis_factory(trend='UP'))

        assert not result
        assert any('Unknown trend' in e for e in result.errors)

    def test_risk_score_out_of_range(self, calm_analysis):
        """Risk score above 1 is flagged."""
        calm_analysis['riskMetrics']['riskScore'] = 1.5

        assert not self.validator.validate(calm_analysis)

    def test_assets_must_be_mapping(self, calm_analysis):
        """A list of assets is rejected."""
        calm_analysis['assets'] = ['ETH', 'BTC']

        result = self.validator.validate(calm_analysis)

        assert any(e.startswith('assets') for e in result.errors)

    def test_non_mapping(self):
        """Non-dict input is invalid."""
        assert not self.validator.validate([1, 2, 3])


class TestParameterSetValidator:
    """Test cases for ParameterSetValidator."""

    def setup_method(self):
        self.validator = ParameterSetValidator()

    def test_default_parameters_valid(self):
        """Defaults satisfy all invariants."""
        assert self.validator.validate(ParameterSet())

    def test_out_of_bounds(self):
        """Fee, spread and weight problems are all reported."""
        result = self.validator.validate(
            ParameterSet(fee_rate=2000, spread_multiplier=100, weights=[5000, 5000, 1000, -1000])
        )

        assert len(result.errors) == 3

    def test_weight_sum(self):
        """Weights must sum to 10000."""
        result = self.validator.validate(ParameterSet(weights=[2500, 2500, 2500]))

        assert not result
        assert 'weights sum to 7500' in result.errors[0]
