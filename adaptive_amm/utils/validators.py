"""
Input validation for market analysis snapshots and pool parameter sets
"""
import numpy as np
from typing import Dict, Any, List, Optional
from dataclasses import dataclass
import logging

from adaptive_amm.core.parameter_set import ParameterSet, ParameterBounds, WEIGHT_TOTAL

logger = logging.getLogger(__name__)


class ValidationResult:
    """Result of validation check"""
    def __init__(self, is_valid: bool, errors: List[str] = None):
        self.is_valid = is_valid
        self.errors = errors or []

    def add_error(self, error: str):
        self.errors.append(error)
        self.is_valid = False

    def __bool__(self):
        return self.is_valid


@dataclass
class FieldRange:
    """Valid range for a numeric field"""
    name: str
    min_value: float
    max_value: float

    def validate(self, value: Any) -> ValidationResult:
        result = ValidationResult(True)

        if isinstance(value, bool) or not isinstance(value, (int, float)):
            result.add_error(f"{self.name}: Invalid type {type(value).__name__}")
            return result

        if np.isnan(value) or np.isinf(value):
            result.add_error(f"{self.name}: NaN or Inf not allowed")
            return result

        if not (self.min_value <= value <= self.max_value):
            result.add_error(
                f"{self.name}: Value {value} outside range "
                f"[{self.min_value}, {self.max_value}]"
            )

        return result


class MarketAnalysisValidator:
    """Validator for MarketAnalysis snapshots.

    Validation never blocks the cycle: the encoder substitutes neutral values
    for every field reported here.
    """

    VALID_TRENDS = {'BULLISH', 'NEUTRAL', 'BEARISH'}

    def __init__(self):
        self.field_ranges = {
            'marketOverview.avgVolatility': FieldRange('marketOverview.avgVolatility', 0, 10),
            'marketOverview.bullishAssets': FieldRange('marketOverview.bullishAssets', 0, 1e6),
            'riskMetrics.riskScore': FieldRange('riskMetrics.riskScore', 0, 1),
            'confidence': FieldRange('confidence', 0, 1)
        }

    def validate(self, analysis: Any) -> ValidationResult:
        """Validate the fields the encoder depends on"""
        result = ValidationResult(True)

        if not isinstance(analysis, dict):
            result.add_error(f"Market analysis must be a dictionary, got {type(analysis).__name__}")
            return result

        for path, field_range in self.field_ranges.items():
            value = self._lookup(analysis, path)
            if value is None:
                result.add_error(f"Missing field: {path}")
                continue
            field_result = field_range.validate(value)
            if not field_result:
                result.errors.extend(field_result.errors)
                result.is_valid = False

        trend = self._lookup(analysis, 'marketOverview.trend')
        if trend is None:
            result.add_error("Missing field: marketOverview.trend")
        elif trend not in self.VALID_TRENDS:
            result.add_error(f"marketOverview.trend: Unknown trend {trend!r}")

        assets = analysis.get('assets')
        if assets is not None and not isinstance(assets, dict):
            result.add_error(f"assets: Expected mapping, got {type(assets).__name__}")

        return result

    @staticmethod
    def _lookup(data: Dict[str, Any], path: str) -> Optional[Any]:
        node: Any = data
        for part in path.split('.'):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node


class ParameterSetValidator:
    """Checks the ParameterSet invariants without modifying the candidate"""

    def __init__(self, bounds: Optional[ParameterBounds] = None):
        self.bounds = bounds or ParameterBounds()

    def validate(self, params: ParameterSet) -> ValidationResult:
        result = ValidationResult(True)

        if not (self.bounds.min_fee_rate <= params.fee_rate <= self.bounds.max_fee_rate):
            result.add_error(
                f"fee_rate {params.fee_rate} outside "
                f"[{self.bounds.min_fee_rate}, {self.bounds.max_fee_rate}]"
            )

        if not (self.bounds.min_spread_multiplier <= params.spread_multiplier
                <= self.bounds.max_spread_multiplier):
            result.add_error(
                f"spread_multiplier {params.spread_multiplier} outside "
                f"[{self.bounds.min_spread_multiplier}, {self.bounds.max_spread_multiplier}]"
            )

        if sum(params.weights) != WEIGHT_TOTAL:
            result.add_error(f"weights sum to {sum(params.weights)}, expected {WEIGHT_TOTAL}")

        if any(w < 0 for w in params.weights):
            result.add_error("weights must be non-negative")

        return result
