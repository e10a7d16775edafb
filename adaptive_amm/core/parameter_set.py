"""
parameter_set.py
Pool parameter containers and the bound/weight helpers shared by every stage

Author: Adaptive AMM Optimizer
Date: 2024
"""

import math
import time
import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field, asdict

# Setup logger
logger = logging.getLogger(__name__)


# Constants
WEIGHT_TOTAL = 10000  # weights are expressed in bps of the pool
DEFAULT_ASSET_COUNT = 4
DEFAULT_FEE_RATE = 30  # 0.3%
DEFAULT_SPREAD_MULTIPLIER = 1000  # 1.0x


def _now() -> int:
    return int(time.time())


@dataclass
class ParameterSet:
    """Pricing parameters of the liquidity pool"""
    fee_rate: int = DEFAULT_FEE_RATE
    spread_multiplier: int = DEFAULT_SPREAD_MULTIPLIER
    weights: List[int] = field(default_factory=lambda: [2500] * DEFAULT_ASSET_COUNT)
    last_update: int = field(default_factory=_now)
    is_active: bool = True

    def copy(self) -> 'ParameterSet':
        return ParameterSet(
            fee_rate=self.fee_rate,
            spread_multiplier=self.spread_multiplier,
            weights=list(self.weights),
            last_update=self.last_update,
            is_active=self.is_active
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParameterSet':
        """Build from snake_case or camelCase keys"""
        return cls(
            fee_rate=int(data.get('fee_rate', data.get('feeRate', DEFAULT_FEE_RATE))),
            spread_multiplier=int(data.get(
                'spread_multiplier', data.get('spreadMultiplier', DEFAULT_SPREAD_MULTIPLIER)
            )),
            weights=[int(w) for w in data.get('weights', [2500] * DEFAULT_ASSET_COUNT)],
            last_update=int(data.get('last_update', data.get('lastUpdate', _now()))),
            is_active=bool(data.get('is_active', data.get('isActive', True)))
        )


@dataclass
class ParameterBounds:
    """Absolute bounds every candidate is clamped to"""
    min_fee_rate: int = 5
    max_fee_rate: int = 1000
    min_spread_multiplier: int = 1000
    max_spread_multiplier: int = 5000
    min_weight: int = 1000
    max_weight: int = 6000

    @classmethod
    def from_config(cls, config) -> 'ParameterBounds':
        return cls(
            min_fee_rate=config.min_fee_rate,
            max_fee_rate=config.max_fee_rate,
            min_spread_multiplier=config.min_spread_multiplier,
            max_spread_multiplier=config.max_spread_multiplier,
            min_weight=config.min_weight,
            max_weight=config.max_weight
        )


@dataclass
class OptimizationDecision:
    """Candidate produced by one optimization cycle"""
    parameters: ParameterSet
    confidence: float
    reasoning: List[str] = field(default_factory=list)
    expected_improvement: float = 0.0
    action_index: Optional[int] = None
    state_key: Optional[str] = None
    approved: bool = False
    rejection_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'approved': self.approved,
            'parameters': self.parameters.to_dict(),
            'combined_confidence': self.confidence,
            'reasoning': list(self.reasoning),
            'expected_improvement': self.expected_improvement,
            'action_index': self.action_index,
            'rejection_reason': self.rejection_reason
        }


def _coerce_confidence(value: Any) -> Optional[float]:
    """Numeric confidence clamped to [0, 1]; anything else is treated as absent"""
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return max(0.0, min(1.0, result))


@dataclass
class ROIRecommendation:
    """Recommendation delivered by the external ROI strategy module"""
    recommended_parameters: ParameterSet
    confidence: Optional[float] = None
    market_regime: str = 'NEUTRAL'
    improvement_estimate: float = 0.0
    meets_target: bool = False
    reasoning: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not isinstance(self.recommended_parameters, ParameterSet):
            raise TypeError(
                f"recommended_parameters must be a ParameterSet, "
                f"got {type(self.recommended_parameters).__name__}"
            )
        self.confidence = _coerce_confidence(self.confidence)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ROIRecommendation':
        """Build from snake_case or camelCase keys.

        Raises TypeError or ValueError on a malformed payload.
        """
        if not isinstance(data, dict):
            raise TypeError(f"ROI recommendation must be a mapping, got {type(data).__name__}")

        params = data.get('recommended_parameters', data.get('recommendedParameters'))
        if isinstance(params, dict):
            params = ParameterSet.from_dict(params)
        elif not isinstance(params, ParameterSet):
            raise ValueError(f"invalid recommended parameters: {params!r}")

        return cls(
            recommended_parameters=params,
            confidence=data.get('confidence'),
            market_regime=data.get('market_regime', data.get('marketRegime', 'NEUTRAL')) or 'NEUTRAL',
            improvement_estimate=float(data.get(
                'improvement_estimate', data.get('improvementEstimate', 0.0)
            ) or 0.0),
            meets_target=bool(data.get('meets_target', data.get('meetsTarget', False))),
            reasoning=list(data.get('reasoning') or [])
        )


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def equal_weights(count: int = DEFAULT_ASSET_COUNT) -> List[int]:
    """Equal split of WEIGHT_TOTAL, remainder assigned to the first asset"""
    count = count if count > 0 else DEFAULT_ASSET_COUNT
    share = WEIGHT_TOTAL // count
    weights = [share] * count
    weights[0] += WEIGHT_TOTAL - share * count
    return weights


def normalize_weights(weights: List[float]) -> List[int]:
    """Rescale weights so they sum to exactly WEIGHT_TOTAL.

    Degenerate input (empty, all zero, or a non-positive total) returns the
    equal split. Rounding residue is absorbed by the first element.
    """
    if not weights:
        return equal_weights(DEFAULT_ASSET_COUNT)

    total = sum(weights)
    if total <= 0:
        return equal_weights(len(weights))

    normalized = [int(round(w / total * WEIGHT_TOTAL)) for w in weights]
    residue = WEIGHT_TOTAL - sum(normalized)
    if residue != 0:
        normalized[0] += residue

    return normalized


def validate_parameters(params: ParameterSet, bounds: ParameterBounds) -> ParameterSet:
    """Clamp fee and spread into bounds and renormalize weights"""
    return ParameterSet(
        fee_rate=int(clamp(int(round(params.fee_rate)), bounds.min_fee_rate, bounds.max_fee_rate)),
        spread_multiplier=int(clamp(
            int(round(params.spread_multiplier)),
            bounds.min_spread_multiplier,
            bounds.max_spread_multiplier
        )),
        weights=normalize_weights(params.weights),
        last_update=params.last_update,
        is_active=params.is_active
    )


def conservative_defaults(bounds: ParameterBounds, asset_count: int = DEFAULT_ASSET_COUNT) -> ParameterSet:
    """Mid-range fee and spread with equal weights"""
    return ParameterSet(
        fee_rate=(bounds.min_fee_rate + bounds.max_fee_rate) // 2,
        spread_multiplier=(bounds.min_spread_multiplier + bounds.max_spread_multiplier) // 2,
        weights=equal_weights(asset_count)
    )
