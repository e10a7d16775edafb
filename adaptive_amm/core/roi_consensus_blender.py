"""
roi_consensus_blender.py
Confidence-weighted consensus between the ML candidate and the ROI recommendation

Author: Adaptive AMM Optimizer
Date: 2024
"""

# Standard library imports
import logging
from typing import Dict, List, Optional
from dataclasses import dataclass, field

# Local imports
from adaptive_amm.core.errors import ComputationError, StageResult
from adaptive_amm.core.parameter_set import (
    ParameterSet, ParameterBounds, ROIRecommendation, validate_parameters
)

# Setup logger
logger = logging.getLogger(__name__)


# Constants
DEFAULT_CONFIDENCE = 0.5
REGIME_MULTIPLIERS = {
    'TRENDING_HIGH_VOLATILITY': 1.5,
    'TRENDING_MODERATE': 1.2,
    'NEUTRAL': 1.0,
    'RANGING_MODERATE': 0.8,
    'RANGING_LOW_VOLATILITY': 0.6
}


@dataclass
class BlendedCandidate:
    """Consensus parameters with their combined confidence"""
    parameters: ParameterSet
    confidence: float
    expected_improvement: float
    reasoning: List[str] = field(default_factory=list)
    used_roi: bool = False
    market_regime: Optional[str] = None


def regime_multiplier(regime: Optional[str]) -> float:
    return REGIME_MULTIPLIERS.get(regime or 'NEUTRAL', 1.0)


class ROIConsensusBlender:
    """Blends ML and ROI parameter proposals field by field"""

    def __init__(self, bounds: Optional[ParameterBounds] = None):
        self.bounds = bounds or ParameterBounds()
        self.blend_count = 0
        self.fallback_count = 0

    def blend(
        self,
        ml_parameters: ParameterSet,
        ml_confidence: float,
        ml_reasoning: List[str],
        ml_improvement: float = 0.0,
        roi: Optional[ROIRecommendation] = None
    ) -> StageResult:
        """Combine the two proposals.

        Without a recommendation the ML candidate passes through with its own
        confidence. Blending errors yield the same ML-only result as the
        stage fallback.
        """
        ml_only = self._ml_only(ml_parameters, ml_confidence, ml_reasoning, ml_improvement)

        if roi is None:
            return StageResult.success(ml_only)

        try:
            blended = self._blend(ml_parameters, ml_confidence, ml_reasoning, ml_improvement, roi)
            self.blend_count += 1
            return StageResult.success(blended)
        except ComputationError as e:
            self.fallback_count += 1
            logger.warning(f"ROI blending failed, using ML-only candidate: {e}")
            return StageResult.failure(e, fallback=ml_only)

    def _ml_only(self, params: ParameterSet, confidence: float,
                 reasoning: List[str], improvement: float) -> BlendedCandidate:
        return BlendedCandidate(
            parameters=validate_parameters(params, self.bounds),
            confidence=confidence,
            expected_improvement=improvement,
            reasoning=list(reasoning) + ["ROI recommendation unavailable: ML-only candidate"],
            used_roi=False
        )

    def _blend(self, ml_params: ParameterSet, ml_confidence: float, ml_reasoning: List[str],
               ml_improvement: float, roi: ROIRecommendation) -> BlendedCandidate:
        roi_params = roi.recommended_parameters
        ml_weight = ml_confidence if ml_confidence is not None else DEFAULT_CONFIDENCE
        roi_weight = roi.confidence if roi.confidence is not None else DEFAULT_CONFIDENCE

        total_weight = ml_weight + roi_weight
        if total_weight <= 0:
            raise ComputationError("zero total confidence", stage='roi_blend')

        if len(ml_params.weights) != len(roi_params.weights):
            raise ComputationError(
                f"weight length mismatch: {len(ml_params.weights)} vs {len(roi_params.weights)}",
                stage='roi_blend'
            )

        def weighted(a: float, b: float) -> int:
            return int(round((a * ml_weight + b * roi_weight) / total_weight))

        fee_rate = weighted(ml_params.fee_rate, roi_params.fee_rate)
        spread = weighted(ml_params.spread_multiplier, roi_params.spread_multiplier)
        weights = [weighted(a, b) for a, b in zip(ml_params.weights, roi_params.weights)]

        multiplier = regime_multiplier(roi.market_regime)
        spread = int(round(spread * multiplier))

        combined = validate_parameters(
            ParameterSet(fee_rate=fee_rate, spread_multiplier=spread, weights=weights, is_active=True),
            self.bounds
        )

        reasoning = list(ml_reasoning) + list(roi.reasoning)
        reasoning.append(f"market regime {roi.market_regime}: spread x{multiplier}")

        logger.debug(
            f"Blended ML (conf {ml_weight:.2f}) with ROI (conf {roi_weight:.2f}): "
            f"fee={combined.fee_rate}, spread={combined.spread_multiplier}"
        )

        return BlendedCandidate(
            parameters=combined,
            confidence=(ml_weight + roi_weight) / 2,
            expected_improvement=(ml_improvement + roi.improvement_estimate) / 2,
            reasoning=reasoning,
            used_roi=True,
            market_regime=roi.market_regime
        )

    def get_stats(self) -> Dict[str, int]:
        return {'blend_count': self.blend_count, 'fallback_count': self.fallback_count}
